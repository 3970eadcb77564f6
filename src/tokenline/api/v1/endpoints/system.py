"""System endpoints for the Tokenline API."""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tokenline.core.settings import settings

from ..dependencies import CacheDep, SessionDep

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health")
def health(db: SessionDep, cache: CacheDep) -> dict[str, object]:
    """Report database reachability and cache readiness.

    A cache outage is reported as degraded rather than failing the check:
    joins keep working without it.
    """
    try:
        db.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError:
        database_ok = False
    cache_ready = cache.is_ready()

    if not database_ok:
        overall = "error"
    elif not cache_ready:
        overall = "degraded"
    else:
        overall = "ok"
    return {
        "status": overall,
        "database": database_ok,
        "cache": cache_ready,
    }


@router.get("/config")
def get_public_config() -> dict[str, object]:
    """Return the public admission-control configuration."""
    return {
        "app": {"name": settings.app_name, "version": settings.app_version},
        "rate_limits": settings.rate_limits,
    }
