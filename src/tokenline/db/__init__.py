# src/tokenline/db/__init__.py
"""Database and cache configuration and utilities."""

from .session import SessionLocal, get_db

__all__ = ["get_db", "SessionLocal"]
