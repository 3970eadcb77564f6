"""Ticket issuance and lifecycle for queue joins."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tokenline.models.token import Token, TokenStatus
from tokenline.repositories import QueueRepository, TokenRepository
from tokenline.services.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    RateLimitedError,
    ValidationError,
)
from tokenline.services.live_index import LiveQueueIndex
from tokenline.services.rate_limit import RateLimiter

# Configure logger for this module
logger = logging.getLogger(__name__)

ALREADY_IN_QUEUE = "You are already in a queue"
QUEUE_UNAVAILABLE = "Queue not found or inactive"
TICKET_NOT_FOUND = "Token not found"


class TicketService:
    """Issues tickets and moves them through their lifecycle.

    The durable token table is authoritative. Every operation commits its
    durable change first and only then projects it onto the live queue index;
    index and rate-limiter failures are logged and never fail the caller.
    """

    def __init__(
        self,
        db: Session,
        rate_limiter: RateLimiter | None = None,
        live_index: LiveQueueIndex | None = None,
    ) -> None:
        self.db = db
        self.queues = QueueRepository(db)
        self.tokens = TokenRepository(db)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.live_index = live_index or LiveQueueIndex()

    # --- Issuance ------------------------------------------------------------------
    def issue_ticket(self, queue_id: int, user_id: int | None) -> Token:
        """Issue the next ticket of ``queue_id`` to ``user_id``.

        Args:
            queue_id: Queue the user is joining.
            user_id: Authenticated owner of the new ticket.

        Returns:
            The persisted waiting ticket.

        Raises:
            ValidationError: If no user is given.
            RateLimitedError: If admission control refuses the join.
            ConflictError: If the user already holds a waiting or served ticket.
            NotFoundError: If the queue is missing or inactive.
            PersistenceError: If the durable store fails.

        Notes:
            The sequence increment commits on its own. If the ticket insert
            then fails, the consumed ``seq`` is left as a gap.
        """
        if user_id is None:
            raise ValidationError("UserId is required to generate a token")

        decision = self.rate_limiter.check_join(user_id, queue_id)
        if not decision.allowed:
            raise RateLimitedError(
                decision.message or "Too many queue joins, try again later.",
                decision.retry_after_seconds,
            )

        if self._find_active(user_id) is not None:
            raise ConflictError(ALREADY_IN_QUEUE)

        seq = self._claim_sequence(queue_id)
        token = self._create_token(queue_id, user_id, seq)

        if not self.live_index.enqueue(queue_id, token.id, token.seq):
            logger.warning("Ticket %s issued without live index entry", token.id)
        self.rate_limiter.record_join(user_id, queue_id)

        logger.info(
            "Issued ticket %s (seq %s) in queue %s to user %s", token.id, seq, queue_id, user_id
        )
        return token

    def _find_active(self, user_id: int) -> Token | None:
        try:
            return self.tokens.find_active_for_user(user_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Active ticket lookup failed for user %s", user_id)
            raise PersistenceError("Failed to generate token") from exc

    def _claim_sequence(self, queue_id: int) -> int:
        try:
            seq = self.queues.claim_next_sequence(queue_id)
            if seq is None:
                self.db.rollback()
                raise NotFoundError(QUEUE_UNAVAILABLE)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Sequence assignment failed for queue %s", queue_id)
            raise PersistenceError("Failed to generate token") from exc
        return seq

    def _create_token(self, queue_id: int, user_id: int, seq: int) -> Token:
        try:
            token = self.tokens.create(queue_id=queue_id, user_id=user_id, seq=seq)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            # The partial unique index caught a concurrent join by the same user.
            if self._find_active(user_id) is not None:
                logger.info("Concurrent join by user %s rejected by constraint", user_id)
                raise ConflictError(ALREADY_IN_QUEUE) from exc
            logger.exception("Ticket insert failed for queue %s seq %s", queue_id, seq)
            raise PersistenceError("Failed to generate token") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Ticket insert failed for queue %s seq %s", queue_id, seq)
            raise PersistenceError("Failed to generate token") from exc
        return token

    # --- Lifecycle -----------------------------------------------------------------
    def transition(self, ticket_id: int, new_status: TokenStatus | str) -> Token:
        """Move a ticket to ``new_status`` and reconcile the live index.

        Terminal tickets (completed, cancelled) are immutable and a served
        ticket cannot go back to waiting. Re-applying the current status is
        accepted so callers can retry safely.

        Raises:
            ValidationError: If ``new_status`` is not a known status.
            NotFoundError: If the ticket does not exist.
            InvalidTransitionError: If the move is not allowed or the ticket
                changed concurrently.
            PersistenceError: If the durable store fails.
        """
        status = _coerce_status(new_status)
        token = self._get_token(ticket_id)
        current = token.token_status
        _check_transition(current, status)

        if current is not status:
            try:
                updated = self.tokens.update_status(token.id, current, status)
                if not updated:
                    self.db.rollback()
                    raise InvalidTransitionError("Ticket status changed concurrently, retry")
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Status update failed for ticket %s", ticket_id)
                raise PersistenceError("Failed to update token status") from exc
            self.db.refresh(token)
            logger.info("Ticket %s moved from %s to %s", token.id, current.value, status.value)

        self._project(token, status)
        return token

    def leave_queue(self, user_id: int | None) -> Token:
        """Cancel the caller's active ticket."""
        if user_id is None:
            raise ValidationError("UserId is required to leave a queue")
        token = self._find_active(user_id)
        if token is None:
            raise NotFoundError("You are not in a queue")
        return self.transition(token.id, TokenStatus.CANCELLED)

    def _project(self, token: Token, status: TokenStatus) -> None:
        queue_id = token.queue_id
        if status is TokenStatus.WAITING:
            applied = self.live_index.enqueue(queue_id, token.id, token.seq)
        elif status is TokenStatus.SERVED:
            removed = self.live_index.remove(queue_id, token.id)
            applied = self.live_index.set_now_serving(queue_id, token.id) and removed
        else:
            applied = self.live_index.remove(queue_id, token.id)
        if not applied:
            logger.warning(
                "Live index out of sync for ticket %s in queue %s; rebuild will repair it",
                token.id,
                queue_id,
            )

    # --- Lookups -------------------------------------------------------------------
    def get_ticket(self, ticket_id: int) -> Token:
        return self._get_token(ticket_id)

    def active_ticket_for(self, user_id: int) -> Token | None:
        """Return the user's waiting or served ticket, if any."""
        return self._find_active(user_id)

    def position_of(self, ticket_id: int) -> int | None:
        """Return the 1-based position of a waiting ticket in its queue.

        The live index answers when it can. Otherwise the rank is computed
        from the durable store, and the queue's index is rebuilt when the
        ticket was simply missing from it. Queues whose index writes were
        lost during a cache outage are rebuilt first.

        Returns:
            The position, or None if the ticket is not waiting.
        """
        token = self._get_token(ticket_id)
        if token.token_status is not TokenStatus.WAITING:
            return None

        self.live_index.repair(self.tokens.index_snapshot)
        position = self.live_index.position_of(token.queue_id, token.id)
        if position is not None:
            return position

        self.rebuild_index(token.queue_id)
        return self.tokens.waiting_rank(token.queue_id, token.seq)

    def rebuild_index(self, queue_id: int) -> int:
        """Replay a queue's waiting tickets from the durable store into the index.

        Returns:
            Number of waiting tickets written.
        """
        if self.queues.get_by_id(queue_id) is None:
            raise NotFoundError("Queue not found")
        entries, now_serving = self.tokens.index_snapshot(queue_id)
        self.live_index.rebuild(queue_id, entries, now_serving=now_serving)
        return len(entries)

    def _get_token(self, ticket_id: int) -> Token:
        try:
            token = self.tokens.get_by_id(ticket_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Ticket lookup failed for %s", ticket_id)
            raise PersistenceError("Failed to load token") from exc
        if token is None:
            raise NotFoundError(TICKET_NOT_FOUND)
        return token


def _coerce_status(value: TokenStatus | str) -> TokenStatus:
    if isinstance(value, TokenStatus):
        return value
    try:
        return TokenStatus(str(value).lower())
    except ValueError as exc:
        allowed = ", ".join(status.value for status in TokenStatus)
        raise ValidationError(f"Unknown status {value!r}; expected one of: {allowed}") from exc


def _check_transition(current: TokenStatus, new: TokenStatus) -> None:
    if current is new:
        return
    if current.is_terminal:
        raise InvalidTransitionError(f"Ticket is already {current.value}")
    if current is TokenStatus.SERVED and new is TokenStatus.WAITING:
        raise InvalidTransitionError("A served ticket cannot return to waiting")
