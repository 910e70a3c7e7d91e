"""Shift exchange workflow.

An employee asks to swap one of their shifts with a colleague's shift.
A manager then approves the request, which swaps the owners of the two
shifts, or rejects it. Both outcomes are final.

The resolution is a compare-and-set on the exchange status followed by the
two owner updates, all in one transaction. Two managers resolving the same
exchange at once cannot both succeed, and a failure halfway leaves the
exchange pending with both shifts untouched.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import or_, update

from . import utcnow
from .database import atomic
from .errors import (
    AlreadyProcessedError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from .models import ExchangeStatus, Shift, ShiftExchange, User, as_utc

if TYPE_CHECKING:  # pragma: no cover
    from sqlalchemy.orm import Session, scoped_session

logger = getLogger(__name__)

DEFAULT_MIN_NOTICE = timedelta(hours=24)
"""Both shifts must start at least this far in the future."""

DEFAULT_APPROVAL_REASON = "Approved by manager"

MSG_NOT_FOUND = "Shift exchange not found"
MSG_ALREADY_PROCESSED = "This shift exchange has already been processed"
MSG_MANAGER_REQUIRED = "Access denied. Manager privileges required."


class ExchangeAction(Enum):
    """What a manager does with a pending exchange."""

    APPROVE = "approve"
    REJECT = "reject"


def request_exchange(  # noqa: PLR0913
    session: Session | scoped_session,
    requesting_user: User,
    requested_user_id: int,
    requesting_shift_id: int,
    requested_shift_id: int,
    reason: str | None,
    *,
    now: datetime | None = None,
    min_notice: timedelta = DEFAULT_MIN_NOTICE,
) -> ShiftExchange:
    """Create a pending exchange between two shifts.

    The checks run in a fixed order and the first one to fail raises.
    Nothing is written unless every check passes.

    Args:
    ----
        session: The database session.
        requesting_user: The signed in user asking for the exchange.
        requested_user_id: Owner of the shift the requesting user wants.
        requesting_shift_id: Shift the requesting user gives away.
        requested_shift_id: Shift the requesting user wants.
        reason: Free text explaining the request. Required.
        now: Current time, for tests.
        min_notice: Minimum time between now and the start of either shift.

    Returns:
    -------
        ShiftExchange: The new exchange, in pending status.

    """
    if not reason or not reason.strip():
        _msg = "A reason is required to request a shift exchange"
        raise ValidationError(_msg)

    if requesting_shift_id == requested_shift_id:
        _msg = "A shift exchange needs two different shifts"
        raise ValidationError(_msg)

    requesting_shift = session.get(Shift, requesting_shift_id)
    requested_shift = session.get(Shift, requested_shift_id)
    if not requesting_shift or not requested_shift:
        _msg = "One or both shifts not found"
        raise NotFoundError(_msg)

    if requesting_shift.user_id != requesting_user.id:
        _msg = "You can only request exchanges for your own shifts"
        raise AuthorizationError(_msg)

    if requested_shift.user_id != requested_user_id:
        _msg = "The requested shift does not belong to the requested user"
        raise AuthorizationError(_msg)

    cutoff = as_utc(now or utcnow()) + min_notice
    if requesting_shift.start_time_utc < cutoff or requested_shift.start_time_utc < cutoff:
        hours = int(min_notice.total_seconds() // 3600)
        _msg = f"Cannot exchange shifts that are less than {hours} hours away"
        raise ValidationError(_msg)

    requested_user = session.get(User, requested_user_id)
    if not requested_user:
        _msg = "Requested user not found"
        raise NotFoundError(_msg)

    if requesting_user.role is not requested_user.role:
        _msg = "Can only exchange shifts with colleagues of the same role"
        raise ValidationError(_msg)

    exchange = ShiftExchange(
        requesting_user_id=requesting_user.id,
        requested_user_id=requested_user.id,
        requesting_shift_id=requesting_shift.id,
        requested_shift_id=requested_shift.id,
        reason=reason.strip(),
        status=ExchangeStatus.PENDING,
    )
    with atomic(session):
        session.add(exchange)

    logger.info(
        "Shift exchange %s requested by %s: shift %s for shift %s of %s",
        exchange.id,
        requesting_user.email,
        requesting_shift.id,
        requested_shift.id,
        requested_user.email,
    )
    return exchange


def resolve_exchange(  # noqa: PLR0913
    session: Session | scoped_session,
    exchange_id: int,
    actor: User,
    action: ExchangeAction,
    response_reason: str | None = None,
    *,
    now: datetime | None = None,
) -> ShiftExchange:
    """Approve or reject a pending exchange.

    Rejecting requires a response reason. Approving without one stores
    a generic message. Approval swaps the owners of the two shifts in
    the same transaction that marks the exchange approved.
    """
    if not actor.is_manager:
        raise AuthorizationError(MSG_MANAGER_REQUIRED)

    response_reason = response_reason.strip() if response_reason else None
    if action is ExchangeAction.REJECT and not response_reason:
        _msg = "A reason is required to reject a shift exchange"
        raise ValidationError(_msg)
    if action is ExchangeAction.APPROVE and not response_reason:
        response_reason = DEFAULT_APPROVAL_REASON

    exchange = session.get(ShiftExchange, exchange_id)
    if not exchange:
        raise NotFoundError(MSG_NOT_FOUND)
    if not exchange.is_pending:
        raise AlreadyProcessedError(MSG_ALREADY_PROCESSED)

    new_status = (
        ExchangeStatus.APPROVED
        if action is ExchangeAction.APPROVE
        else ExchangeStatus.REJECTED
    )

    with atomic(session):
        # Only one resolution may move the exchange out of pending.
        result = session.execute(
            update(ShiftExchange)
            .where(
                ShiftExchange.id == exchange_id,
                ShiftExchange.status == ExchangeStatus.PENDING,
            )
            .values(
                status=new_status,
                approved_by_id=actor.id,
                response_reason=response_reason,
                updated_at=as_utc(now or utcnow()),
            )
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:  # type: ignore[attr-defined]
            logger.warning(
                "Shift exchange %s was resolved concurrently. %s by %s refused.",
                exchange_id,
                action.value,
                actor.email,
            )
            raise AlreadyProcessedError(MSG_ALREADY_PROCESSED)

        if action is ExchangeAction.APPROVE:
            _swap_owners(session, exchange)

    session.refresh(exchange)
    logger.info(
        "Shift exchange %s %s by %s",
        exchange.id,
        new_status.value,
        actor.email,
    )
    return exchange


def _swap_owners(session: Session | scoped_session, exchange: ShiftExchange) -> None:
    """Swap the owners of the two shifts of an exchange.

    Must run inside the transaction that approves the exchange.
    """
    requesting_shift = session.get(
        Shift,
        exchange.requesting_shift_id,
        with_for_update=True,
        populate_existing=True,
    )
    requested_shift = session.get(
        Shift,
        exchange.requested_shift_id,
        with_for_update=True,
        populate_existing=True,
    )
    if not requesting_shift or not requested_shift:
        _msg = "One or both shifts not found"
        raise NotFoundError(_msg)

    requesting_owner, requested_owner = requesting_shift.user, requested_shift.user
    requesting_shift.user = requested_owner
    requested_shift.user = requesting_owner
    session.flush()
    logger.debug(
        "Shift %s now owned by %s, shift %s now owned by %s",
        requesting_shift.id,
        requested_owner.email,
        requested_shift.id,
        requesting_owner.email,
    )


def get_exchange(
    session: Session | scoped_session,
    exchange_id: int,
    actor: User,
) -> ShiftExchange:
    """Return an exchange visible to the actor.

    Parties of the exchange and managers may see it.
    """
    exchange = session.get(ShiftExchange, exchange_id)
    if not exchange:
        raise NotFoundError(MSG_NOT_FOUND)
    if not exchange.involves(actor) and not actor.is_manager:
        _msg = "Not authorized to view this shift exchange"
        raise AuthorizationError(_msg)
    return exchange


def list_exchanges(session: Session | scoped_session) -> list[ShiftExchange]:
    """Return every exchange, newest first."""
    return (
        session.query(ShiftExchange)
        .order_by(ShiftExchange.created_at.desc(), ShiftExchange.id.desc())
        .all()
    )


def list_user_exchanges(
    session: Session | scoped_session,
    user: User,
) -> list[ShiftExchange]:
    """Return the exchanges where the user is either party, newest first."""
    return (
        session.query(ShiftExchange)
        .filter(
            or_(
                ShiftExchange.requesting_user_id == user.id,
                ShiftExchange.requested_user_id == user.id,
            ),
        )
        .order_by(ShiftExchange.created_at.desc(), ShiftExchange.id.desc())
        .all()
    )


def list_pending_exchanges(session: Session | scoped_session) -> list[ShiftExchange]:
    """Return the exchanges waiting for a manager, newest first."""
    return (
        session.query(ShiftExchange)
        .filter(ShiftExchange.status == ExchangeStatus.PENDING)
        .order_by(ShiftExchange.created_at.desc(), ShiftExchange.id.desc())
        .all()
    )


def delete_exchange(
    session: Session | scoped_session,
    exchange_id: int,
    actor: User,
) -> None:
    """Delete an exchange.

    The requesting user may delete their own pending exchanges.
    Managers may delete any exchange.
    """
    exchange = session.get(ShiftExchange, exchange_id)
    if not exchange:
        raise NotFoundError(MSG_NOT_FOUND)

    if exchange.requesting_user_id != actor.id and not actor.is_manager:
        _msg = "Not authorized to delete this shift exchange"
        raise AuthorizationError(_msg)

    if not exchange.is_pending and not actor.is_manager:
        _msg = "Cannot delete a processed shift exchange"
        raise ValidationError(_msg)

    with atomic(session):
        session.delete(exchange)
    logger.info("Shift exchange %s deleted by %s", exchange_id, actor.email)
