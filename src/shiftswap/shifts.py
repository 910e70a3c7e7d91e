"""Shift management for managers and shift lookups for employees."""

from __future__ import annotations

from datetime import datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any

from . import get_timezone
from .database import atomic
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import Shift, ShiftExchange, ShiftStatus, User, as_utc

if TYPE_CHECKING:  # pragma: no cover
    from sqlalchemy.orm import Session, scoped_session

logger = getLogger(__name__)

MSG_NOT_FOUND = "Shift not found"

UPDATABLE_FIELDS = ("startTime", "endTime", "status", "notes")
"""Fields a manager may change on an existing shift.

The owner is not among them: it only changes through an approved exchange.
"""


def parse_datetime(value: Any, field: str) -> datetime:  # noqa: ANN401
    """Parse an ISO 8601 timestamp from a request body into UTC.

    A trailing Z means UTC. Naive timestamps are taken in the
    application timezone.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            _msg = f"Invalid date for {field}: {value}"
            raise ValidationError(_msg) from None
    else:
        _msg = f"{field} is required"
        raise ValidationError(_msg)

    if parsed.tzinfo is None:
        parsed = get_timezone().localize(parsed)
    return as_utc(parsed)


def _check_interval(start_time: datetime, end_time: datetime) -> None:
    if as_utc(start_time) >= as_utc(end_time):
        _msg = "A shift must end after it starts"
        raise ValidationError(_msg)


def parse_status(value: Any) -> ShiftStatus:  # noqa: ANN401
    """Return the ShiftStatus named by value."""
    try:
        return ShiftStatus(value)
    except ValueError:
        valid = ", ".join(status.value for status in ShiftStatus)
        _msg = f"Invalid shift status: {value}. Valid values: {valid}"
        raise ValidationError(_msg) from None


def list_shifts(session: Session | scoped_session) -> list[Shift]:
    """Return every shift ordered by start time."""
    return session.query(Shift).order_by(Shift.start_time, Shift.id).all()


def list_user_shifts(session: Session | scoped_session, user: User) -> list[Shift]:
    """Return the shifts owned by a user ordered by start time."""
    return (
        session.query(Shift)
        .filter(Shift.user_id == user.id)
        .order_by(Shift.start_time, Shift.id)
        .all()
    )


def list_department_shifts(
    session: Session | scoped_session,
    department: str,
) -> list[Shift]:
    """Return the shifts of every user in a department ordered by start time."""
    return (
        session.query(Shift)
        .join(Shift.user)
        .filter(User.department == department)
        .order_by(Shift.start_time, Shift.id)
        .all()
    )


def get_shift(session: Session | scoped_session, shift_id: int, actor: User) -> Shift:
    """Return a shift visible to the actor: its owner or a manager."""
    shift = session.get(Shift, shift_id)
    if not shift:
        raise NotFoundError(MSG_NOT_FOUND)
    if shift.user_id != actor.id and not actor.is_manager:
        _msg = "Not authorized to view this shift"
        raise AuthorizationError(_msg)
    return shift


def create_shift(
    session: Session | scoped_session,
    user_id: int,
    start_time: Any,  # noqa: ANN401
    end_time: Any,  # noqa: ANN401
    notes: str | None = None,
) -> Shift:
    """Create a scheduled shift for a user."""
    if not session.get(User, user_id):
        _msg = "User not found"
        raise NotFoundError(_msg)

    start = parse_datetime(start_time, "startTime")
    end = parse_datetime(end_time, "endTime")
    _check_interval(start, end)

    shift = Shift(
        user_id=user_id,
        start_time=start,
        end_time=end,
        notes=notes or None,
        status=ShiftStatus.SCHEDULED,
    )
    with atomic(session):
        session.add(shift)
    logger.info("Shift %s created for user %s", shift.id, user_id)
    return shift


def update_shift(
    session: Session | scoped_session,
    shift_id: int,
    fields: dict[str, Any],
) -> Shift:
    """Update the times, status or notes of a shift.

    Keys other than UPDATABLE_FIELDS are ignored, as are empty values.
    """
    shift = session.get(Shift, shift_id)
    if not shift:
        raise NotFoundError(MSG_NOT_FOUND)

    changes = {key: fields[key] for key in UPDATABLE_FIELDS if fields.get(key)}

    start = (
        parse_datetime(changes["startTime"], "startTime")
        if "startTime" in changes
        else shift.start_time_utc
    )
    end = (
        parse_datetime(changes["endTime"], "endTime")
        if "endTime" in changes
        else shift.end_time_utc
    )
    _check_interval(start, end)
    status = parse_status(changes["status"]) if "status" in changes else shift.status

    with atomic(session):
        shift.start_time = start
        shift.end_time = end
        shift.status = status
        if "notes" in changes:
            shift.notes = changes["notes"]

    logger.info("Shift %s updated: %s", shift_id, ", ".join(changes) or "nothing")
    return shift


def delete_shift(session: Session | scoped_session, shift_id: int) -> None:
    """Delete a shift and the exchanges that reference it."""
    shift = session.get(Shift, shift_id)
    if not shift:
        raise NotFoundError(MSG_NOT_FOUND)

    with atomic(session):
        n_exchanges = (
            session.query(ShiftExchange)
            .filter(
                (ShiftExchange.requesting_shift_id == shift_id)
                | (ShiftExchange.requested_shift_id == shift_id),
            )
            .delete(synchronize_session="fetch")
        )
        session.delete(shift)

    logger.info("Shift %s deleted along with %s exchanges", shift_id, n_exchanges)
