"""Tests for the shifts module and its routes."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

import pytest
import pytz
from shiftswap import configure_timezone
from shiftswap.database import db
from shiftswap.errors import NotFoundError, ValidationError
from shiftswap.exchanges import request_exchange
from shiftswap.models import Role, Shift, ShiftExchange, ShiftStatus
from shiftswap.shifts import (
    create_shift,
    delete_shift,
    list_department_shifts,
    parse_datetime,
    update_shift,
)

if TYPE_CHECKING:
    from flask.testing import FlaskClient
    from shiftswap.models import User
    from sqlalchemy.orm import scoped_session


def test_parse_datetime_utc() -> None:
    """A trailing Z is UTC."""
    parsed = parse_datetime("2030-01-15T08:00:00Z", "startTime")
    assert parsed == datetime(2030, 1, 15, 8, 0, tzinfo=pytz.utc)


def test_parse_datetime_offset() -> None:
    """Explicit offsets are converted to UTC."""
    parsed = parse_datetime("2030-01-15T08:00:00+02:00", "startTime")
    assert parsed == datetime(2030, 1, 15, 6, 0, tzinfo=pytz.utc)


def test_parse_datetime_naive_uses_app_timezone() -> None:
    """Naive timestamps are local to the application timezone."""
    configure_timezone("Europe/Madrid")
    try:
        parsed = parse_datetime("2030-01-15T08:00:00", "startTime")
    finally:
        configure_timezone("UTC")
    assert parsed == datetime(2030, 1, 15, 7, 0, tzinfo=pytz.utc)


@pytest.mark.parametrize("value", [None, "", "tomorrow", 42])
def test_parse_datetime_invalid(value: object) -> None:
    """Missing or unparseable values are validation failures."""
    with pytest.raises(ValidationError, match="startTime"):
        parse_datetime(value, "startTime")


def test_create_shift(session: scoped_session, employee_x: User) -> None:
    """New shifts are scheduled and stored in UTC."""
    shift = create_shift(
        session,
        employee_x.id,
        "2030-01-15T08:00:00Z",
        "2030-01-15T16:00:00Z",
        "Front desk",
    )
    assert shift.status is ShiftStatus.SCHEDULED
    assert shift.duration == 8
    assert shift.to_dict()["startTime"] == "2030-01-15T08:00:00+00:00"


def test_create_shift_for_unknown_user(session: scoped_session) -> None:
    """The owner must exist."""
    with pytest.raises(NotFoundError, match="User not found"):
        create_shift(session, 77, "2030-01-15T08:00:00Z", "2030-01-15T16:00:00Z")


def test_create_shift_ending_before_start(
    session: scoped_session,
    employee_x: User,
) -> None:
    """A shift must end after it starts."""
    with pytest.raises(ValidationError, match="end after it starts"):
        create_shift(
            session,
            employee_x.id,
            "2030-01-15T16:00:00Z",
            "2030-01-15T08:00:00Z",
        )


def test_update_shift(
    session: scoped_session,
    make_shift: Callable[..., Shift],
    employee_x: User,
) -> None:
    """Status and notes change, the owner stays."""
    shift = make_shift(employee_x, days=3)
    updated = update_shift(
        session,
        shift.id,
        {"status": "completed", "notes": "Done", "user": 99},
    )
    assert updated.status is ShiftStatus.COMPLETED
    assert updated.notes == "Done"
    assert updated.user_id == employee_x.id


def test_update_shift_invalid_status(
    session: scoped_session,
    make_shift: Callable[..., Shift],
    employee_x: User,
) -> None:
    """Only known statuses are accepted."""
    shift = make_shift(employee_x, days=3)
    with pytest.raises(ValidationError, match="Invalid shift status"):
        update_shift(session, shift.id, {"status": "paused"})


def test_update_shift_keeps_interval_valid(
    session: scoped_session,
    make_shift: Callable[..., Shift],
    employee_x: User,
) -> None:
    """Moving the end before the start is refused."""
    shift = make_shift(employee_x, days=3)
    too_early = shift.start_time_utc - timedelta(hours=1)
    with pytest.raises(ValidationError):
        update_shift(session, shift.id, {"endTime": too_early.isoformat()})


def test_delete_shift_removes_its_exchanges(  # noqa: PLR0913
    session: scoped_session,
    make_shift: Callable[..., Shift],
    employee_x: User,
    employee_y: User,
    now: datetime,
) -> None:
    """Exchanges pointing at a deleted shift go with it."""
    s1 = make_shift(employee_x, days=5)
    s2 = make_shift(employee_y, days=6)
    request_exchange(session, employee_x, employee_y.id, s1.id, s2.id, "x", now=now)

    delete_shift(session, s1.id)

    assert session.get(Shift, s1.id) is None
    assert session.get(Shift, s2.id) is not None
    assert session.query(ShiftExchange).count() == 0

    with pytest.raises(NotFoundError):
        delete_shift(session, s1.id)


def test_department_shifts(
    session: scoped_session,
    make_user: Callable[..., User],
    make_shift: Callable[..., Shift],
) -> None:
    """Only shifts of users in the department are listed, by start time."""
    ana = make_user("Ana", department="Kitchen")
    bea = make_user("Bea", department="Kitchen")
    carl = make_user("Carl", department="Bar")
    late = make_shift(ana, days=4)
    early = make_shift(bea, days=2)
    make_shift(carl, days=1)

    assert [s.id for s in list_department_shifts(session, "Kitchen")] == [
        early.id,
        late.id,
    ]


def test_manager_creates_shift_over_http(
    client: FlaskClient,
    login: Callable[[User], None],
    manager: User,
    employee_x: User,
) -> None:
    """POST /api/shifts creates a shift for a user."""
    login(manager)
    response = client.post(
        "/api/shifts",
        json={
            "user": employee_x.id,
            "startTime": "2030-01-15T08:00:00Z",
            "endTime": "2030-01-15T14:00:00Z",
        },
    )
    assert response.status_code == 200
    data = response.get_json()
    assert data["user"] == employee_x.id
    assert data["status"] == "scheduled"
    assert data["duration"] == 6


def test_employee_cannot_create_shift(
    client: FlaskClient,
    login: Callable[[User], None],
    employee_x: User,
) -> None:
    """Creating shifts is for managers."""
    login(employee_x)
    response = client.post("/api/shifts", json={"user": employee_x.id})
    assert response.status_code == 403


def test_shift_visibility(  # noqa: PLR0913
    client: FlaskClient,
    login: Callable[[User], None],
    make_shift: Callable[..., Shift],
    employee_x: User,
    employee_y: User,
    manager: User,
) -> None:
    """Owners and managers see a shift, other employees do not."""
    shift = make_shift(employee_x, days=2)

    login(employee_x)
    assert client.get(f"/api/shifts/{shift.id}").status_code == 200
    assert [s["id"] for s in client.get("/api/shifts/me").get_json()] == [shift.id]

    login(employee_y)
    response = client.get(f"/api/shifts/{shift.id}")
    assert response.status_code == 403
    assert response.get_json() == {"msg": "Not authorized to view this shift"}

    login(manager)
    response = client.get("/api/shifts")
    assert response.get_json()[0]["user"]["name"] == "Xavier"
    response = client.get("/api/shifts/department/Operations")
    assert [s["id"] for s in response.get_json()] == [shift.id]


def test_update_and_delete_over_http(
    client: FlaskClient,
    login: Callable[[User], None],
    make_shift: Callable[..., Shift],
    employee_x: User,
    manager: User,
) -> None:
    """PUT and DELETE /api/shifts/<id>."""
    shift = make_shift(employee_x, days=2)
    login(manager)

    response = client.put(f"/api/shifts/{shift.id}", json={"status": "cancelled"})
    assert response.status_code == 200
    assert response.get_json()["status"] == "cancelled"

    response = client.delete(f"/api/shifts/{shift.id}")
    assert response.status_code == 200
    assert response.get_json() == {"msg": "Shift removed"}
    assert db.session.get(Shift, shift.id) is None

    response = client.delete(f"/api/shifts/{shift.id}")
    assert response.status_code == 404


def test_role_property(make_user: Callable[..., User]) -> None:
    """Managers and admins hold the manager capability, only admins the admin one."""
    employee = make_user("Eva")
    manager = make_user("Mario", role=Role.MANAGER)
    admin = make_user("Alba", role=Role.ADMIN)
    assert [u.is_manager for u in (employee, manager, admin)] == [False, True, True]
    assert [u.is_admin for u in (employee, manager, admin)] == [False, False, True]


def test_shift_notes_must_be_text(
    client: FlaskClient,
    login: Callable[[User], None],
    make_shift: Callable[..., Shift],
    employee_x: User,
    manager: User,
) -> None:
    """Notes that are not a string are refused before touching the shift."""
    shift = make_shift(employee_x, days=2)
    login(manager)

    response = client.put(f"/api/shifts/{shift.id}", json={"notes": {"a": 1}})
    assert response.status_code == 400
    assert response.get_json() == {"msg": "notes must be a string"}

    response = client.post(
        "/api/shifts",
        json={
            "user": employee_x.id,
            "startTime": "2030-01-15T08:00:00Z",
            "endTime": "2030-01-15T14:00:00Z",
            "notes": 7,
        },
    )
    assert response.status_code == 400
