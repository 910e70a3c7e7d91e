"""Configuration for pytest."""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Generator

import pytest
import pytz
from shiftswap.app import create_app
from shiftswap.database import db as _db
from shiftswap.models import Role, Shift, User

if TYPE_CHECKING:
    from flask import Flask
    from flask.testing import FlaskClient
    from pytest_mock import MockerFixture
    from shiftswap.database import DB
    from sqlalchemy.orm import scoped_session

NOW = datetime.now(tz=pytz.utc).replace(microsecond=0)
"""Current time, fixed for the whole test session."""


@pytest.fixture(scope="session", autouse=True)
def _set_env() -> None:
    """Use an in-memory database and quiet logging."""
    os.environ["FLASK_SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
    os.environ.pop("ENABLE_LOGGING", None)


@pytest.fixture(scope="session")
def app() -> Flask:
    """Create and configure a new app instance."""
    return create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "testing",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        },
    )


@pytest.fixture()
def db(app: Flask) -> Generator[DB, None, None]:
    """Provide a database with empty tables for each test."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def session(db: DB) -> scoped_session:
    """Return the database session."""
    return db.session


@pytest.fixture()
def client(app: Flask, db: DB) -> FlaskClient:
    """Create a test client for the app."""
    return app.test_client()


@pytest.fixture()
def make_user(session: scoped_session) -> Callable[..., User]:
    """Return a factory of users."""

    def _make_user(
        name: str,
        role: Role = Role.EMPLOYEE,
        department: str = "Operations",
    ) -> User:
        user = User(
            name=name,
            email=f"{name.lower()}@example.com",
            role=role,
            department=department,
        )
        session.add(user)
        session.commit()
        return user

    return _make_user


@pytest.fixture()
def make_shift(session: scoped_session) -> Callable[..., Shift]:
    """Return a factory of shifts starting some days after NOW."""

    def _make_shift(
        owner: User,
        days: float,
        hours: int = 8,
        start: datetime | None = None,
    ) -> Shift:
        start_time = start or NOW + timedelta(days=days)
        shift = Shift(
            user_id=owner.id,
            start_time=start_time,
            end_time=start_time + timedelta(hours=hours),
        )
        session.add(shift)
        session.commit()
        return shift

    return _make_shift


@pytest.fixture()
def employee_x(make_user: Callable[..., User]) -> User:
    """Employee who requests exchanges."""
    return make_user("Xavier")


@pytest.fixture()
def employee_y(make_user: Callable[..., User]) -> User:
    """Employee with the same role as employee_x."""
    return make_user("Yolanda")


@pytest.fixture()
def manager(make_user: Callable[..., User]) -> User:
    """Manager who resolves exchanges."""
    return make_user("Marta", role=Role.MANAGER)


@pytest.fixture()
def admin_user(make_user: Callable[..., User]) -> User:
    """Administrator."""
    return make_user("Adela", role=Role.ADMIN)


@pytest.fixture()
def now() -> datetime:
    """Return the fixed current time of the service tests."""
    return NOW


@pytest.fixture()
def login(client: FlaskClient) -> Callable[[User], None]:
    """Return a function that signs a user into the test client."""

    def _login(user: User) -> None:
        with client.session_transaction() as sess:
            sess["user_id"] = user.id

    return _login


@pytest.fixture()
def _verify_id_token_mock(mocker: MockerFixture) -> None:
    """Mock the verify_id_token function from firebase."""
    mocker.patch(
        "shiftswap.firebase.auth.verify_id_token",
        return_value={
            "uid": "user_uid",
            "email": "xavier@example.com",
            "name": "Xavier",
            "firebase": {"sign_in_provider": "google.com"},
        },
    )
