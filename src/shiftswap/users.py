"""Utilities for working with users in the database."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Any

from .database import atomic
from .errors import NotFoundError, ValidationError
from .models import DEFAULT_DEPARTMENT, Role, User

if TYPE_CHECKING:  # pragma: no cover
    from sqlalchemy.orm import Session, scoped_session

logger = getLogger(__name__)

UPDATABLE_FIELDS = ("name", "email", "role", "department")


def parse_role(value: Any) -> Role:  # noqa: ANN401
    """Return the Role named by value."""
    try:
        return Role(value)
    except ValueError:
        valid = ", ".join(role.value for role in Role)
        _msg = f"Invalid role: {value}. Valid values: {valid}"
        raise ValidationError(_msg) from None


def find_user(email: str, db_session: Session | scoped_session) -> User | None:
    """Find a user in the database by email."""
    return db_session.query(User).filter(User.email == email.strip().lower()).first()


def sign_in(
    db_session: Session | scoped_session,
    email: str,
    name: str | None = None,
    auth_provider: str | None = None,
    auth_id: str | None = None,
) -> User:
    """Return the user for a verified identity, creating it on first sign in.

    If the users table is empty the first user becomes an admin.
    Otherwise new users start as employees in the default department.
    """
    if not email:
        _msg = "An email is required to sign in"
        raise ValidationError(_msg)

    user = find_user(email, db_session)
    with atomic(db_session):
        if user:
            user.auth_provider = auth_provider
            user.auth_id = auth_id
        else:
            first_user = db_session.query(User).first() is None
            if first_user:
                logger.info(
                    "No users in the database. %s becomes an administrator.",
                    email,
                )
            user = User(
                name=name or email.split("@")[0],
                email=email.strip().lower(),
                role=Role.ADMIN if first_user else Role.EMPLOYEE,
                department=DEFAULT_DEPARTMENT,
                auth_provider=auth_provider,
                auth_id=auth_id,
            )
            db_session.add(user)
            logger.debug("Creating new user: %s", user)

    logger.info("User %s signed in", user.email)
    return user


def list_users(db_session: Session | scoped_session) -> list[User]:
    """Return every user ordered by name."""
    return db_session.query(User).order_by(User.name, User.id).all()


def get_user(db_session: Session | scoped_session, user_id: int) -> User:
    """Return a user or raise NotFoundError."""
    user = db_session.get(User, user_id)
    if not user:
        _msg = "User not found"
        raise NotFoundError(_msg)
    return user


def update_user(
    db_session: Session | scoped_session,
    user_id: int,
    fields: dict[str, Any],
) -> User:
    """Update the name, email, role or department of a user.

    Keys other than UPDATABLE_FIELDS are ignored, as are empty values.
    """
    user = get_user(db_session, user_id)
    changes = {key: fields[key] for key in UPDATABLE_FIELDS if fields.get(key)}
    role = parse_role(changes["role"]) if "role" in changes else user.role

    if "email" in changes:
        email = str(changes["email"]).strip().lower()
        other = find_user(email, db_session)
        if other and other.id != user.id:
            _msg = "Email already in use"
            raise ValidationError(_msg)
        changes["email"] = email

    with atomic(db_session):
        user.role = role
        if "name" in changes:
            user.name = changes["name"]
        if "email" in changes:
            user.email = changes["email"]
        if "department" in changes:
            user.department = changes["department"]

    logger.info("User %s updated: %s", user.id, ", ".join(changes) or "nothing")
    return user
