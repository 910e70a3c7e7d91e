"""Database models for the application."""

from __future__ import annotations

from datetime import datetime  # noqa: TCH003. Needed by the mapping.
from enum import Enum
from typing import Any

import pytz
from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.decl_api import DeclarativeBase
from sqlalchemy.schema import MetaData

from . import utcnow

# Naming conventions for migrations
naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=naming_convention)

UTC = pytz.utc

DEFAULT_DEPARTMENT = "Unassigned"


class Role(Enum):
    """Role of a user. Governs which actions the user may perform."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class ShiftStatus(Enum):
    """Lifecycle of a shift."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExchangeStatus(Enum):
    """Lifecycle of a shift exchange. Pending moves once to a terminal state."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _enum_column(enum_class: type[Enum]) -> SAEnum:
    """Store enums by value in a portable VARCHAR column."""
    return SAEnum(
        enum_class,
        native_enum=False,
        length=20,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


def as_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime.

    Neither SQLite nor MariaDB keep the timezone, so naive values
    coming back from the database are taken as UTC.
    """
    if value.tzinfo is None:
        return UTC.localize(value)
    return value.astimezone(UTC)


def _isoformat(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


# Define a base using the declarative base
class Base(DeclarativeBase):
    """Base class for declarative models."""

    metadata = metadata


class User(Base):
    """Modelo de la tabla users.

    Users are created on their first sign in and never hard deleted.
    """

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_department", "department"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    email: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    role: Mapped[Role] = mapped_column(
        _enum_column(Role),
        nullable=False,
        default=Role.EMPLOYEE,
    )
    department: Mapped[str] = mapped_column(
        String(80),
        nullable=False,
        default=DEFAULT_DEPARTMENT,
    )
    auth_provider: Mapped[str | None] = mapped_column(String(40), nullable=True)
    """google, microsoft, password... as reported by Firebase."""
    auth_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    """Firebase uid. Never serialised."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    shifts: Mapped[list[Shift]] = relationship("Shift", back_populates="user")

    @property
    def is_manager(self) -> bool:
        """Managers and admins may manage shifts and resolve exchanges."""
        return self.role in (Role.MANAGER, Role.ADMIN)

    @property
    def is_admin(self) -> bool:
        """Only admins may manage users."""
        return self.role is Role.ADMIN

    def summary(self) -> dict[str, Any]:
        """Short representation embedded in shifts and exchanges."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "department": self.department,
            "role": self.role.value,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialise the user for the API."""
        data = self.summary()
        data["authProvider"] = self.auth_provider
        data["createdAt"] = _isoformat(self.created_at)
        return data

    def __repr__(self) -> str:
        """Representación de un usuario."""
        return f"<User {self.email} {self.role.value}>"


class Shift(Base):
    """Modelo de la tabla shifts.

    A scheduled work interval owned by exactly one user at any time.
    An approved exchange reassigns ``user_id``; nothing else in the
    exchange workflow touches a shift.
    """

    __tablename__ = "shifts"
    __table_args__ = (Index("idx_shifts_user_start", "user_id", "start_time"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
    )
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    """Stored in UTC. Use start_time_utc to read it back."""
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """Stored in UTC. Use end_time_utc to read it back."""
    status: Mapped[ShiftStatus] = mapped_column(
        _enum_column(ShiftStatus),
        nullable=False,
        default=ShiftStatus.SCHEDULED,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    user: Mapped[User] = relationship("User", back_populates="shifts")

    @property
    def start_time_utc(self) -> datetime:
        """Start of the shift in UTC."""
        return as_utc(self.start_time)

    @property
    def end_time_utc(self) -> datetime:
        """End of the shift in UTC."""
        return as_utc(self.end_time)

    @property
    def duration(self) -> float:
        """Duration of the shift in hours."""
        return (self.end_time_utc - self.start_time_utc).total_seconds() / 3600

    def to_dict(self, *, include_user: bool = False) -> dict[str, Any]:
        """Serialise the shift.

        With include_user the owner is embedded as a summary,
        otherwise only its id is given.
        """
        return {
            "id": self.id,
            "user": self.user.summary() if include_user else self.user_id,
            "startTime": _isoformat(self.start_time),
            "endTime": _isoformat(self.end_time),
            "status": self.status.value,
            "notes": self.notes,
            "duration": self.duration,
            "createdAt": _isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        """Representación de un turno."""
        return f"<Shift {self.id} user={self.user_id} {self.start_time_utc:%Y-%m-%d %H:%M}>"


class ShiftExchange(Base):
    """Modelo de la tabla shift_exchanges.

    A request to swap the owners of two shifts. Created pending and
    resolved once, to approved or rejected.
    """

    __tablename__ = "shift_exchanges"
    __table_args__ = (
        Index("idx_shift_exchanges_status", "status"),
        Index("idx_shift_exchanges_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    requesting_user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
    )
    requested_user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
    )
    requesting_shift_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
    )
    requested_shift_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("shifts.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[ExchangeStatus] = mapped_column(
        _enum_column(ExchangeStatus),
        nullable=False,
        default=ExchangeStatus.PENDING,
    )
    approved_by_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=True,
    )
    """Manager who resolved the exchange, whatever the outcome."""
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    response_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    requesting_user: Mapped[User] = relationship(
        "User",
        foreign_keys=[requesting_user_id],
    )
    requested_user: Mapped[User] = relationship(
        "User",
        foreign_keys=[requested_user_id],
    )
    requesting_shift: Mapped[Shift] = relationship(
        "Shift",
        foreign_keys=[requesting_shift_id],
    )
    requested_shift: Mapped[Shift] = relationship(
        "Shift",
        foreign_keys=[requested_shift_id],
    )
    approved_by: Mapped[User | None] = relationship(
        "User",
        foreign_keys=[approved_by_id],
    )

    @property
    def is_pending(self) -> bool:
        """Whether the exchange can still be resolved."""
        return self.status is ExchangeStatus.PENDING

    def involves(self, user: User) -> bool:
        """Whether the user is one of the two parties."""
        return user.id in (self.requesting_user_id, self.requested_user_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the exchange with its parties and shifts embedded."""
        return {
            "id": self.id,
            "requestingUser": self.requesting_user.summary(),
            "requestedUser": self.requested_user.summary(),
            "requestingShift": self.requesting_shift.to_dict(),
            "requestedShift": self.requested_shift.to_dict(),
            "status": self.status.value,
            "approvedBy": self.approved_by.summary() if self.approved_by else None,
            "reason": self.reason,
            "responseReason": self.response_reason,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        """Representación de un intercambio."""
        return (
            f"<ShiftExchange {self.id} {self.status.value}"
            f" {self.requesting_shift_id}<->{self.requested_shift_id}>"
        )
