"""Decouples the database initialization from flask app creation."""

from __future__ import annotations

from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .models import Base

if TYPE_CHECKING:
    from collections.abc import Iterator

    from flask import Flask
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session
    from sqlalchemy.schema import MetaData

logger = getLogger(__name__)


class DB:
    """Base de datos.

    Owns the engine and the scoped session. Flask-SQLAlchemy is not used
    because the models must work without a Flask app, so that the CLI
    commands and the service tests can run on a plain session.
    """

    app: Flask
    engine: Engine | None = None
    session_factory: sessionmaker
    session: scoped_session

    def init_app(self, app: Flask) -> None:
        """Initialize the database connection."""
        self.app = app

        if self.engine:
            logger.debug("Database already initialized. Ignored.")
            return

        self.engine = create_engine(
            app.config["SQLALCHEMY_DATABASE_URI"],
            echo=False,
        )
        # Routes serialise records after committing them.
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.session = scoped_session(self.session_factory)
        app.teardown_appcontext(self.shutdown_session)

    def shutdown_session(self, _exception: BaseException | None = None) -> None:
        """Remove the session after the request is finished."""
        self.session.remove()

    def create_all(self) -> None:
        """Create all tables."""
        logger.debug("Creating database tables.")
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """Drop all tables."""
        logger.debug("Dropping database tables.")
        Base.metadata.drop_all(bind=self.engine)

    def init_db(self) -> None:
        """Initialize the database."""
        if not self.engine:
            msg = "DB engine is not initialized."
            raise RuntimeError(msg)
        self.create_all()

    @property
    def metadata(self) -> MetaData:
        """Return the metadata."""
        return Base.metadata


@contextmanager
def atomic(session: Session | scoped_session) -> Iterator[Session | scoped_session]:
    """Run the enclosed writes as one unit of work.

    Commits when the block exits normally. Any exception rolls back
    every write made inside the block and propagates.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


db = DB()
