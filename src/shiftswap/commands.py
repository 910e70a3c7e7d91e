"""Export and import users of the database."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import click
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .models import DEFAULT_DEPARTMENT, Base, Role, User
from .users import find_user

if TYPE_CHECKING:
    from sqlalchemy.orm.session import Session

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
log_handler = logging.StreamHandler()
logger.addHandler(log_handler)

ATTR_NAME = "name"
ATTR_EMAIL = "email"
ATTR_ROLE = "role"
ATTR_DEPARTMENT = "department"

verbose_option = click.option(
    "-v",
    "--verbose",
    count=True,
    default=0,
    help="-v for DEBUG, -vv to also log SQL",
)


@click.group()
def cli() -> None:
    """Export and import users."""


def get_session(db_uri: str) -> Session:
    """Return a SQLAlchemy session for db_uri."""
    engine = create_engine(db_uri)
    session_factory = sessionmaker(bind=engine)
    return session_factory()


def set_verbose_level(verbose: int) -> None:
    """Set the verbosity of the logger."""
    if verbose == 1:
        logger.setLevel(logging.DEBUG)
    elif verbose > 1:
        logger.setLevel(logging.DEBUG)
        sqllogger = logging.getLogger("sqlalchemy.engine")
        sqllogger.setLevel(logging.INFO)
        sqllogger.addHandler(log_handler)
    else:
        logger.setLevel(logging.INFO)


@click.command("export-users")
@click.argument("output_file", type=click.File("w"))
@click.argument("db_uri", type=str)
@verbose_option
def export_users(verbose: int, output_file: click.File, db_uri: str) -> None:
    """Export users to a JSON file."""
    set_verbose_level(verbose)
    session = get_session(db_uri)

    users = session.query(User).order_by(User.email).all()
    user_list = [
        {
            ATTR_NAME: user.name,
            ATTR_EMAIL: user.email,
            ATTR_ROLE: user.role.value,
            ATTR_DEPARTMENT: user.department,
        }
        for user in users
    ]

    json.dump(user_list, output_file, ensure_ascii=False, indent=4)  # type: ignore[arg-type]
    click.echo(f"Exported {len(user_list)} users to {output_file.name}")


@click.command("import-users")
@click.argument("input_file", type=click.File("r"))
@click.argument("db_uri", type=str)
@verbose_option
def import_users(verbose: int, input_file: click.File, db_uri: str) -> None:
    """Import users from a JSON file into the database.

    Users are matched by email, ignoring case. Missing users are
    created, existing ones get their name, role and department updated.
    """
    set_verbose_level(verbose)
    data = json.load(input_file)  # type: ignore[arg-type]

    session = get_session(db_uri)
    Base.metadata.create_all(bind=session.get_bind())

    n_added, n_reviewed, n_edited = 0, 0, 0

    for item in data:
        email = item[ATTR_EMAIL].strip().lower()
        try:
            role = Role(item[ATTR_ROLE])
        except ValueError:
            logger.warning("Invalid role %s for %s. Skipped.", item[ATTR_ROLE], email)
            continue

        user = find_user(email, session)
        if not user:
            logger.info("Creating user %s", email)
            user = User(
                name=item[ATTR_NAME],
                email=email,
                role=role,
                department=item.get(ATTR_DEPARTMENT, DEFAULT_DEPARTMENT),
            )
            session.add(user)
            logger.debug("User %s added", email)
            n_added += 1
            continue

        logger.debug("Reviewing user %s", email)
        user.name = item[ATTR_NAME]
        user.role = role
        user.department = item.get(ATTR_DEPARTMENT, user.department)
        n_reviewed += 1
        if session.is_modified(user):
            n_edited += 1
            logger.debug("User %s edited", email)
        else:
            logger.debug("User %s not modified", email)

    session.commit()
    click.echo(f"Added: {n_added}, Reviewed: {n_reviewed}, Edited: {n_edited}")


cli.add_command(export_users)
cli.add_command(import_users)

if __name__ == "__main__":
    cli()
