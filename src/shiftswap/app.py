"""Flask App for exchanging shifts."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from flask import Flask, jsonify, session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from . import configure_timezone
from .config import Config, load_key
from .database import db
from .errors import ShiftSwapError
from .firebase import init_firebase
from .routes import register_routes

if TYPE_CHECKING:  # pragma: no cover
    from flask import Response

LOGFILE = "logs/shiftswap.log"
SQLLOGFILE = "logs/shiftswap-sql.log"
LOGFORMAT = "%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"

logger = logging.getLogger(__name__)


def configure_logging(
    log_level: int = Config.LOG_LEVEL,
    *,
    enable_logging: bool = Config.ENABLE_LOGGING,
) -> None:
    """Configure logging based on the environment variables.

    LOG_LEVEL sets the level. ENABLE_LOGGING forces logs to be written
    to a file, and a log_level of at least INFO.
    """
    env_log_level = os.getenv("LOG_LEVEL")
    if env_log_level:
        level = logging.getLevelName(env_log_level.strip().upper())
        if isinstance(level, int):
            log_level = level
        else:
            logging.getLogger().warning("Unknown LOG_LEVEL %s ignored", env_log_level)

    env_enable_logging = os.getenv("ENABLE_LOGGING")
    if env_enable_logging:
        enable_logging = env_enable_logging.lower() in ["true", "1", "t"]
        if log_level > logging.INFO:
            log_level = logging.INFO

    logging.getLogger().debug("Setting log level to %s", log_level)

    if not enable_logging:
        return

    logs_dir = Path(LOGFILE).parent
    logs_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOGFORMAT)
    file_handler = logging.FileHandler(LOGFILE)
    file_handler.setFormatter(formatter)
    file_handler.setLevel(log_level)
    sql_file_handler = logging.FileHandler(SQLLOGFILE)
    sql_file_handler.setFormatter(formatter)
    sql_file_handler.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)

    package_logger = logging.getLogger("shiftswap")
    package_logger.addHandler(file_handler)
    package_logger.addHandler(console_handler)
    package_logger.setLevel(log_level)
    package_logger.info("Shiftswap startup")

    sqllogger = logging.getLogger("sqlalchemy.engine")
    sqllogger.setLevel(logging.INFO)
    sqllogger.addHandler(sql_file_handler)


def check_db_connection() -> None | tuple[Response, int]:
    """Check if a database connection can be established."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Error connecting to the database.")
        return jsonify({"msg": "Database unavailable"}), 500
    else:
        return None


def register_error_handlers(app: Flask) -> None:
    """Render every error as a JSON body with a msg key."""

    @app.errorhandler(ShiftSwapError)
    def handle_shiftswap_error(e: ShiftSwapError) -> tuple[Response, int]:
        logger.warning("%s: %s", type(e).__name__, e.msg)
        return jsonify({"msg": e.msg}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException) -> tuple[Response, int]:
        return jsonify({"msg": e.description}), e.code or 500

    @app.errorhandler(Exception)
    def handle_exception(_e: Exception) -> tuple[Response, int]:
        logger.exception("Unexpected error")
        return jsonify({"msg": "Server error"}), 500


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    """Create the Flask app."""
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.from_prefixed_env()
    if test_config:
        app.config.update(test_config)
    if not app.config.get("SECRET_KEY"):
        app.config["SECRET_KEY"] = load_key()

    configure_logging()
    configure_timezone()

    app.logger.info("DB_URI: %s", app.config["SQLALCHEMY_DATABASE_URI"])

    db.init_app(app)
    with app.app_context():
        try:
            db.init_db()
        except SQLAlchemyError:
            app.logger.exception("Error initializing the database.")
            sys.exit(1)

    if not app.config["TESTING"]:
        init_firebase()
    register_routes(app)
    register_error_handlers(app)

    app.before_request(check_db_connection)

    @app.before_request
    def make_session_permanent() -> None:
        session.permanent = True

    return app


if __name__ == "__main__":  # pragma: no cover
    app = create_app()
    app.run(debug=app.config["DEBUG"], port=app.config["PORT"], host=app.config["HOST"])
