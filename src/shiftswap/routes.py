"""REST routes for the Shiftswap app."""

from __future__ import annotations

import contextlib
from datetime import timedelta
from functools import wraps
from logging import getLogger
from typing import TYPE_CHECKING, Any, Callable

from flask import Blueprint, current_app, g, jsonify, request, session

from . import exchanges, shifts, users
from .database import db
from .errors import ValidationError
from .exchanges import ExchangeAction
from .firebase import invalidate_token, sign_in_provider, verify_id_token
from .models import User

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask, Response

logger = getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

USER_ID = "user_id"
FIREBASE_UID = "firebase_uid"


def current_user() -> User | None:
    """Return the signed in user, if any."""
    user_id = session.get(USER_ID)
    if not user_id:
        return None
    return db.session.get(User, user_id)


def _unauthenticated() -> tuple[Response, int]:
    return jsonify({"msg": "No session, authorization denied"}), 401


def login_required(f: Callable) -> Callable:
    """Decorate a route so that only signed in users reach it."""

    @wraps(f)
    def decorated_function(*args, **kwargs) -> Any:  # noqa: ANN002, ANN003, ANN401
        user = current_user()
        if not user:
            return _unauthenticated()
        g.user = user
        return f(*args, **kwargs)

    return decorated_function


def manager_required(f: Callable) -> Callable:
    """Decorate a route so that only managers and admins reach it."""

    @wraps(f)
    def decorated_function(*args, **kwargs) -> Any:  # noqa: ANN002, ANN003, ANN401
        user = current_user()
        if not user:
            return _unauthenticated()
        if not user.is_manager:
            logger.warning("User %s denied manager access to %s", user.email, request.path)
            return jsonify({"msg": "Access denied. Manager privileges required."}), 403
        g.user = user
        return f(*args, **kwargs)

    return decorated_function


def admin_required(f: Callable) -> Callable:
    """Decorate a route so that only admins reach it."""

    @wraps(f)
    def decorated_function(*args, **kwargs) -> Any:  # noqa: ANN002, ANN003, ANN401
        user = current_user()
        if not user:
            return _unauthenticated()
        if not user.is_admin:
            logger.warning("User %s denied admin access to %s", user.email, request.path)
            return jsonify({"msg": "Access denied. Admin privileges required."}), 403
        g.user = user
        return f(*args, **kwargs)

    return decorated_function


def _json_body() -> dict[str, Any]:
    """Return the JSON object in the request body, or an empty dict."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        _msg = "Request body must be a JSON object"
        raise ValidationError(_msg)
    return data


def _id_field(data: dict[str, Any], key: str) -> int:
    """Return the record id under key. Ids may come as numbers or strings."""
    value = data.get(key)
    if value is None or value == "":
        _msg = f"{key} is required"
        raise ValidationError(_msg)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        _msg = f"Invalid id for {key}: {value}"
        raise ValidationError(_msg)
    try:
        return int(value)
    except (TypeError, ValueError):
        _msg = f"Invalid id for {key}: {value}"
        raise ValidationError(_msg) from None


def _text_field(data: dict[str, Any], key: str) -> str | None:
    """Return the free text under key, or None when it is missing."""
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        _msg = f"{key} must be a string"
        raise ValidationError(_msg)
    return value


def rotate_session_id() -> None:
    """Rotate the session for the current user.

    Protects against session fixation after signing in.
    """
    old_session = dict(session)
    session.clear()
    session.update(old_session)


# Users


@api.route("/users/auth", methods=["POST"])
def auth() -> Response | tuple[Response, int]:
    """Sign in with a Firebase ID token, creating the user on first sign in."""
    data = _json_body()
    id_token = data.get("idToken") or request.form.get("idToken")
    if not id_token:
        return jsonify({"msg": "idToken is required"}), 400

    try:
        firebase_data = verify_id_token(id_token)
    except ValueError:
        return jsonify({"msg": "Authentication failed"}), 401

    user = users.sign_in(
        db.session,
        email=firebase_data.get("email", ""),
        name=firebase_data.get("name"),
        auth_provider=sign_in_provider(firebase_data),
        auth_id=firebase_data.get("uid"),
    )
    session[USER_ID] = user.id
    session[FIREBASE_UID] = firebase_data.get("uid")
    rotate_session_id()
    return jsonify({"user": user.to_dict()})


@api.route("/users/logout", methods=["POST"])
def logout() -> Response:
    """Sign out and revoke the Firebase refresh tokens."""
    firebase_uid = session.get(FIREBASE_UID)
    if firebase_uid:
        with contextlib.suppress(ValueError):
            invalidate_token(firebase_uid)
    session.clear()
    return jsonify({"msg": "Signed out"})


@api.route("/users/me")
@login_required
def get_me() -> Response:
    """Return the signed in user."""
    return jsonify(g.user.to_dict())


@api.route("/users")
@admin_required
def get_users() -> Response:
    """Return every user."""
    return jsonify([user.to_dict() for user in users.list_users(db.session)])


@api.route("/users/<int:user_id>")
@admin_required
def get_user(user_id: int) -> Response:
    """Return one user."""
    return jsonify(users.get_user(db.session, user_id).to_dict())


@api.route("/users/<int:user_id>", methods=["PUT"])
@admin_required
def update_user(user_id: int) -> Response:
    """Update the name, email, role or department of a user."""
    data = _json_body()
    for key in ("name", "email", "department"):
        _text_field(data, key)
    user = users.update_user(db.session, user_id, data)
    return jsonify(user.to_dict())


# Shifts


@api.route("/shifts")
@manager_required
def get_shifts() -> Response:
    """Return every shift with its owner."""
    return jsonify(
        [shift.to_dict(include_user=True) for shift in shifts.list_shifts(db.session)],
    )


@api.route("/shifts/me")
@login_required
def get_my_shifts() -> Response:
    """Return the shifts of the signed in user."""
    return jsonify(
        [shift.to_dict() for shift in shifts.list_user_shifts(db.session, g.user)],
    )


@api.route("/shifts/department/<department>")
@manager_required
def get_department_shifts(department: str) -> Response:
    """Return the shifts of a department with their owners."""
    return jsonify(
        [
            shift.to_dict(include_user=True)
            for shift in shifts.list_department_shifts(db.session, department)
        ],
    )


@api.route("/shifts/<int:shift_id>")
@login_required
def get_shift(shift_id: int) -> Response:
    """Return one shift to its owner or a manager."""
    shift = shifts.get_shift(db.session, shift_id, g.user)
    return jsonify(shift.to_dict(include_user=True))


@api.route("/shifts", methods=["POST"])
@manager_required
def create_shift() -> Response:
    """Create a shift."""
    data = _json_body()
    shift = shifts.create_shift(
        db.session,
        _id_field(data, "user"),
        data.get("startTime"),
        data.get("endTime"),
        _text_field(data, "notes"),
    )
    return jsonify(shift.to_dict())


@api.route("/shifts/<int:shift_id>", methods=["PUT"])
@manager_required
def update_shift(shift_id: int) -> Response:
    """Update the times, status or notes of a shift."""
    data = _json_body()
    _text_field(data, "notes")
    shift = shifts.update_shift(db.session, shift_id, data)
    return jsonify(shift.to_dict())


@api.route("/shifts/<int:shift_id>", methods=["DELETE"])
@manager_required
def delete_shift(shift_id: int) -> Response:
    """Delete a shift."""
    shifts.delete_shift(db.session, shift_id)
    return jsonify({"msg": "Shift removed"})


# Shift exchanges


@api.route("/shift-exchanges")
@manager_required
def get_exchanges() -> Response:
    """Return every shift exchange."""
    return jsonify(
        [exchange.to_dict() for exchange in exchanges.list_exchanges(db.session)],
    )


@api.route("/shift-exchanges/me")
@login_required
def get_my_exchanges() -> Response:
    """Return the exchanges the signed in user takes part in."""
    return jsonify(
        [
            exchange.to_dict()
            for exchange in exchanges.list_user_exchanges(db.session, g.user)
        ],
    )


@api.route("/shift-exchanges/pending")
@manager_required
def get_pending_exchanges() -> Response:
    """Return the exchanges waiting for a manager."""
    return jsonify(
        [
            exchange.to_dict()
            for exchange in exchanges.list_pending_exchanges(db.session)
        ],
    )


@api.route("/shift-exchanges/<int:exchange_id>")
@login_required
def get_exchange(exchange_id: int) -> Response:
    """Return one exchange to its parties or a manager."""
    exchange = exchanges.get_exchange(db.session, exchange_id, g.user)
    return jsonify(exchange.to_dict())


@api.route("/shift-exchanges", methods=["POST"])
@login_required
def request_exchange() -> Response:
    """Request to swap one of the signed in user's shifts with a colleague's."""
    data = _json_body()
    min_notice = timedelta(hours=current_app.config["EXCHANGE_MIN_NOTICE_HOURS"])
    exchange = exchanges.request_exchange(
        db.session,
        g.user,
        requested_user_id=_id_field(data, "requestedUser"),
        requesting_shift_id=_id_field(data, "requestingShift"),
        requested_shift_id=_id_field(data, "requestedShift"),
        reason=_text_field(data, "reason"),
        min_notice=min_notice,
    )
    return jsonify(exchange.to_dict())


@api.route("/shift-exchanges/<int:exchange_id>/approve", methods=["PUT"])
@manager_required
def approve_exchange(exchange_id: int) -> Response:
    """Approve a pending exchange, swapping the owners of its shifts."""
    exchange = exchanges.resolve_exchange(
        db.session,
        exchange_id,
        g.user,
        ExchangeAction.APPROVE,
        _text_field(_json_body(), "responseReason"),
    )
    return jsonify(exchange.to_dict())


@api.route("/shift-exchanges/<int:exchange_id>/reject", methods=["PUT"])
@manager_required
def reject_exchange(exchange_id: int) -> Response:
    """Reject a pending exchange. A response reason is required."""
    exchange = exchanges.resolve_exchange(
        db.session,
        exchange_id,
        g.user,
        ExchangeAction.REJECT,
        _text_field(_json_body(), "responseReason"),
    )
    return jsonify(exchange.to_dict())


@api.route("/shift-exchanges/<int:exchange_id>", methods=["DELETE"])
@login_required
def delete_exchange(exchange_id: int) -> Response:
    """Delete an exchange."""
    exchanges.delete_exchange(db.session, exchange_id, g.user)
    return jsonify({"msg": "Shift exchange removed"})


def register_routes(app: Flask) -> Blueprint:
    """Register the routes with the app."""
    app.register_blueprint(api)
    return api
