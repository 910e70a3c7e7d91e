"""Firebase Admin SDK initialization and ID token verification."""

from __future__ import annotations

import base64
import binascii
import contextlib
import json
import os
import sys
from logging import getLogger
from typing import Any

import firebase_admin  # type: ignore[import-untyped]
from firebase_admin import auth, credentials

logger = getLogger(__name__)

DEFAULT_CRED_FILE = "shiftswap.json"


def load_credentials() -> credentials.Certificate:
    """Build the service account credentials.

    FIREBASE_CRED_JSON, the service account JSON encoded in base64, takes
    precedence over the file named by FIREBASE_CRED_FILE.
    """
    encoded = os.getenv("FIREBASE_CRED_JSON")
    if encoded:
        try:
            info = json.loads(base64.b64decode(encoded, validate=True))
        except (binascii.Error, ValueError):
            _msg = "FIREBASE_CRED_JSON is not base64 encoded JSON"
            raise ValueError(_msg) from None
        return credentials.Certificate(info)
    return credentials.Certificate(os.getenv("FIREBASE_CRED_FILE", DEFAULT_CRED_FILE))


def init_firebase() -> firebase_admin.App:
    """Initialize the Firebase Admin SDK once per process.

    Exits when there are no usable credentials, since nobody could sign in.
    """
    with contextlib.suppress(ValueError):
        return firebase_admin.get_app()

    try:
        cred = load_credentials()
    except (OSError, ValueError):
        logger.exception("Cannot load the Firebase Admin SDK credentials")
        sys.exit(1)

    app = firebase_admin.initialize_app(cred)
    logger.info("Firebase Admin SDK initialized.")
    return app


def verify_id_token(id_token: str) -> dict[str, Any]:
    """Verify the Firebase ID token.

    Returns the decoded token if verification is successful.
    Raises ValueError otherwise.
    """
    try:
        decoded_token = auth.verify_id_token(id_token, clock_skew_seconds=2)
    except Exception:
        _msg = "Token verification failed"
        logger.exception(_msg)
        raise ValueError(_msg) from None
    else:
        return decoded_token


def sign_in_provider(decoded_token: dict[str, Any]) -> str | None:
    """Return the identity provider of a decoded token, e.g. google.com."""
    return decoded_token.get("firebase", {}).get("sign_in_provider")


def invalidate_token(uid: str) -> None:
    """Revoke the refresh tokens of a Firebase user."""
    try:
        auth.revoke_refresh_tokens(uid)
    except Exception:
        _msg = "Token invalidation failed"
        logger.exception(_msg)
        raise ValueError(_msg) from None
