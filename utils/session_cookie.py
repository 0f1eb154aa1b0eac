"""Encrypted session cookie.

The whole session dict is serialised to JSON and sealed with Fernet, so the
browser can neither read nor alter it. Fernet's timestamp doubles as the
expiry check.
"""
from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet, InvalidToken
from flask import session
from flask.sessions import SecureCookieSession, SessionInterface

logger = logging.getLogger(__name__)

SESSION_KEYS = ("token", "userId", "email", "name", "role")


def derive_fernet(secret_key) -> Fernet:
    if not secret_key:
        raise RuntimeError("SECRET_KEY is required to encrypt the session cookie")
    if isinstance(secret_key, str):
        secret_key = secret_key.encode("utf-8")
    digest = hashlib.sha256(secret_key).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class EncryptedCookieSession(SecureCookieSession):
    pass


class EncryptedCookieSessionInterface(SessionInterface):
    session_class = EncryptedCookieSession

    def _max_age(self, app) -> timedelta:
        return timedelta(days=int(app.config.get("SESSION_MAX_AGE", 7)))

    def open_session(self, app, request):
        fernet = derive_fernet(app.secret_key)
        raw = request.cookies.get(self.get_cookie_name(app))
        if not raw:
            return self.session_class()
        ttl = int(self._max_age(app).total_seconds())
        try:
            data = json.loads(fernet.decrypt(raw.encode("utf-8"), ttl=ttl))
        except (InvalidToken, ValueError):
            logger.info("Discarding invalid or expired session cookie")
            return self.session_class()
        if not isinstance(data, dict):
            return self.session_class()
        return self.session_class(data)

    def save_session(self, app, session, response):
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)
        secure = bool(app.config.get("SESSION_SECURE"))

        if not session:
            if session.modified:
                response.delete_cookie(
                    name,
                    domain=domain,
                    path=path,
                    secure=secure,
                    httponly=True,
                    samesite="Lax",
                )
            return

        if not self.should_set_cookie(app, session):
            return

        max_age = self._max_age(app)
        value = derive_fernet(app.secret_key).encrypt(
            json.dumps(dict(session)).encode("utf-8")
        )
        response.set_cookie(
            name,
            value.decode("utf-8"),
            max_age=int(max_age.total_seconds()),
            expires=datetime.now(timezone.utc) + max_age,
            httponly=True,
            domain=domain,
            path=path,
            secure=secure,
            samesite="Lax",
        )


def start_session(user) -> dict:
    """Replace the current session with one for ``user``."""

    session.clear()
    session.update(
        {
            "token": secrets.token_urlsafe(32),
            "userId": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
        }
    )
    return current_session()


def clear_session() -> None:
    session.clear()


def current_session() -> dict | None:
    if not session.get("userId"):
        return None
    return {key: session.get(key) for key in SESSION_KEYS}
