# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Request-side session helpers for the HTTP adapter.

The session token travels either as ``Authorization: Bearer <token>`` or in a
cookie. Cookie values are signed with itsdangerous so a tampered cookie is
rejected before it reaches the registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from itsdangerous import BadSignature, URLSafeSerializer

from authcore.config import Settings
from authcore.errors import InvalidTokenError

COOKIE_SALT = "authcore.session.v1"


def _serializer(settings: Settings) -> URLSafeSerializer:
    if not settings.secret_key:
        raise RuntimeError("Falta AUTHCORE_SECRET_KEY en entorno")
    return URLSafeSerializer(secret_key=settings.secret_key, salt=COOKIE_SALT)


def sign_token(settings: Settings, token: str) -> str:
    return _serializer(settings).dumps({"t": token})


def unsign_token(settings: Settings, value: str) -> Optional[str]:
    if not value:
        return None
    try:
        data = _serializer(settings).loads(value)
    except BadSignature:
        return None
    t = str((data or {}).get("t") or "").strip() if isinstance(data, dict) else ""
    return t or None


def token_from_request(request: Request, settings: Settings) -> Optional[str]:
    auth = request.headers.get("authorization", "")
    scheme, _, value = auth.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    if not settings.secret_key:
        # Cookies are never issued without a signing key.
        return None
    return unsign_token(settings, request.cookies.get(settings.cookie_name, ""))


@dataclass(frozen=True)
class CurrentUser:
    identity: str
    token: str


def require_user(request: Request) -> CurrentUser:
    """FastAPI dependency: resolve the caller's identity or raise a token error."""
    settings: Settings = request.app.state.settings
    token = token_from_request(request, settings)
    if not token:
        raise InvalidTokenError()
    identity = request.app.state.auth.current_identity(token)
    return CurrentUser(identity=identity, token=token)


def cookie_settings(settings: Settings) -> dict:
    return {
        "httponly": True,
        "samesite": "lax",
        "secure": settings.cookie_secure,
        "max_age": settings.session_ttl_seconds,
    }
