# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import unicodedata
from datetime import datetime, timezone
from typing import Callable

from authcore.errors import InvalidIdentityError

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_identity(identity: object, *, max_length: int = 64) -> str:
    """Validate an identity and return it unchanged.

    Identities are compared byte-exact, so nothing is trimmed or case-folded
    here: input that would need it is rejected instead.
    """
    if not isinstance(identity, str) or not identity:
        raise InvalidIdentityError("El nombre de usuario no puede estar vacío")
    if len(identity) > max_length:
        raise InvalidIdentityError(f"El nombre de usuario no puede superar {max_length} caracteres")
    if identity != identity.strip():
        raise InvalidIdentityError("El nombre de usuario no puede empezar ni terminar con espacios")
    if any(unicodedata.category(ch).startswith("C") for ch in identity):
        raise InvalidIdentityError("El nombre de usuario contiene caracteres de control")
    return identity


def mask_email(email: str) -> str:
    """``alice@example.com`` -> ``a***@example.com`` (for log lines)."""
    local, sep, domain = (email or "").partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
