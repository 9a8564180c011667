# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Typed failures raised by the authentication core.

Every error is recoverable by the caller. ``code`` is a stable identifier and
``status_code`` is the HTTP mapping used by :mod:`authcore.app`.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    default_message = "Error de autenticación"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.default_message


class InvalidIdentityError(AuthError):
    code = "invalid_identity"
    default_message = "Nombre de usuario no válido"


class WeakSecretError(AuthError):
    code = "weak_secret"
    default_message = "La contraseña no cumple la política"

    def __init__(self, reasons: Optional[List[str]] = None):
        self.reasons = list(reasons or [])
        msg = self.default_message
        if self.reasons:
            msg = f"{msg}: " + "; ".join(self.reasons)
        super().__init__(msg)


class DuplicateIdentityError(AuthError):
    code = "duplicate_identity"
    status_code = 409
    default_message = "El usuario ya existe"

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"El usuario '{identity}' ya existe")


class NotFoundError(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "Usuario no encontrado"

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"No existe el usuario '{identity}'")


class InvalidCredentialsError(AuthError):
    # Same message for unknown identity and wrong secret.
    code = "invalid_credentials"
    status_code = 401
    default_message = "Credenciales inválidas"


class AccountLockedError(AuthError):
    code = "account_locked"
    status_code = 423
    default_message = "Cuenta bloqueada temporalmente"

    def __init__(self, locked_until: datetime):
        self.locked_until = locked_until
        super().__init__(f"Cuenta bloqueada hasta {locked_until.isoformat()}")


class TokenError(AuthError):
    code = "token_error"
    status_code = 401
    default_message = "Sesión no válida"


class InvalidTokenError(TokenError):
    code = "invalid_token"
    default_message = "Sesión desconocida"


class ExpiredTokenError(TokenError):
    code = "expired_token"
    default_message = "La sesión ha caducado"


class RevokedTokenError(TokenError):
    code = "revoked_token"
    default_message = "La sesión ha sido cerrada"


class MalformedHashError(AuthError):
    """Stored credential record is structurally invalid (data corruption)."""

    code = "malformed_hash"
    status_code = 500
    default_message = "Registro de credenciales corrupto"
