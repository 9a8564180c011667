# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential hashing and verification (argon2id)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

from argon2 import PasswordHasher, Type, extract_parameters
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from authcore.config import Settings
from authcore.errors import MalformedHashError, WeakSecretError

ALGORITHM = "argon2id"

COMMON_SECRETS = frozenset({
    "password",
    "password1",
    "password123",
    "12345678",
    "123456789",
    "1234567890",
    "qwertyui",
    "qwerty123",
    "iloveyou",
    "letmein1",
    "welcome1",
    "admin123",
    "baseball",
    "trustno1",
    "sunshine",
})


@dataclass(frozen=True)
class CredentialHash:
    """Salted one-way credential record.

    ``encoded`` is the PHC string (``$argon2id$v=19$m=..,t=..,p=..$salt$hash``);
    it carries the salt and the parameters next to the digest.
    """

    algorithm: str
    encoded: str

    def to_string(self) -> str:
        return self.encoded

    @classmethod
    def from_string(cls, encoded: str) -> "CredentialHash":
        if not isinstance(encoded, str) or not encoded.startswith("$"):
            raise MalformedHashError()
        parts = encoded.split("$")
        if len(parts) < 5 or not parts[1]:
            raise MalformedHashError()
        return cls(algorithm=parts[1], encoded=encoded)

    def __repr__(self) -> str:
        return f"CredentialHash(algorithm={self.algorithm!r})"


def _as_text(secret: bytes) -> Union[str, bytes]:
    """Decoded secret, or the raw bytes when it is not valid UTF-8."""
    try:
        return secret.decode("utf-8")
    except UnicodeDecodeError:
        return secret


class CredentialHasher:
    def __init__(
        self,
        *,
        min_length: int = 8,
        max_length: int = 1024,
        time_cost: int = 3,
        memory_cost: int = 64 * 1024,
        parallelism: int = 4,
    ) -> None:
        self.min_length = min_length
        self.max_length = max_length
        self._ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )
        self._dummy: Optional[CredentialHash] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialHasher":
        return cls(
            min_length=settings.min_secret_length,
            max_length=settings.max_secret_length,
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    def policy_violations(self, secret: bytes) -> List[str]:
        """Return the reasons why ``secret`` is rejected (empty when valid)."""
        if not isinstance(secret, (bytes, bytearray)):
            return ["La contraseña debe ser bytes"]
        reasons: List[str] = []
        text = _as_text(bytes(secret))
        n = len(text)
        if n < self.min_length:
            reasons.append(f"debe tener al menos {self.min_length} caracteres")
        if n > self.max_length:
            reasons.append(f"no puede superar {self.max_length} caracteres")
        if n and len(set(text)) == 1:
            reasons.append("no puede repetir un único carácter")
        if bytes(secret).lower().decode("utf-8", "replace") in COMMON_SECRETS:
            reasons.append("es demasiado común")
        return reasons

    def check_policy(self, secret: bytes) -> None:
        reasons = self.policy_violations(secret)
        if reasons:
            raise WeakSecretError(reasons)

    def hash(self, secret: bytes) -> CredentialHash:
        """Hash ``secret`` with a fresh random salt.

        Raises WeakSecretError if the secret fails the policy check.
        """
        self.check_policy(secret)
        return CredentialHash(algorithm=ALGORITHM, encoded=self._ph.hash(bytes(secret)))

    def rehash(self, secret: bytes) -> CredentialHash:
        """Hash an already-accepted secret with the current parameters (no policy check)."""
        return CredentialHash(algorithm=ALGORITHM, encoded=self._ph.hash(bytes(secret)))

    def verify(self, secret: bytes, credential_hash: CredentialHash) -> bool:
        """Check ``secret`` against a stored record.

        Digest comparison is constant time. A mismatch returns False; only a
        structurally invalid record raises MalformedHashError.
        """
        if not isinstance(credential_hash, CredentialHash):
            raise MalformedHashError()
        if credential_hash.algorithm != ALGORITHM:
            raise MalformedHashError(f"Algoritmo no soportado: {credential_hash.algorithm}")
        try:
            extract_parameters(credential_hash.encoded)
        except (ValueError, KeyError):
            raise MalformedHashError() from None
        if not isinstance(secret, (bytes, bytearray)):
            return False
        try:
            return self._ph.verify(credential_hash.encoded, bytes(secret))
        except VerifyMismatchError:
            return False
        except InvalidHashError:
            raise MalformedHashError() from None
        except VerificationError:
            # Parseable record whose parameters or digest do not check out.
            return False

    def needs_rehash(self, credential_hash: CredentialHash) -> bool:
        try:
            return self._ph.check_needs_rehash(credential_hash.encoded)
        except (ValueError, KeyError):
            raise MalformedHashError() from None

    def dummy_verify(self, secret: bytes) -> None:
        """Spend the same work as a real verification and discard the result."""
        if self._dummy is None:
            self._dummy = CredentialHash(algorithm=ALGORITHM, encoded=self._ph.hash(b"authcore-dummy-secret"))
        try:
            self._ph.verify(self._dummy.encoded, bytes(secret) if isinstance(secret, (bytes, bytearray)) else b"")
        except VerificationError:
            pass
