# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Registration, login, logout and credential changes.

Per-account states: Unregistered -> Active -> (Locked <-> Active) -> Deleted.

Locked accounts are rejected before the hasher runs. This saves CPU under a
brute-force attempt, at the price of a locked account answering faster than
a wrong password does; the lock state is already disclosed by the error kind.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Dict, Optional

from authcore.auth.accounts import (
    Account,
    AccountInfo,
    AccountStore,
    InMemoryAccountStore,
    LockoutPolicy,
    YamlAccountStore,
)
from authcore.auth.passwords import CredentialHasher
from authcore.auth.session import Session, SessionRegistry, fingerprint, new_token
from authcore.config import Settings
from authcore.core.utils import Clock, check_identity, mask_email, utcnow
from authcore.errors import (
    AccountLockedError,
    InvalidCredentialsError,
    InvalidIdentityError,
    MalformedHashError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


class _IdentityLocks:
    """One exclusive lock per identity, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def __call__(self, identity: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = self._locks[identity] = threading.Lock()
            return lock

    def discard(self, identity: str) -> None:
        with self._guard:
            self._locks.pop(identity, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class AuthService:
    def __init__(
        self,
        *,
        accounts: AccountStore,
        sessions: SessionRegistry,
        hasher: CredentialHasher,
        session_ttl: timedelta = timedelta(hours=8),
        max_identity_length: int = 64,
        clock: Clock = utcnow,
    ) -> None:
        self.accounts = accounts
        self.sessions = sessions
        self.hasher = hasher
        self.session_ttl = session_ttl
        self.max_identity_length = max_identity_length
        self.clock = clock
        self._locks = _IdentityLocks()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clock: Clock = utcnow,
        token_factory: Callable[[], str] = new_token,
    ) -> "AuthService":
        """Wire a service from settings (YAML store when users_path is set)."""
        lockout = LockoutPolicy(
            threshold=settings.lockout_threshold,
            base_seconds=settings.lockout_seconds,
            max_seconds=settings.max_lockout_seconds,
        )
        accounts: AccountStore
        if settings.users_path is not None:
            accounts = YamlAccountStore(settings.users_path, lockout=lockout, clock=clock)
        else:
            accounts = InMemoryAccountStore(lockout=lockout, clock=clock)
        return cls(
            accounts=accounts,
            sessions=SessionRegistry(
                clock=clock, token_factory=token_factory, sweep_every=settings.session_sweep_every
            ),
            hasher=CredentialHasher.from_settings(settings),
            session_ttl=settings.session_ttl,
            max_identity_length=settings.max_identity_length,
            clock=clock,
        )

    # ------------------ Operations ------------------

    def register(self, identity: str, secret: bytes, email: Optional[str] = None) -> AccountInfo:
        identity = check_identity(identity, max_length=self.max_identity_length)
        email = (email or "").strip() or None
        # Hashing is the expensive part; keep it outside every lock.
        credential_hash = self.hasher.hash(secret)
        with self._locks(identity):
            acc = self.accounts.create(identity, credential_hash, email)
        logger.info(
            "Registered %r%s", identity, f" <{mask_email(email)}>" if email else ""
        )
        return AccountInfo.from_account(acc)

    def login(self, identity: str, secret: bytes) -> Session:
        identity = self._known_identity(identity, secret)
        with self._locks(identity):
            acc = self._authenticate(identity, secret)
            sess = self.sessions.issue(acc.identity, self.session_ttl)
        logger.info("Login %r (session %s)", acc.identity, fingerprint(sess.token))
        return sess

    def logout(self, token: str) -> None:
        self.sessions.revoke(token)
        logger.info("Logout (session %s)", fingerprint(token))

    def logout_everywhere(self, token: str) -> int:
        identity = self.sessions.validate(token)
        return self.sessions.revoke_all(identity)

    def current_identity(self, token: str) -> str:
        return self.sessions.validate(token)

    def describe(self, identity: str) -> AccountInfo:
        return AccountInfo.from_account(self.accounts.get(identity))

    def change_password(self, identity: str, old_secret: bytes, new_secret: bytes) -> int:
        """Replace the credential and revoke every session of the identity.

        Returns the number of sessions revoked.
        """
        self.hasher.check_policy(new_secret)
        identity = self._known_identity(identity, old_secret)
        with self._locks(identity):
            acc = self._authenticate(identity, old_secret)
            self.accounts.update_credential(acc.identity, self.hasher.hash(new_secret))
            revoked = self.sessions.revoke_all(acc.identity)
        logger.info("Credential changed for %r; %d session(s) revoked", acc.identity, revoked)
        return revoked

    def delete_account(self, identity: str) -> int:
        try:
            with self._locks(identity):
                self.accounts.delete(identity)
                revoked = self.sessions.revoke_all(identity)
        finally:
            # Deleted identities are retired, so their lock is never needed again.
            if identity not in self.accounts:
                self._locks.discard(identity)
        logger.info("Deleted %r; %d session(s) revoked", identity, revoked)
        return revoked

    def unlock(self, identity: str) -> None:
        try:
            with self._locks(identity):
                self.accounts.reset_failed_attempts(identity)
        finally:
            if identity not in self.accounts:
                self._locks.discard(identity)
        logger.info("Lockout cleared for %r", identity)

    # ------------------ Internals ------------------

    def _known_identity(self, identity: str, secret: bytes) -> str:
        """Return ``identity`` if it names an account, else fail like a wrong secret.

        The dummy verification keeps the unknown-identity path as slow as a
        real one.
        """
        try:
            identity = check_identity(identity, max_length=self.max_identity_length)
        except InvalidIdentityError:
            self.hasher.dummy_verify(secret)
            raise InvalidCredentialsError() from None
        if identity not in self.accounts:
            self.hasher.dummy_verify(secret)
            raise InvalidCredentialsError()
        return identity

    def _authenticate(self, identity: str, secret: bytes) -> Account:
        """Verify a secret with lockout bookkeeping. Caller holds the identity lock."""
        try:
            acc = self.accounts.get(identity)
        except NotFoundError:
            self.hasher.dummy_verify(secret)
            raise InvalidCredentialsError() from None

        now = self.clock()
        if acc.is_locked(now):
            logger.warning("Rejected attempt on locked account %r", identity)
            raise AccountLockedError(acc.locked_until)

        try:
            ok = self.hasher.verify(secret, acc.credential_hash)
        except MalformedHashError:
            logger.critical("Malformed credential record for %r", identity)
            raise

        if not ok:
            state = self.accounts.record_failed_attempt(identity)
            if state.locked_until is not None and state.locked_until > now:
                logger.warning(
                    "Account %r locked until %s after %d failed attempts",
                    identity,
                    state.locked_until.isoformat(),
                    state.failed_attempt_count,
                )
            else:
                logger.warning("Failed login for %r (%d)", identity, state.failed_attempt_count)
            raise InvalidCredentialsError()

        self.accounts.reset_failed_attempts(identity)
        if self.hasher.needs_rehash(acc.credential_hash):
            self.accounts.update_credential(identity, self.hasher.rehash(secret))
            logger.info("Credential parameters upgraded for %r", identity)
        return acc
