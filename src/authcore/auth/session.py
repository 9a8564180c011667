# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Session registry: opaque random tokens bound to an identity."""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Set

from authcore.core.utils import Clock, utcnow
from authcore.errors import ExpiredTokenError, InvalidTokenError, RevokedTokenError

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def new_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def fingerprint(token: str) -> str:
    """Short, non-secret prefix of a token for log lines."""
    return (token or "")[:6] + "…"


@dataclass(frozen=True)
class Session:
    token: str
    identity: str
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False

    def is_expired(self, now: datetime) -> bool:
        # Inclusive: a session expiring exactly now is already expired.
        return now >= self.expires_at

    def is_live(self, now: datetime) -> bool:
        return not self.revoked and not self.is_expired(now)

    def __repr__(self) -> str:
        return (
            f"Session(token={fingerprint(self.token)!r}, identity={self.identity!r}, "
            f"expires_at={self.expires_at.isoformat()}, revoked={self.revoked})"
        )


class SessionRegistry:
    """Issues, validates and revokes sessions.

    One lock guards both the token map and the per-identity index, which makes
    ``revoke_all`` atomic with respect to ``issue`` for the same identity.
    Expired sessions are rejected by ``validate`` whether or not ``sweep`` has
    removed them yet. ``issue`` sweeps on its own every ``sweep_every`` calls,
    so dead entries do not pile up in a long-running process.
    """

    def __init__(
        self,
        *,
        clock: Clock = utcnow,
        token_factory: Callable[[], str] = new_token,
        sweep_every: int = 256,
    ) -> None:
        if sweep_every < 1:
            raise ValueError("sweep_every debe ser >= 1")
        self.clock = clock
        self.token_factory = token_factory
        self.sweep_every = sweep_every
        self._issued_since_sweep = 0
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._by_identity: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def issue(self, identity: str, ttl: timedelta) -> Session:
        if ttl <= timedelta(0):
            raise ValueError("El TTL de sesión debe ser positivo")
        with self._lock:
            token = self.token_factory()
            while token in self._sessions:
                token = self.token_factory()
            now = self.clock()
            sess = Session(token=token, identity=identity, issued_at=now, expires_at=now + ttl)
            self._sessions[token] = sess
            self._by_identity.setdefault(identity, set()).add(token)
            self._issued_since_sweep += 1
            if self._issued_since_sweep >= self.sweep_every:
                self._sweep_locked(now)
        logger.debug("Issued session %s for %r", fingerprint(token), identity)
        return sess

    def get(self, token: str) -> Session:
        with self._lock:
            sess = self._sessions.get(token) if isinstance(token, str) else None
        if sess is None:
            raise InvalidTokenError()
        return sess

    def validate(self, token: str) -> str:
        """Return the identity bound to ``token``.

        Raises InvalidTokenError (unknown), RevokedTokenError or
        ExpiredTokenError.
        """
        sess = self.get(token)
        if sess.revoked:
            raise RevokedTokenError()
        if sess.is_expired(self.clock()):
            raise ExpiredTokenError()
        return sess.identity

    def revoke(self, token: str) -> None:
        with self._lock:
            sess = self._sessions.get(token) if isinstance(token, str) else None
            if sess is None or sess.revoked:
                return
            self._sessions[token] = replace(sess, revoked=True)
        logger.debug("Revoked session %s", fingerprint(token))

    def revoke_all(self, identity: str) -> int:
        """Revoke every live session of ``identity``; returns how many."""
        now = self.clock()
        count = 0
        with self._lock:
            for token in self._by_identity.get(identity, ()):
                sess = self._sessions[token]
                # Expired sessions keep reporting ExpiredTokenError.
                if sess.is_live(now):
                    self._sessions[token] = replace(sess, revoked=True)
                    count += 1
        if count:
            logger.info("Revoked %d session(s) for %r", count, identity)
        return count

    def sessions_for(self, identity: str) -> List[Session]:
        now = self.clock()
        with self._lock:
            tokens = list(self._by_identity.get(identity, ()))
            out = [self._sessions[t] for t in tokens if self._sessions[t].is_live(now)]
        out.sort(key=lambda s: s.issued_at)
        return out

    def sweep(self) -> int:
        """Drop expired and revoked entries; returns how many were removed."""
        with self._lock:
            removed = self._sweep_locked(self.clock())
        if removed:
            logger.debug("Swept %d session(s)", removed)
        return removed

    def _sweep_locked(self, now: datetime) -> int:
        removed = 0
        for token, sess in list(self._sessions.items()):
            if sess.is_live(now):
                continue
            del self._sessions[token]
            tokens = self._by_identity.get(sess.identity)
            if tokens is not None:
                tokens.discard(token)
                if not tokens:
                    del self._by_identity[sess.identity]
            removed += 1
        self._issued_since_sweep = 0
        return removed
