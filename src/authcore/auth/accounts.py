# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Account store: identity -> account record.

Two implementations share one contract:
- InMemoryAccountStore: process-local mapping.
- YamlAccountStore: same mapping, mirrored to a users.yml file.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol, Set

import yaml

from authcore.auth.passwords import CredentialHash
from authcore.core.utils import Clock, utcnow
from authcore.errors import DuplicateIdentityError, MalformedHashError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    identity: str
    credential_hash: CredentialHash = field(repr=False)
    email: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    failed_attempt_count: int = 0
    locked_until: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until


@dataclass(frozen=True)
class AccountInfo:
    """Public view of an account (no credential material)."""

    identity: str
    email: Optional[str]
    created_at: datetime
    locked_until: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountInfo":
        return cls(
            identity=account.identity,
            email=account.email,
            created_at=account.created_at,
            locked_until=account.locked_until,
        )


@dataclass(frozen=True)
class LockoutState:
    failed_attempt_count: int
    locked_until: Optional[datetime]


@dataclass(frozen=True)
class LockoutPolicy:
    threshold: int = 5
    base_seconds: int = 15 * 60
    max_seconds: int = 24 * 60 * 60

    def backoff(self, failed_attempt_count: int) -> Optional[timedelta]:
        """Lockout window for a counter value, or None below the threshold.

        The window doubles for every failure past the threshold.
        """
        if failed_attempt_count < self.threshold:
            return None
        extra = min(failed_attempt_count - self.threshold, 32)
        return timedelta(seconds=min(self.base_seconds * (2 ** extra), self.max_seconds))


class AccountStore(Protocol):
    def create(self, identity: str, credential_hash: CredentialHash, email: Optional[str] = None) -> Account:
        ...

    def get(self, identity: str) -> Account:
        ...

    def update_credential(self, identity: str, new_hash: CredentialHash) -> None:
        ...

    def record_failed_attempt(self, identity: str) -> LockoutState:
        ...

    def reset_failed_attempts(self, identity: str) -> None:
        ...

    def delete(self, identity: str) -> None:
        ...

    def __contains__(self, identity: object) -> bool:
        ...


class InMemoryAccountStore:
    """Thread-safe in-memory store.

    Every public method runs under one re-entrant lock, so ``create`` is an
    atomic check-and-insert and readers never see a half-applied update.
    Records are immutable; mutations swap in a new ``Account``.
    """

    def __init__(self, *, lockout: Optional[LockoutPolicy] = None, clock: Clock = utcnow) -> None:
        self.lockout = lockout or LockoutPolicy()
        self.clock = clock
        self._lock = threading.RLock()
        self._accounts: Dict[str, Account] = {}
        self._retired: Set[str] = set()

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._accounts

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    def _require(self, identity: str) -> Account:
        acc = self._accounts.get(identity)
        if acc is None:
            raise NotFoundError(identity)
        return acc

    def _changed(self) -> None:
        """Hook called (under the lock) after every successful mutation."""

    def _commit(self, identity: str, previous: Optional[Account], *, retiring: bool = False) -> None:
        """Run the change hook; if it fails, put the row back as it was and re-raise."""
        try:
            self._changed()
        except BaseException:
            if previous is None:
                self._accounts.pop(identity, None)
            else:
                self._accounts[identity] = previous
            if retiring:
                self._retired.discard(identity)
            raise

    def create(self, identity: str, credential_hash: CredentialHash, email: Optional[str] = None) -> Account:
        with self._lock:
            if identity in self._accounts or identity in self._retired:
                raise DuplicateIdentityError(identity)
            acc = Account(
                identity=identity,
                credential_hash=credential_hash,
                email=email,
                created_at=self.clock(),
            )
            self._accounts[identity] = acc
            self._commit(identity, None)
            return acc

    def get(self, identity: str) -> Account:
        with self._lock:
            return self._require(identity)

    def update_credential(self, identity: str, new_hash: CredentialHash) -> None:
        with self._lock:
            acc = self._require(identity)
            self._accounts[identity] = replace(acc, credential_hash=new_hash)
            self._commit(identity, acc)

    def record_failed_attempt(self, identity: str) -> LockoutState:
        with self._lock:
            acc = self._require(identity)
            count = acc.failed_attempt_count + 1
            window = self.lockout.backoff(count)
            locked_until = acc.locked_until
            if window is not None:
                locked_until = self.clock() + window
            self._accounts[identity] = replace(acc, failed_attempt_count=count, locked_until=locked_until)
            self._commit(identity, acc)
            return LockoutState(failed_attempt_count=count, locked_until=locked_until)

    def reset_failed_attempts(self, identity: str) -> None:
        with self._lock:
            acc = self._require(identity)
            if acc.failed_attempt_count == 0 and acc.locked_until is None:
                return
            self._accounts[identity] = replace(acc, failed_attempt_count=0, locked_until=None)
            self._commit(identity, acc)

    def delete(self, identity: str) -> None:
        with self._lock:
            acc = self._require(identity)
            del self._accounts[identity]
            self._retired.add(identity)
            self._commit(identity, acc, retiring=True)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: object) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class YamlAccountStore(InMemoryAccountStore):
    """In-memory store mirrored to a YAML file.

    File layout::

        version: 1
        users:
          alice:
            password_hash: $argon2id$...
            email: alice@example.com
            created_at: '2026-01-01T00:00:00+00:00'
            failed_attempts: 0
            locked_until: null
        retired: [bob]

    The file is rewritten atomically after every mutation.
    """

    def __init__(self, path: Path, *, lockout: Optional[LockoutPolicy] = None, clock: Clock = utcnow) -> None:
        super().__init__(lockout=lockout, clock=clock)
        self.path = Path(path)
        # Rows that failed to load; written back untouched and never re-registered.
        self._quarantined: Dict[str, dict] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        users = (raw.get("users") or {}) if isinstance(raw, dict) else {}
        for uname, udata in users.items():
            if not isinstance(udata, dict):
                continue
            identity = str(uname)
            try:
                ch = CredentialHash.from_string(str(udata.get("password_hash") or ""))
            except MalformedHashError:
                logger.critical("Malformed credential record for %r in %s; skipped", identity, self.path)
                self._quarantined[identity] = udata
                continue
            email = udata.get("email")
            try:
                acc = Account(
                    identity=identity,
                    credential_hash=ch,
                    email=str(email) if email else None,
                    created_at=_dt_from_str(udata.get("created_at")) or self.clock(),
                    failed_attempt_count=int(udata.get("failed_attempts") or 0),
                    locked_until=_dt_from_str(udata.get("locked_until")),
                )
            except (ValueError, TypeError) as e:
                logger.critical("Malformed account record for %r in %s; skipped (%s)", identity, self.path, e)
                self._quarantined[identity] = udata
                continue
            self._accounts[identity] = acc
        retired = raw.get("retired") if isinstance(raw, dict) else None
        self._retired.update(str(r) for r in (retired or []))
        logger.info("Loaded %d accounts from %s", len(self._accounts), self.path)

    def create(self, identity: str, credential_hash: CredentialHash, email: Optional[str] = None) -> Account:
        if identity in self._quarantined:
            raise DuplicateIdentityError(identity)
        return super().create(identity, credential_hash, email)

    def _dump(self) -> dict:
        users: Dict[str, dict] = dict(self._quarantined)
        for identity, acc in sorted(self._accounts.items()):
            users[identity] = {
                "password_hash": acc.credential_hash.to_string(),
                "email": acc.email,
                "created_at": _dt_to_str(acc.created_at),
                "failed_attempts": acc.failed_attempt_count,
                "locked_until": _dt_to_str(acc.locked_until),
            }
        return {"version": 1, "users": users, "retired": sorted(self._retired)}

    def _changed(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = yaml.safe_dump(self._dump(), sort_keys=False, allow_unicode=True)
        fd, tmp = tempfile.mkstemp(prefix=".users-", suffix=".yml", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
