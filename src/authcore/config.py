# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Runtime settings read from ``AUTHCORE_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional


ENV_PREFIX = "AUTHCORE_"

_TRUE = {"1", "true", "yes", "y"}


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} debe ser un entero (valor: {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{ENV_PREFIX}{name} debe ser >= {minimum} (valor: {value})")
    return value


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None:
        return default
    return str(raw).strip().lower() in _TRUE


@dataclass(frozen=True)
class Settings:
    min_secret_length: int = 8
    max_secret_length: int = 1024
    max_identity_length: int = 64
    session_ttl_seconds: int = 8 * 60 * 60
    session_sweep_every: int = 256
    lockout_threshold: int = 5
    lockout_seconds: int = 15 * 60
    max_lockout_seconds: int = 24 * 60 * 60
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 64 * 1024  # KiB
    argon2_parallelism: int = 4
    users_path: Optional[Path] = None
    secret_key: str = ""
    cookie_name: str = "authcore_session"
    cookie_secure: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "INFO"

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(seconds=self.session_ttl_seconds)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``env`` (defaults to ``os.environ``)."""
        env = os.environ if env is None else env
        users_path = (env.get(ENV_PREFIX + "USERS_PATH") or "").strip()
        settings = cls(
            min_secret_length=_env_int(env, "MIN_SECRET_LENGTH", cls.min_secret_length, minimum=1),
            max_secret_length=_env_int(env, "MAX_SECRET_LENGTH", cls.max_secret_length, minimum=1),
            max_identity_length=_env_int(env, "MAX_IDENTITY_LENGTH", cls.max_identity_length, minimum=1),
            session_ttl_seconds=_env_int(env, "SESSION_TTL", cls.session_ttl_seconds, minimum=1),
            session_sweep_every=_env_int(env, "SESSION_SWEEP_EVERY", cls.session_sweep_every, minimum=1),
            lockout_threshold=_env_int(env, "LOCKOUT_THRESHOLD", cls.lockout_threshold, minimum=1),
            lockout_seconds=_env_int(env, "LOCKOUT_SECONDS", cls.lockout_seconds, minimum=1),
            max_lockout_seconds=_env_int(env, "MAX_LOCKOUT_SECONDS", cls.max_lockout_seconds, minimum=1),
            argon2_time_cost=_env_int(env, "ARGON2_TIME_COST", cls.argon2_time_cost, minimum=1),
            argon2_memory_cost=_env_int(env, "ARGON2_MEMORY_COST", cls.argon2_memory_cost, minimum=8),
            argon2_parallelism=_env_int(env, "ARGON2_PARALLELISM", cls.argon2_parallelism, minimum=1),
            users_path=Path(users_path).resolve() if users_path else None,
            secret_key=(env.get(ENV_PREFIX + "SECRET_KEY") or "").strip(),
            cookie_name=(env.get(ENV_PREFIX + "COOKIE_NAME") or cls.cookie_name).strip(),
            cookie_secure=_env_bool(env, "COOKIE_SECURE"),
            host=(env.get(ENV_PREFIX + "HOST") or cls.host).strip(),
            port=_env_int(env, "PORT", cls.port, minimum=1),
            reload=_env_bool(env, "RELOAD"),
            log_level=(env.get(ENV_PREFIX + "LOG_LEVEL") or cls.log_level).strip().upper(),
        )
        if settings.min_secret_length > settings.max_secret_length:
            raise ValueError(f"{ENV_PREFIX}MIN_SECRET_LENGTH no puede superar {ENV_PREFIX}MAX_SECRET_LENGTH")
        if settings.lockout_seconds > settings.max_lockout_seconds:
            raise ValueError(f"{ENV_PREFIX}LOCKOUT_SECONDS no puede superar {ENV_PREFIX}MAX_LOCKOUT_SECONDS")
        return settings
