# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=256)
    secret: str = Field(min_length=1, max_length=4096)
    email: Optional[str] = Field(default=None, max_length=320)


class LoginRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=256)
    secret: str = Field(min_length=1, max_length=4096)


class ChangePasswordRequest(BaseModel):
    old_secret: str = Field(min_length=1, max_length=4096)
    new_secret: str = Field(min_length=1, max_length=4096)


class AccountResponse(BaseModel):
    identity: str
    email: Optional[str] = None
    created_at: datetime


class SessionResponse(BaseModel):
    token: str
    identity: str
    expires_at: datetime


class RevokedResponse(BaseModel):
    revoked: int


class OkResponse(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    error: str
    detail: str
