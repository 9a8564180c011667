# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""HTTP adapter over :class:`AuthService`.

Each operation maps to one request/response pair; each error kind maps to
its own status code (see ``AuthError.status_code``). Handlers are plain
``def`` so FastAPI runs them, and the argon2 work inside them, in its
threadpool.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from authcore.config import Settings
from authcore.errors import AccountLockedError, AuthError, MalformedHashError
from authcore.models import (
    AccountResponse,
    ChangePasswordRequest,
    ErrorResponse,
    LoginRequest,
    OkResponse,
    RegisterRequest,
    RevokedResponse,
    SessionResponse,
)
from authcore.permissions import CurrentUser, cookie_settings, require_user, sign_token, token_from_request
from authcore.services.auth_service import AuthService

logger = logging.getLogger(__name__)


def _secret(value: str) -> bytes:
    return value.encode("utf-8")


def _errors(*codes: int) -> Dict[int, dict]:
    return {code: {"model": ErrorResponse} for code in codes}


def _auth_error_response(request: Request, exc: AuthError) -> JSONResponse:
    if isinstance(exc, MalformedHashError):
        logger.critical("Malformed credential record while serving %s", request.url.path)
    headers = {}
    if isinstance(exc, AccountLockedError):
        auth: AuthService = request.app.state.auth
        wait = (exc.locked_until - auth.clock()).total_seconds()
        headers["Retry-After"] = str(max(1, math.ceil(wait)))
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.code, detail=exc.message).model_dump(),
        headers=headers,
    )


def create_app(service: Optional[AuthService] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    service = service or AuthService.from_settings(settings)

    app = FastAPI(title="authcore")
    app.state.settings = settings
    app.state.auth = service

    @app.exception_handler(AuthError)
    async def _handle_auth_error(request: Request, exc: AuthError):
        return _auth_error_response(request, exc)

    # ------------------ Routes ------------------

    @app.post("/register", status_code=201, response_model=AccountResponse, responses=_errors(400, 409))
    def register(body: RegisterRequest):
        info = service.register(body.identity, _secret(body.secret), body.email)
        return AccountResponse(identity=info.identity, email=info.email, created_at=info.created_at)

    @app.post("/login", response_model=SessionResponse, responses=_errors(401, 423, 500))
    def login(body: LoginRequest):
        sess = service.login(body.identity, _secret(body.secret))
        resp = JSONResponse(
            content=SessionResponse(
                token=sess.token, identity=sess.identity, expires_at=sess.expires_at
            ).model_dump(mode="json")
        )
        if settings.secret_key:
            resp.set_cookie(settings.cookie_name, sign_token(settings, sess.token), **cookie_settings(settings))
        return resp

    @app.post("/logout", response_model=OkResponse)
    def logout(request: Request):
        token = token_from_request(request, settings)
        if token:
            service.logout(token)
        resp = JSONResponse(content=OkResponse().model_dump())
        resp.delete_cookie(settings.cookie_name)
        return resp

    @app.post("/logout/all", response_model=RevokedResponse, responses=_errors(401))
    def logout_all(user: CurrentUser = Depends(require_user)):
        return RevokedResponse(revoked=service.logout_everywhere(user.token))

    @app.get("/me", response_model=AccountResponse, responses=_errors(401, 404))
    def me(user: CurrentUser = Depends(require_user)):
        info = service.describe(user.identity)
        return AccountResponse(identity=info.identity, email=info.email, created_at=info.created_at)

    @app.post("/password", response_model=RevokedResponse, responses=_errors(400, 401, 423, 500))
    def change_password(body: ChangePasswordRequest, user: CurrentUser = Depends(require_user)):
        revoked = service.change_password(user.identity, _secret(body.old_secret), _secret(body.new_secret))
        return RevokedResponse(revoked=revoked)

    @app.delete("/me", response_model=RevokedResponse, responses=_errors(401, 404))
    def delete_me(user: CurrentUser = Depends(require_user)):
        return RevokedResponse(revoked=service.delete_account(user.identity))

    return app
