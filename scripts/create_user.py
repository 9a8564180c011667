#!/usr/bin/env python3
from __future__ import annotations

import sys
from dataclasses import replace
from getpass import getpass
from pathlib import Path

from authcore.config import Settings
from authcore.errors import AuthError
from authcore.services.auth_service import AuthService

DEFAULT_USERS_PATH = Path(__file__).resolve().parents[1] / "data" / "users.yml"


def main() -> None:
    settings = Settings.from_env()
    if settings.users_path is None:
        settings = replace(settings, users_path=DEFAULT_USERS_PATH)
    auth = AuthService.from_settings(settings)

    username = input("Username: ")
    email = input("Email (opcional): ").strip() or None

    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords no coinciden")

    try:
        auth.register(username, pw1.encode("utf-8"), email)
    except AuthError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        raise SystemExit(1)
    print(f"OK -> {settings.users_path}")


if __name__ == "__main__":
    main()
