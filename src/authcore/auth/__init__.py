# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication building blocks.

This package provides:
- Credential hashing/verification (argon2id)
- Account store (in memory, or mirrored to users.yml)
- Session registry (random tokens with TTL and revocation)
"""
