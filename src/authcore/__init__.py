# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Single-process credential store and session manager."""

__version__ = "0.1.0"
