# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

import bcrypt


def hash_password(password: str) -> str:
    """Hash a plaintext password property value using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
