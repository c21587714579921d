# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Manifold: a live REST API and its description document, synthesized from one manifest."""

__version__ = "0.1.0"
