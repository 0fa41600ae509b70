# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains clients for:
- Document store (Firestore)
- Query cache (in-process or Redis)
- Identity provider (Identity Toolkit REST API, callable functions)
"""
