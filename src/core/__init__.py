# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package.

- config: Application configuration and settings
- services: Wiring of the store, cache, identity clients and domain services
"""
