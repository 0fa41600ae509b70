# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Firestore collection names (schema-in-code).

Firestore has no DDL. Collections appear on first write, so these
constants are the single source of truth for collection names.
"""

# Platform level
COLLECTION_ORGANIZATIONS = "organizations"
COLLECTION_USERS = "users"
COLLECTION_PENDING_RECONCILIATIONS = "pendingReconciliations"

# Tenant scoped (every document carries organizationId)
COLLECTION_COURSES = "courses"
COLLECTION_BATCHES = "batches"
COLLECTION_RECORDINGS = "recordings"
COLLECTION_PAYMENTS = "payments"
COLLECTION_BLOG_POSTS = "blogPosts"
COLLECTION_TASKS = "tasks"
COLLECTION_ZOOM_SESSIONS = "zoomSessions"
