# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities.

Document timestamps are assigned by the store. Client-side bookkeeping
(provisioning results) uses timezone-aware UTC datetimes from here.

Usage:
------
    from src.utils.datetime import utc_now

    now = utc_now()
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)
