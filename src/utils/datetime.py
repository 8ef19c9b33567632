# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Timezone-aware time helpers.

Every timestamp written by the tenancy stores is UTC. SQLite hands naive
values back, so anything read from the datastore goes through
``ensure_utc`` before it is compared with ``utc_now()``.
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime read back from storage to aware UTC.

    Naive values are taken to already be UTC. ``None`` passes through.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_from_now(days: int) -> datetime:
    """UTC instant ``days`` whole days after now, e.g. a trial end date."""
    return utc_now() + timedelta(days=days)


def epoch_millis(value: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch for ``value`` (default: now).

    Used to stamp credential context names.
    """
    moment = value if value is not None else utc_now()
    return int(moment.timestamp() * 1000)
