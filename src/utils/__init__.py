# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cross-cutting helpers: logging setup, UTC time and retry."""

from src.utils.datetime import days_from_now, ensure_utc, epoch_millis, utc_now
from src.utils.logging import bind_context, redact_secrets, setup_logging, unbind_context
from src.utils.retry import RetryPolicy, is_transient, with_retry

__all__ = [
    "setup_logging",
    "bind_context",
    "unbind_context",
    "redact_secrets",
    "utc_now",
    "ensure_utc",
    "days_from_now",
    "epoch_millis",
    "RetryPolicy",
    "is_transient",
    "with_retry",
]
