# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Account notifications.

Usage:
    from src.infrastructure.notifications import SMTPWelcomeNotifier

    notifier = SMTPWelcomeNotifier(settings.smtp)
    sent = await notifier.send_welcome_email("owner@example.com", "Ada", "tmp-pass")
"""

from src.infrastructure.notifications.email import Notifier, SMTPWelcomeNotifier

__all__ = [
    "Notifier",
    "SMTPWelcomeNotifier",
]
