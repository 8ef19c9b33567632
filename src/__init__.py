"""Tenancy Back Office.

Tenant provisioning for a multi-tenant course platform: paid checkout, free
trial and public signup onboarding, plus operator tools for moving users
without a tenant into one.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
