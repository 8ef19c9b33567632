# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer.

This package contains domain services that encapsulate business logic.

Domains:
    catalog: Program and course lookups.
    provisioning: Tenant provisioning saga and its onboarding flows.
    membership: Operator repair of users without a tenant.
"""
