# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Datastore migrations.

Contains migrations for:
- tenants, locations: Brand registry
- users: Tenant members
- purchase_records: Checkout audit trail
- programs, courses: Catalog
"""
