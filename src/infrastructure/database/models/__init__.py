# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the provisioning datastore.

Tables:
- tenants, locations: Brands and their physical or virtual sites
- users: Tenant members, including provisioned admins
- purchase_records: Audit trail of paid checkouts
- programs, courses: Read-only catalog consulted during provisioning
"""

from src.infrastructure.database.models.base import Base, SoftDeleteMixin, TimestampMixin
from src.infrastructure.database.models.catalog import Course, Program
from src.infrastructure.database.models.purchase import PurchaseRecord
from src.infrastructure.database.models.tenant import Location, Tenant
from src.infrastructure.database.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "Tenant",
    "Location",
    "User",
    "PurchaseRecord",
    "Program",
    "Course",
]
