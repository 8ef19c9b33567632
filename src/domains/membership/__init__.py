# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk membership reassignment for users without a tenant."""

from src.domains.membership.service import MembershipReassignmentService

__all__ = ["MembershipReassignmentService"]
