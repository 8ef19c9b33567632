# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    provisioning: Checkout, free trial and public signup provisioning.
    membership: Operator endpoints for moving tenant-less users.
"""

from fastapi import APIRouter

from src.api.v1 import membership, provisioning

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(provisioning.router, prefix="/provisioning", tags=["Provisioning"])
router.include_router(membership.router, prefix="/operator", tags=["Operator"])

__all__ = ["router"]
