# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get the provisioning service
- Get the membership reassignment service
- Authenticate operator requests

Example:
    @router.post("/checkout")
    async def checkout(
        service: ProvisioningServiceDep,
    ):
        ...
"""

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.core.config import Settings, get_settings
from src.domains.membership import MembershipReassignmentService
from src.domains.provisioning import ProvisioningService
from src.domains.provisioning.stores import LocationStore
from src.infrastructure.database.connection import (
    close_database,
    get_sessionmaker,
    init_database,
)
from src.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Service singletons, built at application startup
_provisioning_service: ProvisioningService | None = None
_membership_service: MembershipReassignmentService | None = None


async def init_services(settings: Settings) -> None:
    """Initialize the database pool and the services built on it."""
    global _provisioning_service, _membership_service

    await init_database(settings)
    sessionmaker = get_sessionmaker()

    _provisioning_service = ProvisioningService.build(settings, sessionmaker)
    retry = RetryPolicy.from_settings(settings.retry)
    _membership_service = MembershipReassignmentService(
        sessionmaker,
        LocationStore(
            sessionmaker,
            retry,
            default_name=settings.provisioning.default_location_name,
        ),
        retry,
    )


async def close_services() -> None:
    """Drop the service singletons and close the database pool."""
    global _provisioning_service, _membership_service

    _provisioning_service = None
    _membership_service = None
    await close_database()


# =========================================================================
# Service Dependencies
# =========================================================================


def get_provisioning_service() -> ProvisioningService:
    """Get the provisioning service singleton.

    Returns:
        ProvisioningService.

    Raises:
        HTTPException: If not initialized.
    """
    if _provisioning_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Provisioning service not initialized",
        )
    return _provisioning_service


def get_membership_service() -> MembershipReassignmentService:
    """Get the membership reassignment service singleton.

    Returns:
        MembershipReassignmentService.

    Raises:
        HTTPException: If not initialized.
    """
    if _membership_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Membership service not initialized",
        )
    return _membership_service


# =========================================================================
# Authentication Dependencies
# =========================================================================


def require_operator(
    x_operator_key: Annotated[str | None, Header()] = None,
) -> None:
    """Require the operator API key.

    Args:
        x_operator_key: Value of the X-Operator-Key header.

    Raises:
        HTTPException: If the key is missing or wrong.
    """
    expected = get_settings().api.operator_api_key.get_secret_value()
    if not x_operator_key or not secrets.compare_digest(x_operator_key, expected):
        logger.warning("Rejected operator request with missing or invalid key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator key required. Provide the X-Operator-Key header.",
        )


# =========================================================================
# Type Aliases for Cleaner Endpoint Signatures
# =========================================================================

ProvisioningServiceDep = Annotated[ProvisioningService, Depends(get_provisioning_service)]
MembershipServiceDep = Annotated[MembershipReassignmentService, Depends(get_membership_service)]
