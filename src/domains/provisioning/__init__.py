# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant provisioning domain.

This package provides the ProvisioningService with the paid checkout, free
trial and public signup flows. All three run the same ProvisioningSaga,
which creates the tenant, its default location, the admin credential and
user, and compensates in reverse order when a fatal step fails.
"""

from src.domains.provisioning.exceptions import (
    CompensationError,
    CredentialCreationError,
    CredentialDeletionError,
    PersistenceError,
    ProvisioningError,
    ProvisioningValidationError,
)
from src.domains.provisioning.saga import (
    CHECKOUT,
    FREE_TRIAL,
    PUBLIC_SIGNUP,
    ProvisioningSaga,
    ProvisioningVariant,
    SagaStep,
)
from src.domains.provisioning.service import ProvisioningService

__all__ = [
    "ProvisioningService",
    "ProvisioningSaga",
    "ProvisioningVariant",
    "SagaStep",
    "CHECKOUT",
    "FREE_TRIAL",
    "PUBLIC_SIGNUP",
    "ProvisioningError",
    "ProvisioningValidationError",
    "CredentialCreationError",
    "CredentialDeletionError",
    "PersistenceError",
    "CompensationError",
]
