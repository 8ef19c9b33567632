# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity service integration.

This package provides:
- IdentityServiceClient: REST client for account creation, deletion and
  custom login tokens
- CredentialContextFactory: Per-invocation client contexts that are always
  released
"""

from src.infrastructure.identity.client import (
    Credential,
    IdentityService,
    IdentityServiceClient,
    IdentityServiceError,
)
from src.infrastructure.identity.context import (
    CredentialContextFactory,
    CredentialContextHandle,
)

__all__ = [
    "Credential",
    "IdentityService",
    "IdentityServiceClient",
    "IdentityServiceError",
    "CredentialContextFactory",
    "CredentialContextHandle",
]
