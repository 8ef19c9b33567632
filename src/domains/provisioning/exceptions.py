# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Provisioning error taxonomy.

Fatal step errors become a ProvisioningFailure after compensation. Non-fatal
errors become warnings on a ProvisioningSuccess. CompensationError is only
ever logged.
"""

from src.infrastructure.database.connection import DatabaseError
from src.models.provisioning import ProvisioningErrorKind


class CredentialErrorKind:
    """Stable categories for identity-service rejections."""

    EMAIL_ALREADY_REGISTERED = "email_already_registered"
    WEAK_PASSWORD = "weak_password"
    INVALID_EMAIL = "invalid_email"
    OPERATION_NOT_ALLOWED = "operation_not_allowed"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


PROVIDER_CODE_KINDS: dict[str, str] = {
    "EMAIL_EXISTS": CredentialErrorKind.EMAIL_ALREADY_REGISTERED,
    "auth/email-already-in-use": CredentialErrorKind.EMAIL_ALREADY_REGISTERED,
    "WEAK_PASSWORD": CredentialErrorKind.WEAK_PASSWORD,
    "auth/weak-password": CredentialErrorKind.WEAK_PASSWORD,
    "INVALID_EMAIL": CredentialErrorKind.INVALID_EMAIL,
    "auth/invalid-email": CredentialErrorKind.INVALID_EMAIL,
    "OPERATION_NOT_ALLOWED": CredentialErrorKind.OPERATION_NOT_ALLOWED,
    "auth/operation-not-allowed": CredentialErrorKind.OPERATION_NOT_ALLOWED,
    "TOO_MANY_ATTEMPTS_TRY_LATER": CredentialErrorKind.RATE_LIMITED,
    "auth/too-many-requests": CredentialErrorKind.RATE_LIMITED,
    "TRANSPORT_ERROR": CredentialErrorKind.UNAVAILABLE,
}

CREDENTIAL_ERROR_MESSAGES: dict[str, str] = {
    CredentialErrorKind.EMAIL_ALREADY_REGISTERED: (
        "This email address is already registered. Please log in instead."
    ),
    CredentialErrorKind.WEAK_PASSWORD: "The password is too weak.",
    CredentialErrorKind.INVALID_EMAIL: "The email address is not valid.",
    CredentialErrorKind.RATE_LIMITED: "Too many attempts. Please try again later.",
    CredentialErrorKind.UNAVAILABLE: "The sign-in service is unavailable. Please try again later.",
}


def classify_provider_code(provider_code: str) -> str:
    """Map a provider error code to a CredentialErrorKind value."""
    return PROVIDER_CODE_KINDS.get(provider_code, CredentialErrorKind.UNKNOWN)


class ProvisioningError(Exception):
    """Base exception for provisioning errors."""

    kind: ProvisioningErrorKind = ProvisioningErrorKind.UNEXPECTED


class ProvisioningValidationError(ProvisioningError):
    """Raised when a request fails pre-write validation."""

    kind = ProvisioningErrorKind.VALIDATION


class CredentialCreationError(ProvisioningError):
    """Raised when the identity service rejects account creation.

    Attributes:
        provider_code: Raw provider code, e.g. EMAIL_EXISTS.
        credential_kind: CredentialErrorKind value.
        message: Caller-facing message.
    """

    kind = ProvisioningErrorKind.CREDENTIAL_CREATION

    def __init__(self, provider_code: str, message: str) -> None:
        self.provider_code = provider_code
        self.credential_kind = classify_provider_code(provider_code)
        self.message = CREDENTIAL_ERROR_MESSAGES.get(self.credential_kind, message)
        super().__init__(f"{provider_code} - {message}")


class CredentialDeletionError(ProvisioningError):
    """Raised when a compensating credential delete fails."""

    pass


class PersistenceError(ProvisioningError, DatabaseError):
    """Raised when a datastore write fails permanently or after retries."""

    kind = ProvisioningErrorKind.PERSISTENCE

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        DatabaseError.__init__(self, message, original_error)


class CompensationError(ProvisioningError):
    """A compensating action failed. Logged for operators, never raised to callers.

    Attributes:
        step: Step whose resource could not be removed.
        resource_id: Id of the orphaned resource.
    """

    def __init__(self, step: str, resource_id: str, cause: BaseException) -> None:
        self.step = step
        self.resource_id = resource_id
        self.cause = cause
        super().__init__(f"Compensation of {step} ({resource_id}) failed: {cause}")


class NotificationError(ProvisioningError):
    """Raised when the welcome email could not be delivered."""

    pass


class LoginTokenError(ProvisioningError):
    """Raised when a custom login token could not be minted."""

    pass
