# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Provisioning request and outcome models.

The three caller-facing requests (checkout, free trial, public signup) are
mapped onto a single immutable ProvisioningRequest that the saga consumes.
Outcomes are a tagged union discriminated by status.
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, SecretStr


class RequesterKind(str, Enum):
    """Which flow started a provisioning run."""

    PAID = "paid"
    TRIAL = "trial"
    PUBLIC_SIGNUP = "public-signup"


class ProvisioningErrorKind(str, Enum):
    """Stable failure categories reported to callers."""

    VALIDATION = "validation"
    CREDENTIAL_CREATION = "credential_creation"
    PERSISTENCE = "persistence"
    TIMEOUT = "timeout"
    UNEXPECTED = "unexpected"


class RevenueSharePartner(BaseModel):
    """A partner entitled to a share of the sale."""

    name: str = Field(..., min_length=1, max_length=255)
    company: str | None = Field(None, max_length=255)
    percentage: Decimal = Field(..., ge=0, le=100)


# ============================================================================
# Internal request
# ============================================================================


class ProvisioningRequest(BaseModel):
    """Everything one provisioning run needs. Immutable for the run.

    Attributes:
        requester_kind: Flow that started the run.
        customer_name: Admin user's display name.
        tenant_name: Brand display name.
        admin_email: Admin sign-in email.
        password: Admin password (caller supplied or generated).
        requires_password_change: Force a change at first login.
        program_id: Program to assign. Required for paid and trial runs.
        trial_days: Trial length for trial runs.
        sale_amount: Amount charged, paid runs only.
        revenue_share_partners: Partner payout splits.
        partner_id: Referring partner.
        payment_reference: Verified payment reference from the gateway.
        max_users: Seat limit for the tenant.
    """

    model_config = ConfigDict(frozen=True)

    requester_kind: RequesterKind
    customer_name: str = Field(..., min_length=1, max_length=255)
    tenant_name: str = Field(..., min_length=1, max_length=255)
    admin_email: EmailStr
    password: SecretStr
    requires_password_change: bool = True
    program_id: str | None = None
    trial_days: int | None = Field(None, ge=1)
    sale_amount: Decimal = Field(default=Decimal("0"), ge=0)
    revenue_share_partners: tuple[RevenueSharePartner, ...] | None = None
    partner_id: str | None = None
    payment_reference: str | None = None
    max_users: int | None = Field(None, ge=1)


# ============================================================================
# Caller-facing requests
# ============================================================================


class CheckoutRequest(BaseModel):
    """Paid checkout submitted after the payment gateway confirmed payment."""

    customer_name: str = Field(..., min_length=2, max_length=255)
    company_name: str = Field(..., min_length=2, max_length=255)
    admin_email: EmailStr
    password: SecretStr | None = Field(None, description="Admin password, generated if omitted")
    selected_program_id: str = Field(..., min_length=1)
    max_users: int | None = Field(None, ge=1)
    final_total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_reference: str | None = Field(None, description="Verified payment reference")
    revenue_share_partners: list[RevenueSharePartner] | None = None
    partner_id: str | None = None


class FreeTrialRequest(BaseModel):
    """Free trial for a program."""

    customer_name: str = Field(..., min_length=2, max_length=255)
    company_name: str = Field(..., min_length=2, max_length=255)
    admin_email: EmailStr
    password: SecretStr | None = Field(None, description="Admin password, generated if omitted")
    selected_program_id: str = Field(..., min_length=1)
    max_users: int | None = Field(None, ge=1)
    trial_duration_days: int | None = Field(None, ge=1)
    partner_id: str | None = None


class PublicSignupRequest(BaseModel):
    """Self-service signup from the public site."""

    customer_name: str = Field(..., min_length=2, max_length=255)
    company_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: SecretStr = Field(..., min_length=8)


# ============================================================================
# Outcomes
# ============================================================================


class ProvisioningWarning(BaseModel):
    """A non-fatal step failure attached to a successful outcome."""

    kind: Literal["partial_success"] = "partial_success"
    step: str
    message: str


class ProvisioningSuccess(BaseModel):
    """All mandatory resources were created."""

    status: Literal["success"] = "success"
    tenant_id: str
    admin_user_id: str
    purchase_record_id: str | None = None
    login_token: str | None = None
    warnings: list[ProvisioningWarning] = Field(default_factory=list)


class ProvisioningFailure(BaseModel):
    """The run aborted and created resources were compensated."""

    status: Literal["failure"] = "failure"
    error_kind: ProvisioningErrorKind
    message: str
    provider_code: str | None = None
    credential_kind: str | None = None


ProvisioningOutcome = Annotated[
    ProvisioningSuccess | ProvisioningFailure,
    Field(discriminator="status"),
]
