# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Provisioning service for the three onboarding flows.

Each flow is a thin adapter that validates the caller's input, maps it onto
a ProvisioningRequest and runs the shared saga with the flow's variant:

- process_checkout: paid checkout after the payment gateway confirmed payment
- process_free_trial: time-limited trial for a program
- process_public_signup: self-service signup with the caller's own password

Example:
    >>> service = ProvisioningService.build(settings, sessionmaker)
    >>> outcome = await service.process_checkout(request)
    >>> if outcome.status == "success":
    ...     print(outcome.tenant_id)
"""

import logging
import secrets
import string
from collections.abc import Callable, Mapping
from dataclasses import replace
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, SecretStr, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import ProvisioningSettings, Settings
from src.domains.catalog.service import Catalog, CatalogService
from src.domains.provisioning.saga import (
    CHECKOUT,
    FREE_TRIAL,
    PUBLIC_SIGNUP,
    ProvisioningSaga,
    ProvisioningVariant,
)
from src.domains.provisioning.stores import (
    AdminUserStore,
    CredentialStore,
    LocationStore,
    PurchaseRecordStore,
    TenantStore,
)
from src.infrastructure.identity import CredentialContextFactory
from src.infrastructure.notifications.email import Notifier, SMTPWelcomeNotifier
from src.models.provisioning import (
    CheckoutRequest,
    FreeTrialRequest,
    ProvisioningErrorKind,
    ProvisioningFailure,
    ProvisioningRequest,
    ProvisioningSuccess,
    PublicSignupRequest,
    RequesterKind,
)
from src.utils.retry import RetryPolicy, SleepFunc

logger = logging.getLogger(__name__)

ProvisioningOutcome = ProvisioningSuccess | ProvisioningFailure

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"


def generate_temporary_password(length: int = 12) -> str:
    """Generate a random admin password with at least one letter and digit.

    Args:
        length: Password length.

    Returns:
        The generated password.
    """
    while True:
        password = "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
        if any(c.isalpha() for c in password) and any(c.isdigit() for c in password):
            return password


def _validation_failure(error: ValidationError) -> ProvisioningFailure:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'request'}: {err['msg']}"
        for err in error.errors()
    )
    return ProvisioningFailure(
        error_kind=ProvisioningErrorKind.VALIDATION,
        message=f"Invalid provisioning data: {details}",
    )


class ProvisioningService:
    """Entry point for tenant provisioning.

    Attributes:
        saga: The shared provisioning saga.
    """

    def __init__(self, saga: ProvisioningSaga, settings: ProvisioningSettings) -> None:
        """Initialize the provisioning service.

        Args:
            saga: Configured provisioning saga.
            settings: Provisioning defaults.
        """
        self.saga = saga
        self._settings = settings

    @classmethod
    def build(
        cls,
        settings: Settings,
        sessionmaker: async_sessionmaker[AsyncSession],
        contexts: CredentialContextFactory | None = None,
        notifier: Notifier | None = None,
        catalog: Catalog | None = None,
        sleep: SleepFunc | None = None,
    ) -> "ProvisioningService":
        """Wire the saga with datastore-backed stores.

        Args:
            settings: Application settings.
            sessionmaker: Datastore sessionmaker.
            contexts: Identity context factory. Defaults to HTTP clients.
            notifier: Welcome email sender. Defaults to SMTP.
            catalog: Program and course lookups. Defaults to the datastore.
            sleep: Retry backoff sleep (overridable for tests).

        Returns:
            A ready ProvisioningService.
        """
        retry = RetryPolicy.from_settings(settings.retry, sleep=sleep)
        saga = ProvisioningSaga(
            catalog=catalog or CatalogService(sessionmaker),
            tenants=TenantStore(sessionmaker, retry),
            locations=LocationStore(
                sessionmaker,
                retry,
                default_name=settings.provisioning.default_location_name,
            ),
            credentials=CredentialStore(retry),
            admin_users=AdminUserStore(sessionmaker, retry),
            purchases=PurchaseRecordStore(sessionmaker, retry),
            notifier=notifier or SMTPWelcomeNotifier(settings.smtp),
            contexts=contexts or CredentialContextFactory(settings.identity),
            timeout_seconds=settings.provisioning.saga_timeout_seconds,
            default_trial_days=settings.provisioning.default_trial_days,
        )
        return cls(saga, settings.provisioning)

    def _password_or_generated(self, password: SecretStr | None) -> SecretStr:
        """Return the caller's password, or a generated one when none was given."""
        if password is not None and password.get_secret_value():
            return password
        return SecretStr(generate_temporary_password(self._settings.temporary_password_length))

    async def _run(
        self,
        variant: ProvisioningVariant,
        build_request: Callable[[], ProvisioningRequest],
    ) -> ProvisioningOutcome:
        try:
            request: ProvisioningRequest = build_request()
        except ValidationError as e:
            logger.info("Rejected %s request: %s", variant.name, e.error_count())
            return _validation_failure(e)
        return await self.saga.run(request, variant)

    @staticmethod
    def _coerce(model: type[BaseModel], data: BaseModel | Mapping[str, Any]) -> Any:
        if isinstance(data, model):
            return data
        return model.model_validate(dict(data))

    # ========================================================================
    # Flows
    # ========================================================================

    async def process_checkout(
        self,
        data: CheckoutRequest | Mapping[str, Any],
    ) -> ProvisioningOutcome:
        """Provision a tenant for a paid checkout.

        Args:
            data: Checkout details with the verified payment reference.

        Returns:
            Tagged provisioning outcome.
        """

        def build() -> ProvisioningRequest:
            checkout: CheckoutRequest = self._coerce(CheckoutRequest, data)
            password = self._password_or_generated(checkout.password)
            return ProvisioningRequest(
                requester_kind=RequesterKind.PAID,
                customer_name=checkout.customer_name,
                tenant_name=checkout.company_name,
                admin_email=checkout.admin_email,
                password=password,
                requires_password_change=True,
                program_id=checkout.selected_program_id,
                sale_amount=checkout.final_total_amount,
                revenue_share_partners=(
                    tuple(checkout.revenue_share_partners)
                    if checkout.revenue_share_partners
                    else None
                ),
                partner_id=checkout.partner_id,
                payment_reference=checkout.payment_reference,
                max_users=checkout.max_users,
            )

        return await self._run(CHECKOUT, build)

    async def process_free_trial(
        self,
        data: FreeTrialRequest | Mapping[str, Any],
    ) -> ProvisioningOutcome:
        """Provision a trial tenant.

        Args:
            data: Trial details. Duration defaults to the configured trial
                length.

        Returns:
            Tagged provisioning outcome.
        """
        variant = replace(FREE_TRIAL, trial_days=self._settings.default_trial_days)

        def build() -> ProvisioningRequest:
            trial: FreeTrialRequest = self._coerce(FreeTrialRequest, data)
            password = self._password_or_generated(trial.password)
            return ProvisioningRequest(
                requester_kind=RequesterKind.TRIAL,
                customer_name=trial.customer_name,
                tenant_name=trial.company_name,
                admin_email=trial.admin_email,
                password=password,
                requires_password_change=True,
                program_id=trial.selected_program_id,
                trial_days=trial.trial_duration_days,
                sale_amount=Decimal("0"),
                partner_id=trial.partner_id,
                max_users=trial.max_users,
            )

        return await self._run(variant, build)

    async def process_public_signup(
        self,
        data: PublicSignupRequest | Mapping[str, Any],
    ) -> ProvisioningOutcome:
        """Provision a self-service tenant.

        The caller's password is kept and no password change is required.

        Args:
            data: Signup form values.

        Returns:
            Tagged provisioning outcome. On success it carries a login token
            unless minting failed.
        """

        def build() -> ProvisioningRequest:
            signup: PublicSignupRequest = self._coerce(PublicSignupRequest, data)
            return ProvisioningRequest(
                requester_kind=RequesterKind.PUBLIC_SIGNUP,
                customer_name=signup.customer_name,
                tenant_name=signup.company_name,
                admin_email=signup.email,
                password=signup.password,
                requires_password_change=False,
                sale_amount=Decimal("0"),
                max_users=self._settings.public_signup_max_users,
            )

        return await self._run(PUBLIC_SIGNUP, build)
