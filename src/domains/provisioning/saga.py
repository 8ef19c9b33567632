# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant provisioning saga.

Creates a tenant, its default location, a sign-in credential, the admin
user and, for paid checkouts, a purchase record. The credential lives in the
identity service and everything else in the datastore, so there is no shared
transaction. Instead every fatal step registers a compensating action and a
failure unwinds them in reverse order of creation.

Step policy:
    resolve_program      fatal, before any write
    create_tenant        fatal, nothing to compensate yet
    create_location      non-fatal, continue with no location
    create_credential    fatal, compensates the tenant
    create_admin_user    fatal, compensates credential then tenant
    record_purchase      non-fatal, paid checkouts only, logged CRITICAL
    send_welcome_email   non-fatal
    issue_login_token    non-fatal, public signup only

The whole run is bounded by a deadline. Expiry counts as a failure of the
step in flight with kind "timeout" and follows that step's policy. The
identity context acquired for the run is released on every exit path.

Example:
    >>> saga = ProvisioningSaga(catalog, tenants, locations, credentials,
    ...                         admin_users, purchases, notifier, contexts)
    >>> outcome = await saga.run(request, CHECKOUT)
"""

import asyncio
import logging
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from src.domains.catalog.service import Catalog
from src.domains.provisioning.exceptions import (
    CompensationError,
    CredentialCreationError,
    LoginTokenError,
    NotificationError,
    PersistenceError,
    ProvisioningError,
    ProvisioningValidationError,
)
from src.domains.provisioning.stores import (
    AdminUserDraft,
    AdminUserStore,
    CredentialStore,
    LocationStore,
    PurchaseRecordDraft,
    PurchaseRecordStore,
    TenantDraft,
    TenantStore,
)
from src.infrastructure.database.models import Program, Tenant, User
from src.infrastructure.identity import (
    Credential,
    CredentialContextFactory,
    CredentialContextHandle,
    IdentityServiceError,
)
from src.infrastructure.notifications.email import Notifier
from src.models.provisioning import (
    ProvisioningErrorKind,
    ProvisioningFailure,
    ProvisioningRequest,
    ProvisioningSuccess,
    ProvisioningWarning,
)
from src.utils.datetime import days_from_now
from src.utils.logging import bind_context, unbind_context

logger = logging.getLogger(__name__)


class SagaStep(str, Enum):
    """Steps of a provisioning run, in execution order."""

    RESOLVE_PROGRAM = "resolve_program"
    CREATE_TENANT = "create_tenant"
    CREATE_LOCATION = "create_location"
    CREATE_CREDENTIAL = "create_credential"
    CREATE_ADMIN_USER = "create_admin_user"
    RECORD_PURCHASE = "record_purchase"
    SEND_WELCOME_EMAIL = "send_welcome_email"
    ISSUE_LOGIN_TOKEN = "issue_login_token"


# ============================================================================
# Step results
# ============================================================================


@dataclass(frozen=True)
class StepSucceeded:
    """A step completed."""

    step: SagaStep
    value: Any = None


@dataclass(frozen=True)
class StepFailed:
    """A step failed.

    Attributes:
        step: The failed step.
        error_kind: Outcome category.
        message: Caller-facing message.
        error: The underlying exception.
        provider_code: Identity-service code, for credential failures.
        credential_kind: Stable category of a credential failure.
    """

    step: SagaStep
    error_kind: ProvisioningErrorKind
    message: str
    error: BaseException
    provider_code: str | None = None
    credential_kind: str | None = None


StepResult = StepSucceeded | StepFailed


# ============================================================================
# Variants
# ============================================================================


@dataclass(frozen=True)
class ProvisioningVariant:
    """Per-flow switches for one parameterized saga.

    Attributes:
        name: Flow label used in logs.
        context_prefix: Prefix of the identity context name.
        require_program: Abort when no program resolves.
        require_payment_reference: Paid runs with a positive amount need a
            verified payment reference.
        expect_purchase_record: Write a purchase record.
        is_trial: Create the tenant as a trial.
        trial_days: Default trial length when the request carries none.
        send_welcome_email: Send the welcome email.
        mint_login_token: Issue a custom login token for immediate sign-in.
    """

    name: str
    context_prefix: str
    require_program: bool = True
    require_payment_reference: bool = False
    expect_purchase_record: bool = False
    is_trial: bool = False
    trial_days: int | None = None
    send_welcome_email: bool = True
    mint_login_token: bool = False


CHECKOUT = ProvisioningVariant(
    name="checkout",
    context_prefix="checkout",
    require_payment_reference=True,
    expect_purchase_record=True,
)

FREE_TRIAL = ProvisioningVariant(
    name="free_trial",
    context_prefix="trial",
    is_trial=True,
)

PUBLIC_SIGNUP = ProvisioningVariant(
    name="public_signup",
    context_prefix="signup",
    require_program=False,
    mint_login_token=True,
)


# ============================================================================
# Run state
# ============================================================================


Compensation = Callable[[], Awaitable[None]]


@dataclass
class _SagaRun:
    """Mutable state of one run. Never shared between runs."""

    run_id: str
    request: ProvisioningRequest
    variant: ProvisioningVariant
    handle: CredentialContextHandle
    program: Program | None = None
    tenant: Tenant | None = None
    location_ids: list[str] = field(default_factory=list)
    credential: Credential | None = None
    admin_user: User | None = None
    purchase_record_id: str | None = None
    login_token: str | None = None
    warnings: list[ProvisioningWarning] = field(default_factory=list)
    compensations: list[tuple[SagaStep, str, Compensation]] = field(default_factory=list)

    def require_tenant(self) -> Tenant:
        if self.tenant is None:
            raise ProvisioningError("No tenant has been created in this run")
        return self.tenant

    def require_credential(self) -> Credential:
        if self.credential is None:
            raise ProvisioningError("No credential has been created in this run")
        return self.credential

    def require_admin_user(self) -> User:
        if self.admin_user is None:
            raise ProvisioningError("No admin user has been created in this run")
        return self.admin_user


@dataclass(frozen=True)
class StepDefinition:
    """One entry of the step table."""

    step: SagaStep
    action: Callable[[_SagaRun], Awaitable[Any]]
    fatal: bool
    applies: Callable[[ProvisioningVariant], bool] = lambda variant: True


# ============================================================================
# Saga
# ============================================================================


class ProvisioningSaga:
    """Runs the ordered provisioning steps with compensation.

    The saga holds no per-run state of its own, so one instance serves
    concurrent runs.
    """

    def __init__(
        self,
        catalog: Catalog,
        tenants: TenantStore,
        locations: LocationStore,
        credentials: CredentialStore,
        admin_users: AdminUserStore,
        purchases: PurchaseRecordStore,
        notifier: Notifier,
        contexts: CredentialContextFactory,
        timeout_seconds: float = 60.0,
        default_trial_days: int = 7,
    ) -> None:
        """Initialize the saga.

        Args:
            catalog: Program and course lookups.
            tenants: Tenant store.
            locations: Location store.
            credentials: Identity-service account store.
            admin_users: Admin user store.
            purchases: Purchase record store.
            notifier: Welcome email sender.
            contexts: Ephemeral identity context factory.
            timeout_seconds: Deadline for the whole run.
            default_trial_days: Trial length when neither the request nor
                the variant specifies one.
        """
        self._catalog = catalog
        self._tenants = tenants
        self._locations = locations
        self._credentials = credentials
        self._admin_users = admin_users
        self._purchases = purchases
        self._notifier = notifier
        self._contexts = contexts
        self._timeout_seconds = timeout_seconds
        self._default_trial_days = default_trial_days

        self._steps: tuple[StepDefinition, ...] = (
            StepDefinition(SagaStep.RESOLVE_PROGRAM, self._resolve_program, fatal=True),
            StepDefinition(SagaStep.CREATE_TENANT, self._create_tenant, fatal=True),
            StepDefinition(SagaStep.CREATE_LOCATION, self._create_location, fatal=False),
            StepDefinition(SagaStep.CREATE_CREDENTIAL, self._create_credential, fatal=True),
            StepDefinition(SagaStep.CREATE_ADMIN_USER, self._create_admin_user, fatal=True),
            StepDefinition(
                SagaStep.RECORD_PURCHASE,
                self._record_purchase,
                fatal=False,
                applies=lambda variant: variant.expect_purchase_record,
            ),
            StepDefinition(
                SagaStep.SEND_WELCOME_EMAIL,
                self._send_welcome_email,
                fatal=False,
                applies=lambda variant: variant.send_welcome_email,
            ),
            StepDefinition(
                SagaStep.ISSUE_LOGIN_TOKEN,
                self._issue_login_token,
                fatal=False,
                applies=lambda variant: variant.mint_login_token,
            ),
        )

    async def run(
        self,
        request: ProvisioningRequest,
        variant: ProvisioningVariant,
    ) -> ProvisioningSuccess | ProvisioningFailure:
        """Provision a tenant.

        Never raises for step failures; they are reported in the outcome.

        Args:
            request: Immutable request for this run.
            variant: Flow switches.

        Returns:
            ProvisioningSuccess, possibly with warnings, or
            ProvisioningFailure after compensation.
        """
        run_id = secrets.token_hex(6)
        bind_context(provisioning_run=run_id, flow=variant.name)
        logger.info("Provisioning started for tenant %r", request.tenant_name)
        try:
            async with self._contexts.scoped(variant.context_prefix) as handle:
                state = _SagaRun(run_id=run_id, request=request, variant=variant, handle=handle)
                return await self._execute(state)
        finally:
            unbind_context("provisioning_run", "flow")

    async def _execute(self, state: _SagaRun) -> ProvisioningSuccess | ProvisioningFailure:
        deadline = asyncio.get_running_loop().time() + self._timeout_seconds

        for definition in self._steps:
            if not definition.applies(state.variant):
                continue

            result = await self._attempt(definition, state, deadline)
            if isinstance(result, StepSucceeded):
                continue

            if definition.fatal:
                logger.error(
                    "Provisioning failed at %s (%s): %s",
                    result.step.value,
                    result.error_kind.value,
                    result.error,
                )
                await self._compensate(state)
                return ProvisioningFailure(
                    error_kind=result.error_kind,
                    message=result.message,
                    provider_code=result.provider_code,
                    credential_kind=result.credential_kind,
                )

            self._record_warning(state, result)

        tenant, admin_user = state.require_tenant(), state.require_admin_user()
        logger.info(
            "Provisioning completed: tenant=%s admin=%s warnings=%d",
            tenant.id,
            admin_user.id,
            len(state.warnings),
        )
        return ProvisioningSuccess(
            tenant_id=tenant.id,
            admin_user_id=admin_user.id,
            purchase_record_id=state.purchase_record_id,
            login_token=state.login_token,
            warnings=state.warnings,
        )

    async def _attempt(
        self,
        definition: StepDefinition,
        state: _SagaRun,
        deadline: float,
    ) -> StepResult:
        """Run one step under the run deadline and convert errors to StepFailed."""
        step = definition.step
        try:
            async with asyncio.timeout_at(deadline):
                value = await definition.action(state)
        except TimeoutError as e:
            if step is SagaStep.CREATE_CREDENTIAL:
                logger.warning(
                    "Timed out creating credential for %s; the identity service may "
                    "hold an orphaned account",
                    state.request.admin_email,
                )
            return StepFailed(
                step=step,
                error_kind=ProvisioningErrorKind.TIMEOUT,
                message=f"Provisioning timed out during {step.value}",
                error=e,
            )
        except CredentialCreationError as e:
            return StepFailed(
                step=step,
                error_kind=e.kind,
                message=e.message,
                error=e,
                provider_code=e.provider_code,
                credential_kind=e.credential_kind,
            )
        except PersistenceError as e:
            return StepFailed(step=step, error_kind=e.kind, message=e.message, error=e)
        except ProvisioningError as e:
            return StepFailed(step=step, error_kind=e.kind, message=str(e), error=e)
        except SQLAlchemyError as e:
            return StepFailed(
                step=step,
                error_kind=ProvisioningErrorKind.PERSISTENCE,
                message=f"Datastore error during {step.value}",
                error=e,
            )
        except Exception as e:
            logger.exception("Unexpected error during %s", step.value)
            return StepFailed(
                step=step,
                error_kind=ProvisioningErrorKind.UNEXPECTED,
                message=f"Unexpected error during {step.value}",
                error=e,
            )
        return StepSucceeded(step=step, value=value)

    async def _compensate(self, state: _SagaRun) -> None:
        """Undo registered actions in reverse order. Errors are logged only."""
        while state.compensations:
            step, resource_id, undo = state.compensations.pop()
            try:
                await undo()
            except Exception as e:
                error = CompensationError(step.value, resource_id, e)
                logger.error("CompensationError: %s", error)
            else:
                logger.info("Compensated %s (%s)", step.value, resource_id)

    def _record_warning(self, state: _SagaRun, result: StepFailed) -> None:
        if result.step is SagaStep.RECORD_PURCHASE:
            tenant_id = state.tenant.id if state.tenant else None
            logger.critical(
                "CRITICAL: purchase record for tenant %s (payment %s, amount %s) was not "
                "written; manual reconciliation needed: %s",
                tenant_id,
                state.request.payment_reference,
                state.request.sale_amount,
                result.error,
            )
        else:
            logger.warning("PartialSuccess: %s failed: %s", result.step.value, result.error)
        state.warnings.append(ProvisioningWarning(step=result.step.value, message=result.message))

    # ========================================================================
    # Steps
    # ========================================================================

    def _trial_days(self, state: _SagaRun) -> int:
        return state.request.trial_days or state.variant.trial_days or self._default_trial_days

    async def _resolve_program(self, state: _SagaRun) -> Program | None:
        request, variant = state.request, state.variant

        if variant.is_trial and self._trial_days(state) < 1:
            raise ProvisioningValidationError("Trial duration must be at least one day")

        if (
            variant.require_payment_reference
            and request.sale_amount > 0
            and not request.payment_reference
        ):
            raise ProvisioningValidationError(
                "A verified payment reference is required for a paid checkout"
            )

        if request.program_id is None:
            if variant.require_program:
                raise ProvisioningValidationError("A program must be selected")
            return None

        program = await self._catalog.get_program_by_id(request.program_id)
        if program is None:
            raise ProvisioningValidationError(
                f"Selected program (ID: {request.program_id}) not found"
            )
        state.program = program
        return program

    async def _create_tenant(self, state: _SagaRun) -> Tenant:
        request, variant, program = state.request, state.variant, state.program

        partners = None
        if request.revenue_share_partners:
            partners = [p.model_dump(mode="json") for p in request.revenue_share_partners]

        draft = TenantDraft(
            name=request.tenant_name,
            program_ids=[program.id] if program else [],
            course_ids=list(program.course_ids) if program else [],
            max_users=request.max_users,
            is_trial=variant.is_trial,
            trial_ends_at=days_from_now(self._trial_days(state)) if variant.is_trial else None,
            sale_amount=request.sale_amount,
            revenue_share_partners=partners,
            partner_id=request.partner_id,
        )
        tenant = await self._tenants.create(draft)
        state.tenant = tenant
        state.compensations.append(
            (SagaStep.CREATE_TENANT, tenant.id, lambda: self._tenants.delete(tenant.id))
        )
        return tenant

    async def _create_location(self, state: _SagaRun) -> str:
        location = await self._locations.create_default(state.require_tenant().id)
        state.location_ids = [location.id]
        return location.id

    async def _create_credential(self, state: _SagaRun) -> Credential:
        handle = state.handle
        credential = await self._credentials.create(
            handle,
            state.request.admin_email,
            state.request.password.get_secret_value(),
        )
        state.credential = credential
        state.compensations.append(
            (
                SagaStep.CREATE_CREDENTIAL,
                credential.uid,
                lambda: self._credentials.delete(handle, credential),
            )
        )
        return credential

    async def _create_admin_user(self, state: _SagaRun) -> User:
        tenant, credential = state.require_tenant(), state.require_credential()
        user = await self._admin_users.create(
            AdminUserDraft(
                name=state.request.customer_name,
                email=state.request.admin_email,
                tenant_id=tenant.id,
                location_ids=state.location_ids,
                credential_uid=credential.uid,
                requires_password_change=state.request.requires_password_change,
            )
        )
        state.admin_user = user
        return user

    async def _record_purchase(self, state: _SagaRun) -> str:
        tenant, admin_user = state.require_tenant(), state.require_admin_user()
        request, program = state.request, state.program

        course_ids = list(program.course_ids) if program else []
        course_titles = []
        for course_id in course_ids:
            course = await self._catalog.get_course_by_id(course_id)
            course_titles.append(course.title if course else f"Unknown Course (ID: {course_id})")

        partners = None
        if request.revenue_share_partners:
            partners = [p.model_dump(mode="json") for p in request.revenue_share_partners]

        record = await self._purchases.create(
            PurchaseRecordDraft(
                tenant_id=tenant.id,
                tenant_name=tenant.name,
                admin_user_id=admin_user.id,
                admin_email=request.admin_email,
                amount_paid=request.sale_amount,
                payment_reference=request.payment_reference,
                program_id=program.id if program else None,
                program_title=program.title if program else None,
                course_ids=course_ids,
                course_titles=course_titles,
                revenue_share_partners=partners,
                max_users_configured=request.max_users,
            )
        )
        state.purchase_record_id = record.id
        return record.id

    async def _send_welcome_email(self, state: _SagaRun) -> bool:
        request = state.request
        temp_secret = request.password.get_secret_value() if request.requires_password_change else None
        sent = await self._notifier.send_welcome_email(
            request.admin_email,
            request.customer_name,
            temp_secret,
        )
        if not sent:
            raise NotificationError(f"Welcome email to {request.admin_email} was not delivered")
        return sent

    async def _issue_login_token(self, state: _SagaRun) -> str:
        credential = state.require_credential()
        try:
            token = state.handle.identity.mint_custom_token(credential.uid)
        except IdentityServiceError as e:
            raise LoginTokenError(f"Could not issue login token: {e.message}") from e
        state.login_token = token
        return token
