# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the provisioning saga.

The stores are in-memory fakes that append to a shared event log, so tests
can assert on the order of creates and compensating deletes.
"""

import asyncio
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from src.core.config.settings import IdentitySettings
from src.domains.provisioning import (
    CHECKOUT,
    FREE_TRIAL,
    PUBLIC_SIGNUP,
    CredentialCreationError,
    PersistenceError,
    ProvisioningError,
    ProvisioningSaga,
)
from src.domains.provisioning.saga import _SagaRun
from src.domains.provisioning.stores import AdminUserDraft, PurchaseRecordDraft, TenantDraft
from src.infrastructure.database.models import Course, Location, Program, PurchaseRecord, Tenant, User
from src.infrastructure.database.models.base import new_id
from src.infrastructure.identity import (
    Credential,
    CredentialContextFactory,
    CredentialContextHandle,
    IdentityServiceError,
)
from src.models.provisioning import (
    ProvisioningErrorKind,
    ProvisioningFailure,
    ProvisioningRequest,
    ProvisioningSuccess,
    RequesterKind,
    RevenueSharePartner,
)
from src.utils.datetime import utc_now


# =============================================================================
# Fakes
# =============================================================================


class FakeCatalog:
    def __init__(self) -> None:
        self.programs = {
            "prog-1": Program(id="prog-1", title="Leadership", course_ids=["c1", "c2"]),
        }
        self.courses = {"c1": Course(id="c1", title="Course One")}

    async def get_program_by_id(self, program_id: str) -> Program | None:
        return self.programs.get(program_id)

    async def get_course_by_id(self, course_id: str) -> Course | None:
        return self.courses.get(course_id)


class FakeTenantStore:
    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.rows: dict[str, Tenant] = {}
        self.drafts: list[TenantDraft] = []
        self.fail_create: Exception | None = None
        self.fail_delete: Exception | None = None
        self.create_delay = 0.0

    async def create(self, draft: TenantDraft) -> Tenant:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_create:
            raise self.fail_create
        tenant = Tenant(id=new_id(), name=draft.name, is_trial=draft.is_trial)
        self.rows[tenant.id] = tenant
        self.drafts.append(draft)
        self.events.append("create:tenant")
        return tenant

    async def delete(self, tenant_id: str) -> None:
        if self.fail_delete:
            raise self.fail_delete
        self.rows.pop(tenant_id, None)
        self.events.append("delete:tenant")


class FakeLocationStore:
    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.fail: Exception | None = None

    async def create_default(self, tenant_id: str) -> Location:
        if self.fail:
            raise self.fail
        self.events.append("create:location")
        return Location(id=new_id(), tenant_id=tenant_id, name="Main Location")


class FakeCredentialStore:
    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.accounts: dict[str, Credential] = {}
        self.fail_create: Exception | None = None
        self.create_delay = 0.0

    async def create(self, handle: CredentialContextHandle, email: str, secret: str) -> Credential:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_create:
            raise self.fail_create
        await asyncio.sleep(0)
        if email in self.accounts:
            raise CredentialCreationError("EMAIL_EXISTS", "EMAIL_EXISTS")
        credential = Credential(uid=f"uid-{len(self.accounts) + 1}", email=email, id_token="tok")
        self.accounts[email] = credential
        self.events.append("create:credential")
        return credential

    async def delete(self, handle: CredentialContextHandle, credential: Credential) -> None:
        self.accounts.pop(credential.email, None)
        self.events.append("delete:credential")


class FakeAdminUserStore:
    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.drafts: list[AdminUserDraft] = []
        self.fail: Exception | None = None

    async def create(self, draft: AdminUserDraft) -> User:
        if self.fail:
            raise self.fail
        self.drafts.append(draft)
        self.events.append("create:admin_user")
        return User(id=new_id(), name=draft.name, email=draft.email, tenant_id=draft.tenant_id)


class FakePurchaseStore:
    def __init__(self, events: list[str]) -> None:
        self.events = events
        self.drafts: list[PurchaseRecordDraft] = []
        self.fail: Exception | None = None

    async def create(self, draft: PurchaseRecordDraft) -> PurchaseRecord:
        if self.fail:
            raise self.fail
        self.drafts.append(draft)
        self.events.append("create:purchase_record")
        return PurchaseRecord(id=new_id(), tenant_id=draft.tenant_id)


class Harness:
    """Saga wired to fakes."""

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self.events: list[str] = []
        self.catalog = FakeCatalog()
        self.tenants = FakeTenantStore(self.events)
        self.locations = FakeLocationStore(self.events)
        self.credentials = FakeCredentialStore(self.events)
        self.admin_users = FakeAdminUserStore(self.events)
        self.purchases = FakePurchaseStore(self.events)
        self.notifier = MagicMock()
        self.notifier.send_welcome_email = AsyncMock(return_value=True)
        self.clients: list[MagicMock] = []
        self.contexts = CredentialContextFactory(IdentitySettings(), client_factory=self._client)
        self.saga = ProvisioningSaga(
            catalog=self.catalog,
            tenants=self.tenants,  # type: ignore[arg-type]
            locations=self.locations,  # type: ignore[arg-type]
            credentials=self.credentials,  # type: ignore[arg-type]
            admin_users=self.admin_users,  # type: ignore[arg-type]
            purchases=self.purchases,  # type: ignore[arg-type]
            notifier=self.notifier,
            contexts=self.contexts,
            timeout_seconds=timeout_seconds,
            default_trial_days=7,
        )

    def _client(self, name: str) -> MagicMock:
        client = MagicMock()
        client.aclose = AsyncMock()
        client.mint_custom_token = MagicMock(return_value="custom-token")
        self.clients.append(client)
        return client


def make_request(**overrides: Any) -> ProvisioningRequest:
    values: dict[str, Any] = {
        "requester_kind": RequesterKind.PAID,
        "customer_name": "Grace Hopper",
        "tenant_name": "Compiler Works",
        "admin_email": "grace@example.com",
        "password": SecretStr("Tmp-Pass-123"),
        "requires_password_change": True,
        "program_id": "prog-1",
        "sale_amount": Decimal("199.00"),
        "payment_reference": "pi_123",
        "max_users": 10,
    }
    values.update(overrides)
    return ProvisioningRequest(**values)


@pytest.fixture
def harness() -> Harness:
    return Harness()


# =============================================================================
# Happy paths
# =============================================================================


class TestSuccessfulRuns:
    """Tests for runs where every step succeeds."""

    @pytest.mark.asyncio
    async def test_paid_checkout(self, harness: Harness) -> None:
        """Test a paid checkout creates every resource in order."""
        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningSuccess)
        assert outcome.purchase_record_id is not None
        assert outcome.login_token is None
        assert outcome.warnings == []
        assert harness.events == [
            "create:tenant",
            "create:location",
            "create:credential",
            "create:admin_user",
            "create:purchase_record",
        ]

    @pytest.mark.asyncio
    async def test_paid_checkout_records_program_and_courses(self, harness: Harness) -> None:
        """Test the tenant and purchase record carry the program's courses."""
        partners = (RevenueSharePartner(name="P1", percentage=Decimal("10")),)
        await harness.saga.run(make_request(revenue_share_partners=partners), CHECKOUT)

        tenant_draft = harness.tenants.drafts[0]
        assert tenant_draft.program_ids == ["prog-1"]
        assert tenant_draft.course_ids == ["c1", "c2"]
        assert tenant_draft.max_users == 10
        assert tenant_draft.revenue_share_partners == [
            {"name": "P1", "company": None, "percentage": "10"}
        ]

        record = harness.purchases.drafts[0]
        assert record.amount_paid == Decimal("199.00")
        assert record.payment_reference == "pi_123"
        assert record.program_title == "Leadership"
        assert record.course_titles == ["Course One", "Unknown Course (ID: c2)"]

    @pytest.mark.asyncio
    async def test_admin_user_gets_location_and_credential(self, harness: Harness) -> None:
        """Test the admin user is linked to the tenant, location and credential."""
        outcome = await harness.saga.run(make_request(), CHECKOUT)

        draft = harness.admin_users.drafts[0]
        assert isinstance(outcome, ProvisioningSuccess)
        assert draft.tenant_id == outcome.tenant_id
        assert len(draft.location_ids) == 1
        assert draft.credential_uid == "uid-1"
        assert draft.role == "Admin"
        assert draft.requires_password_change is True

    @pytest.mark.asyncio
    async def test_free_trial(self, harness: Harness) -> None:
        """Test a trial creates a trial tenant and no purchase record."""
        request = make_request(
            requester_kind=RequesterKind.TRIAL,
            sale_amount=Decimal("0"),
            payment_reference=None,
            trial_days=7,
        )

        outcome = await harness.saga.run(request, FREE_TRIAL)

        assert isinstance(outcome, ProvisioningSuccess)
        assert outcome.purchase_record_id is None
        assert "create:purchase_record" not in harness.events
        draft = harness.tenants.drafts[0]
        assert draft.is_trial is True
        remaining = draft.trial_ends_at - utc_now()
        assert 6.99 < remaining.total_seconds() / 86400 <= 7

    @pytest.mark.asyncio
    async def test_free_trial_uses_variant_default_days(self, harness: Harness) -> None:
        """Test the variant's trial length applies when the request has none."""
        request = make_request(requester_kind=RequesterKind.TRIAL, sale_amount=Decimal("0"))

        await harness.saga.run(request, replace(FREE_TRIAL, trial_days=14))

        remaining = harness.tenants.drafts[0].trial_ends_at - utc_now()
        assert 13.99 < remaining.total_seconds() / 86400 <= 14

    @pytest.mark.asyncio
    async def test_public_signup_issues_login_token(self, harness: Harness) -> None:
        """Test public signup needs no program and returns a login token."""
        request = make_request(
            requester_kind=RequesterKind.PUBLIC_SIGNUP,
            program_id=None,
            sale_amount=Decimal("0"),
            payment_reference=None,
            requires_password_change=False,
        )

        outcome = await harness.saga.run(request, PUBLIC_SIGNUP)

        assert isinstance(outcome, ProvisioningSuccess)
        assert outcome.login_token == "custom-token"
        assert harness.tenants.drafts[0].program_ids == []
        harness.notifier.send_welcome_email.assert_awaited_once_with(
            "grace@example.com", "Grace Hopper", None
        )

    @pytest.mark.asyncio
    async def test_welcome_email_carries_temporary_password(self, harness: Harness) -> None:
        """Test the generated password is emailed when a change is required."""
        await harness.saga.run(make_request(), CHECKOUT)

        harness.notifier.send_welcome_email.assert_awaited_once_with(
            "grace@example.com", "Grace Hopper", "Tmp-Pass-123"
        )


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    """Tests for failures before any write."""

    @pytest.mark.asyncio
    async def test_unknown_program(self, harness: Harness) -> None:
        """Test an unknown program fails with zero writes."""
        outcome = await harness.saga.run(make_request(program_id="missing"), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.VALIDATION
        assert outcome.message == "Selected program (ID: missing) not found"
        assert harness.events == []

    @pytest.mark.asyncio
    async def test_paid_checkout_requires_payment_reference(self, harness: Harness) -> None:
        """Test a positive amount without a payment reference is rejected."""
        outcome = await harness.saga.run(make_request(payment_reference=None), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.VALIDATION
        assert harness.events == []

    @pytest.mark.asyncio
    async def test_trial_requires_program(self, harness: Harness) -> None:
        """Test a trial without a program is rejected."""
        request = make_request(requester_kind=RequesterKind.TRIAL, program_id=None)

        outcome = await harness.saga.run(request, FREE_TRIAL)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.VALIDATION


# =============================================================================
# Compensation
# =============================================================================


class TestCompensation:
    """Tests for fatal failures and their compensation."""

    @pytest.mark.asyncio
    async def test_tenant_failure_has_nothing_to_undo(self, harness: Harness) -> None:
        """Test a failed tenant insert returns a persistence failure."""
        harness.tenants.fail_create = PersistenceError("Failed to create tenant")

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.PERSISTENCE
        assert harness.events == []

    @pytest.mark.asyncio
    async def test_credential_failure_deletes_tenant(self, harness: Harness) -> None:
        """Test a rejected credential removes the tenant created before it."""
        harness.credentials.fail_create = CredentialCreationError("EMAIL_EXISTS", "EMAIL_EXISTS")

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.CREDENTIAL_CREATION
        assert outcome.provider_code == "EMAIL_EXISTS"
        assert outcome.credential_kind == "email_already_registered"
        assert outcome.message == "This email address is already registered. Please log in instead."
        assert harness.events == ["create:tenant", "create:location", "delete:tenant"]
        assert harness.tenants.rows == {}
        assert harness.admin_users.drafts == []

    @pytest.mark.asyncio
    async def test_admin_user_failure_deletes_credential_then_tenant(self, harness: Harness) -> None:
        """Test compensation runs in reverse order of creation."""
        harness.admin_users.fail = PersistenceError("Failed to create admin user")

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.PERSISTENCE
        assert harness.events == [
            "create:tenant",
            "create:location",
            "create:credential",
            "delete:credential",
            "delete:tenant",
        ]
        assert harness.credentials.accounts == {}
        assert harness.tenants.rows == {}

    @pytest.mark.asyncio
    async def test_compensation_error_is_logged_not_raised(
        self, harness: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a failing compensation still returns the original failure."""
        harness.credentials.fail_create = CredentialCreationError("WEAK_PASSWORD", "too short")
        harness.tenants.fail_delete = PersistenceError("Failed to delete tenant")

        with caplog.at_level(logging.ERROR):
            outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.CREDENTIAL_CREATION
        assert outcome.message == "The password is too weak."
        assert any("CompensationError" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_unexpected_error(self, harness: Harness) -> None:
        """Test an unclassified error is reported as unexpected."""
        harness.admin_users.fail = RuntimeError("bug")

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.UNEXPECTED
        assert "delete:tenant" in harness.events


# =============================================================================
# Non-fatal steps
# =============================================================================


class TestNonFatalSteps:
    """Tests for steps that only add warnings."""

    @pytest.mark.asyncio
    async def test_purchase_record_failure_keeps_tenant(
        self, harness: Harness, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a failed purchase record still returns success."""
        harness.purchases.fail = PersistenceError("Failed to create purchase record")

        with caplog.at_level(logging.CRITICAL):
            outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningSuccess)
        assert outcome.tenant_id and outcome.admin_user_id
        assert outcome.purchase_record_id is None
        assert [w.step for w in outcome.warnings] == ["record_purchase"]
        assert outcome.warnings[0].kind == "partial_success"
        assert "delete:tenant" not in harness.events
        assert any(record.levelno == logging.CRITICAL for record in caplog.records)

    @pytest.mark.asyncio
    async def test_location_failure_continues_without_location(self, harness: Harness) -> None:
        """Test the admin is created with no location when the location fails."""
        harness.locations.fail = PersistenceError("Failed to create default location")

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningSuccess)
        assert harness.admin_users.drafts[0].location_ids == []
        assert [w.step for w in outcome.warnings] == ["create_location"]

    @pytest.mark.asyncio
    async def test_email_failure_is_a_warning(self, harness: Harness) -> None:
        """Test an undelivered welcome email does not fail the run."""
        harness.notifier.send_welcome_email.return_value = False

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningSuccess)
        assert [w.step for w in outcome.warnings] == ["send_welcome_email"]

    @pytest.mark.asyncio
    async def test_login_token_failure_is_a_warning(self, harness: Harness) -> None:
        """Test signup still succeeds when the login token cannot be minted."""
        original = harness._client

        def failing_client(name: str) -> MagicMock:
            client = original(name)
            client.mint_custom_token.side_effect = IdentityServiceError(
                "TOKEN_SIGNING_FAILED", "No signing key configured"
            )
            return client

        harness.contexts._client_factory = failing_client
        request = make_request(
            requester_kind=RequesterKind.PUBLIC_SIGNUP,
            program_id=None,
            sale_amount=Decimal("0"),
            payment_reference=None,
        )

        outcome = await harness.saga.run(request, PUBLIC_SIGNUP)

        assert isinstance(outcome, ProvisioningSuccess)
        assert outcome.login_token is None
        assert [w.step for w in outcome.warnings] == ["issue_login_token"]


# =============================================================================
# Context lifecycle, deadline and concurrency
# =============================================================================


class TestRunLifecycle:
    """Tests for context release, the run deadline and concurrent runs."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fail", [False, True])
    async def test_context_released_exactly_once(self, harness: Harness, fail: bool) -> None:
        """Test the identity context is closed once on success and failure."""
        if fail:
            harness.admin_users.fail = PersistenceError("Failed to create admin user")

        await harness.saga.run(make_request(), CHECKOUT)

        assert len(harness.clients) == 1
        harness.clients[0].aclose.assert_awaited_once()
        assert harness.contexts.live_names == frozenset()

    @pytest.mark.asyncio
    async def test_timeout_during_tenant_creation(self) -> None:
        """Test the run deadline turns a slow step into a timeout failure."""
        harness = Harness(timeout_seconds=0.05)
        harness.tenants.create_delay = 1.0

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.TIMEOUT
        harness.clients[0].aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_during_credential_compensates_tenant(self) -> None:
        """Test a timed out credential step removes the tenant."""
        harness = Harness(timeout_seconds=0.05)
        harness.credentials.create_delay = 1.0

        outcome = await harness.saga.run(make_request(), CHECKOUT)

        assert isinstance(outcome, ProvisioningFailure)
        assert outcome.error_kind is ProvisioningErrorKind.TIMEOUT
        assert harness.events[-1] == "delete:tenant"

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_email(self, harness: Harness) -> None:
        """Test two runs with the same email yield one success and one failure."""
        outcomes = await asyncio.gather(
            harness.saga.run(make_request(tenant_name="First Co"), CHECKOUT),
            harness.saga.run(make_request(tenant_name="Second Co"), CHECKOUT),
        )

        successes = [o for o in outcomes if isinstance(o, ProvisioningSuccess)]
        failures = [o for o in outcomes if isinstance(o, ProvisioningFailure)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert failures[0].error_kind is ProvisioningErrorKind.CREDENTIAL_CREATION
        assert "already registered" in failures[0].message
        assert failures[0].credential_kind == "email_already_registered"
        assert len(harness.tenants.rows) == 1
        assert len(harness.clients) == 2
        for client in harness.clients:
            client.aclose.assert_awaited_once()


# =============================================================================
# Run state
# =============================================================================


class TestRunState:
    """Tests for reading resources a run has not created yet."""

    @pytest.mark.parametrize(
        ("accessor", "resource"),
        [
            ("require_tenant", "tenant"),
            ("require_credential", "credential"),
            ("require_admin_user", "admin user"),
        ],
    )
    def test_missing_resource_raises(self, accessor: str, resource: str) -> None:
        """Test a missing resource raises ProvisioningError instead of passing None on."""
        state = _SagaRun(
            run_id="run-1",
            request=make_request(),
            variant=CHECKOUT,
            handle=MagicMock(),
        )

        with pytest.raises(ProvisioningError, match=f"No {resource} has been created"):
            getattr(state, accessor)()
