# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Resource creators used by the provisioning saga.

Each store is a thin adapter over the datastore or the identity service.
Datastore operations run inside the retry policy, one session per attempt.
Primary keys are generated before the first attempt, and every insert first
looks its id up, so a retry after an ambiguous commit returns the row that
already landed instead of failing on a duplicate key.

Exhausted or permanent SQLAlchemy failures surface as PersistenceError.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar

import httpx
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.provisioning.exceptions import (
    CredentialCreationError,
    CredentialDeletionError,
    PersistenceError,
)
from src.infrastructure.database.models import Location, PurchaseRecord, Tenant, User
from src.infrastructure.database.models.base import new_id
from src.infrastructure.identity import (
    Credential,
    CredentialContextHandle,
    IdentityServiceError,
)
from src.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADMIN_ROLE = "Admin"
DEFAULT_LOCATION_NAME = "Main Location"


# ============================================================================
# Drafts
# ============================================================================


@dataclass(frozen=True)
class TenantDraft:
    """Values for a new tenant row."""

    name: str
    program_ids: list[str] = field(default_factory=list)
    course_ids: list[str] = field(default_factory=list)
    max_users: int | None = None
    is_trial: bool = False
    trial_ends_at: datetime | None = None
    sale_amount: Decimal = Decimal("0")
    revenue_share_partners: list[dict[str, Any]] | None = None
    partner_id: str | None = None


@dataclass(frozen=True)
class AdminUserDraft:
    """Values for a new admin user row."""

    name: str
    email: str
    tenant_id: str
    location_ids: list[str]
    credential_uid: str
    requires_password_change: bool = True
    role: str = ADMIN_ROLE


@dataclass(frozen=True)
class PurchaseRecordDraft:
    """Values for a new purchase record row."""

    tenant_id: str
    tenant_name: str
    admin_user_id: str
    admin_email: str
    amount_paid: Decimal
    payment_reference: str | None
    program_id: str | None
    program_title: str | None
    course_ids: list[str]
    course_titles: list[str]
    revenue_share_partners: list[dict[str, Any]] | None = None
    max_users_configured: int | None = None


# ============================================================================
# Datastore stores
# ============================================================================


class _DatastoreStore:
    """Runs unit-of-work callables under the retry policy."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        retry: RetryPolicy,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._retry = retry

    async def _run(
        self,
        operation_name: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        async def attempt() -> T:
            async with self._sessionmaker() as session:
                async with session.begin():
                    return await work(session)

        try:
            return await self._retry.run(attempt, operation_name)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"Failed to {operation_name}", e) from e


class TenantStore(_DatastoreStore):
    """Creates tenants and removes them during compensation."""

    async def create(self, draft: TenantDraft) -> Tenant:
        """Insert a tenant.

        Args:
            draft: Tenant values.

        Returns:
            The persisted Tenant.

        Raises:
            PersistenceError: If the insert fails.
        """
        tenant_id = new_id()

        async def work(session: AsyncSession) -> Tenant:
            existing = await session.get(Tenant, tenant_id)
            if existing is not None:
                return existing
            tenant = Tenant(
                id=tenant_id,
                name=draft.name,
                assigned_program_ids=list(draft.program_ids),
                assigned_course_ids=list(draft.course_ids),
                max_users=draft.max_users,
                is_trial=draft.is_trial,
                trial_ends_at=draft.trial_ends_at,
                sale_amount=draft.sale_amount,
                revenue_share_partners=draft.revenue_share_partners,
                partner_id=draft.partner_id,
            )
            session.add(tenant)
            return tenant

        tenant = await self._run("create tenant", work)
        logger.info("Tenant created: %s (%s)", tenant.id, tenant.name)
        return tenant

    async def get(self, tenant_id: str) -> Tenant | None:
        """Get a non-deleted tenant by id."""

        async def work(session: AsyncSession) -> Tenant | None:
            result = await session.execute(
                select(Tenant).where(Tenant.id == tenant_id, Tenant.deleted_at.is_(None))
            )
            return result.scalar_one_or_none()

        return await self._run("load tenant", work)

    async def list_active(self) -> list[Tenant]:
        """List non-deleted tenants ordered by name."""

        async def work(session: AsyncSession) -> list[Tenant]:
            result = await session.execute(
                select(Tenant).where(Tenant.deleted_at.is_(None)).order_by(Tenant.name)
            )
            return list(result.scalars().all())

        return await self._run("list tenants", work)

    async def delete(self, tenant_id: str) -> None:
        """Hard-delete a tenant with its locations and users.

        Only used to compensate a failed provisioning run, when everything
        under the tenant was created by that run.

        Args:
            tenant_id: Tenant to remove.

        Raises:
            PersistenceError: If the delete fails.
        """

        async def work(session: AsyncSession) -> None:
            await session.execute(delete(User).where(User.tenant_id == tenant_id))
            await session.execute(delete(Location).where(Location.tenant_id == tenant_id))
            await session.execute(delete(Tenant).where(Tenant.id == tenant_id))

        await self._run("delete tenant", work)
        logger.info("Tenant deleted: %s", tenant_id)


class LocationStore(_DatastoreStore):
    """Creates the default location of a tenant."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        retry: RetryPolicy,
        default_name: str = DEFAULT_LOCATION_NAME,
    ) -> None:
        super().__init__(sessionmaker, retry)
        self._default_name = default_name

    async def create_default(self, tenant_id: str) -> Location:
        """Return the tenant's existing location or create the default one.

        Args:
            tenant_id: Owning tenant.

        Returns:
            The tenant's first location.

        Raises:
            PersistenceError: If the lookup or insert fails.
        """
        location_id = new_id()

        async def work(session: AsyncSession) -> Location:
            result = await session.execute(
                select(Location)
                .where(Location.tenant_id == tenant_id)
                .order_by(Location.created_at)
                .limit(1)
            )
            existing = result.scalar_one_or_none()
            if existing is not None:
                return existing
            location = Location(id=location_id, tenant_id=tenant_id, name=self._default_name)
            session.add(location)
            return location

        location = await self._run("create default location", work)
        logger.info("Default location %s ready for tenant %s", location.id, tenant_id)
        return location


class AdminUserStore(_DatastoreStore):
    """Creates tenant administrators."""

    async def create(self, draft: AdminUserDraft) -> User:
        """Insert an admin user.

        Args:
            draft: User values. The email is stored lower-cased.

        Returns:
            The persisted User.

        Raises:
            PersistenceError: If the insert fails.
        """
        user_id = new_id()

        async def work(session: AsyncSession) -> User:
            existing = await session.get(User, user_id)
            if existing is not None:
                return existing
            user = User(
                id=user_id,
                name=draft.name,
                email=draft.email.lower(),
                role=draft.role,
                tenant_id=draft.tenant_id,
                assigned_location_ids=list(draft.location_ids),
                requires_password_change=draft.requires_password_change,
                credential_uid=draft.credential_uid,
                is_active=True,
            )
            session.add(user)
            return user

        user = await self._run("create admin user", work)
        logger.info("Admin user created: %s for tenant %s", user.id, draft.tenant_id)
        return user


class PurchaseRecordStore(_DatastoreStore):
    """Creates purchase records for paid checkouts."""

    async def create(self, draft: PurchaseRecordDraft) -> PurchaseRecord:
        """Insert a purchase record.

        Args:
            draft: Record values.

        Returns:
            The persisted PurchaseRecord.

        Raises:
            PersistenceError: If the insert fails.
        """
        record_id = new_id()

        async def work(session: AsyncSession) -> PurchaseRecord:
            existing = await session.get(PurchaseRecord, record_id)
            if existing is not None:
                return existing
            record = PurchaseRecord(
                id=record_id,
                tenant_id=draft.tenant_id,
                tenant_name=draft.tenant_name,
                admin_user_id=draft.admin_user_id,
                admin_email=draft.admin_email.lower(),
                amount_paid=draft.amount_paid,
                payment_reference=draft.payment_reference,
                program_id=draft.program_id,
                program_title=draft.program_title,
                course_ids=list(draft.course_ids),
                course_titles=list(draft.course_titles),
                revenue_share_partners=draft.revenue_share_partners,
                max_users_configured=draft.max_users_configured,
            )
            session.add(record)
            return record

        record = await self._run("create purchase record", work)
        logger.info("Purchase record created: %s for tenant %s", record.id, draft.tenant_id)
        return record


# ============================================================================
# Identity store
# ============================================================================


class CredentialStore:
    """Creates and deletes identity-service accounts through a context handle.

    Account creation is not retried: a lost response after the service
    accepted the request would turn the retry into a duplicate-email error.
    Deletion is idempotent enough to retry.
    """

    def __init__(self, retry: RetryPolicy) -> None:
        self._retry = retry

    async def create(
        self,
        handle: CredentialContextHandle,
        email: str,
        secret: str,
    ) -> Credential:
        """Create an account.

        Args:
            handle: Live identity context.
            email: Sign-in email.
            secret: Initial password.

        Returns:
            The created Credential.

        Raises:
            CredentialCreationError: If the service rejects the request or
                cannot be reached.
        """
        try:
            return await handle.identity.create_account(email, secret)
        except IdentityServiceError as e:
            logger.warning("Identity service rejected %s: %s", email, e.provider_code)
            raise CredentialCreationError(e.provider_code, e.message) from e
        except httpx.TransportError as e:
            logger.warning("Identity service unreachable creating %s: %s", email, e)
            raise CredentialCreationError("TRANSPORT_ERROR", str(e)) from e

    async def delete(self, handle: CredentialContextHandle, credential: Credential) -> None:
        """Delete an account created earlier in the same run.

        Args:
            handle: Live identity context.
            credential: Account to remove.

        Raises:
            CredentialDeletionError: If the account could not be removed.
        """
        try:
            await self._retry.run(
                lambda: handle.identity.delete_account(credential),
                "delete credential",
            )
        except (IdentityServiceError, httpx.TransportError) as e:
            raise CredentialDeletionError(
                f"Failed to delete credential {credential.uid}: {e}"
            ) from e
