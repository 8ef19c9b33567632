# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Membership reassignment service.

Operators use this to repair users that ended up without a tenant. The
tenant assignment is one atomic UPDATE over the whole batch. The location
backfill that follows is best effort per user and never undoes the batch.

Example:
    >>> service = MembershipReassignmentService(sessionmaker, locations, retry)
    >>> result = await service.reassign(["u1", "u2"], "t1")
    >>> result.updated_count
    2
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from sqlalchemy import ColumnElement, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.provisioning.exceptions import PersistenceError
from src.domains.provisioning.stores import LocationStore
from src.infrastructure.database.models import Tenant, User
from src.models.membership import CandidateTenant, ReassignmentResult, UnassignedUser
from src.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _tenantless() -> ColumnElement[bool]:
    return or_(User.tenant_id.is_(None), User.tenant_id == "")


class MembershipReassignmentService:
    """Lists tenant-less users and moves them into a tenant."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        locations: LocationStore,
        retry: RetryPolicy,
    ) -> None:
        """Initialize the service.

        Args:
            sessionmaker: Datastore sessionmaker.
            locations: Store used to fetch or create the default location.
            retry: Policy wrapped around every unit of work.
        """
        self._sessionmaker = sessionmaker
        self._locations = locations
        self._retry = retry

    async def list_unassigned_users(self) -> list[UnassignedUser]:
        """List active, non-deleted users with no tenant."""

        async def work(session: AsyncSession) -> list[UnassignedUser]:
            result = await session.execute(
                select(User)
                .where(_tenantless(), User.deleted_at.is_(None))
                .order_by(User.created_at)
            )
            return [UnassignedUser.model_validate(user) for user in result.scalars().all()]

        return await self._in_transaction("list unassigned users", work)

    async def list_candidate_tenants(self) -> list[CandidateTenant]:
        """List non-deleted tenants ordered by name."""

        async def work(session: AsyncSession) -> list[CandidateTenant]:
            result = await session.execute(
                select(Tenant).where(Tenant.deleted_at.is_(None)).order_by(Tenant.name)
            )
            return [CandidateTenant.model_validate(tenant) for tenant in result.scalars().all()]

        return await self._in_transaction("list candidate tenants", work)

    async def reassign(
        self,
        user_ids: Iterable[str],
        target_tenant_id: str,
    ) -> ReassignmentResult:
        """Move tenant-less users into a tenant and backfill their location.

        Args:
            user_ids: Users to move. Duplicates are ignored.
            target_tenant_id: Destination tenant.

        Returns:
            ReassignmentResult. error_kind is "validation" when the request
            was rejected before any write and "persistence" when the batch
            update failed.
        """
        ids = sorted({user_id for user_id in user_ids if user_id})
        target = (target_tenant_id or "").strip()

        if not ids:
            return ReassignmentResult(error_kind="validation", message="No users selected")
        if not target:
            return ReassignmentResult(error_kind="validation", message="No target tenant selected")

        try:
            updated = await self._assign_tenant(ids, target)
        except PersistenceError as e:
            logger.error("Tenant reassignment to %s failed: %s", target, e)
            return ReassignmentResult(error_kind="persistence", message=e.message)

        if updated is None:
            return ReassignmentResult(
                error_kind="validation",
                message=f"Target tenant {target} does not exist",
            )

        logger.info("Reassigned %d of %d users to tenant %s", updated, len(ids), target)

        backfilled, failed = await self._backfill_locations(ids, target)
        return ReassignmentResult(
            updated_count=updated,
            backfilled_count=backfilled,
            failed_user_ids=failed,
            message=f"Assigned {updated} user(s) to the tenant",
        )

    async def _assign_tenant(self, ids: list[str], target: str) -> int | None:
        """Run the batch update. Returns None when the tenant is missing."""

        async def work(session: AsyncSession) -> int | None:
            tenant = await session.scalar(
                select(Tenant.id).where(Tenant.id == target, Tenant.deleted_at.is_(None))
            )
            if tenant is None:
                return None
            result = await session.execute(
                update(User)
                .where(User.id.in_(ids), _tenantless())
                .values(tenant_id=target)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        try:
            return await self._in_transaction("reassign users", work)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError("Failed to reassign users", e) from e

    async def _backfill_locations(self, ids: list[str], target: str) -> tuple[int, list[str]]:
        """Give each moved user lacking a location the tenant's default one."""

        async def load(session: AsyncSession) -> list[str]:
            result = await session.execute(
                select(User).where(User.id.in_(ids), User.tenant_id == target)
            )
            return [user.id for user in result.scalars().all() if not user.assigned_location_ids]

        try:
            pending = await self._in_transaction("load users to backfill", load)
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Location backfill skipped for tenant %s: %s", target, e)
            return 0, []

        if not pending:
            return 0, []

        try:
            location = await self._locations.create_default(target)
        except PersistenceError as e:
            logger.warning("Location backfill skipped for tenant %s: %s", target, e)
            return 0, pending

        backfilled = 0
        failed: list[str] = []
        for user_id in pending:

            async def assign(session: AsyncSession, user_id: str = user_id) -> None:
                await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(assigned_location_ids=[location.id])
                )

            try:
                await self._in_transaction("backfill user location", assign)
            except (SQLAlchemyError, OSError) as e:
                logger.warning("Location backfill failed for user %s: %s", user_id, e)
                failed.append(user_id)
            else:
                backfilled += 1

        logger.info("Backfilled location %s for %d user(s)", location.id, backfilled)
        return backfilled, failed

    async def _in_transaction(
        self,
        operation_name: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        async def attempt() -> T:
            async with self._sessionmaker() as session:
                async with session.begin():
                    return await work(session)

        return await self._retry.run(attempt, operation_name)
