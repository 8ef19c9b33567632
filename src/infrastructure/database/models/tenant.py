# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant (brand) and location models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import (
    ID_LENGTH,
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    id_column,
)


class Tenant(Base, TimestampMixin, SoftDeleteMixin):
    """A brand on the platform.

    Created exactly once per provisioning run. Hard deletion only happens
    as compensation for a failed run.

    Attributes:
        id: String UUID.
        name: Brand display name.
        assigned_program_ids: Programs the brand purchased or trialled.
        assigned_course_ids: Courses derived from the assigned programs.
        max_users: Seat limit.
        is_trial: Whether the brand is on a free trial.
        trial_ends_at: End of the trial, null for non-trial brands.
        sale_amount: Amount charged at checkout.
        revenue_share_partners: Partner payout splits, null when none.
        partner_id: Referring partner, when known.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = id_column()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    assigned_program_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    assigned_course_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_trial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trial_ends_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    sale_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )
    revenue_share_partners: Mapped[list | None] = mapped_column(JSON, nullable=True)
    partner_id: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name})>"


class Location(Base, TimestampMixin):
    """A site belonging to a tenant.

    Every tenant gets a default location during provisioning.
    """

    __tablename__ = "locations"

    id: Mapped[str] = id_column()
    tenant_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Location(id={self.id}, tenant_id={self.tenant_id})>"
