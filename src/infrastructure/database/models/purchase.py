# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Purchase record model."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import ID_LENGTH, Base, id_column
from src.utils.datetime import utc_now


class PurchaseRecord(Base):
    """Audit record of a paid checkout.

    Titles are denormalised at purchase time so the record stays readable
    when the catalog changes.
    """

    __tablename__ = "purchase_records"

    id: Mapped[str] = id_column()
    tenant_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    admin_user_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    admin_email: Mapped[str] = mapped_column(String(320), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    program_id: Mapped[str | None] = mapped_column(String(ID_LENGTH), nullable=True)
    program_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    course_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    course_titles: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    revenue_share_partners: Mapped[list | None] = mapped_column(JSON, nullable=True)
    max_users_configured: Mapped[int | None] = mapped_column(Integer, nullable=True)
    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
