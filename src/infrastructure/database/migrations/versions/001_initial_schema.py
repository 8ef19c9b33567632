# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial provisioning datastore schema.

Revision ID: 001_initial
Revises: None
Create Date: 2025-06-02

This migration creates all tables based on the SQLAlchemy models in
src/infrastructure/database/models/.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    """Create datastore tables."""
    # ==========================================================================
    # 1. catalog tables
    # ==========================================================================
    op.create_table(
        "programs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("course_ids", sa.JSON, nullable=False),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "courses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ==========================================================================
    # 2. tenants table
    # ==========================================================================
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("assigned_program_ids", sa.JSON, nullable=False),
        sa.Column("assigned_course_ids", sa.JSON, nullable=False),
        sa.Column("max_users", sa.Integer, nullable=True),
        sa.Column("is_trial", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sale_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("revenue_share_partners", sa.JSON, nullable=True),
        sa.Column("partner_id", sa.String(36), nullable=True),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ==========================================================================
    # 3. locations table
    # ==========================================================================
    op.create_table(
        "locations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(36),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_index("ix_locations_tenant_id", "locations", ["tenant_id"])

    # ==========================================================================
    # 4. users table
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="User"),
        sa.Column(
            "tenant_id",
            sa.String(36),
            sa.ForeignKey("tenants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("assigned_location_ids", sa.JSON, nullable=False),
        sa.Column(
            "requires_password_change",
            sa.Boolean,
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column("credential_uid", sa.String(128), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    # ==========================================================================
    # 5. purchase_records table
    # ==========================================================================
    op.create_table(
        "purchase_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(36),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tenant_name", sa.String(255), nullable=False),
        sa.Column("admin_user_id", sa.String(36), nullable=False),
        sa.Column("admin_email", sa.String(320), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("program_id", sa.String(36), nullable=True),
        sa.Column("program_title", sa.String(255), nullable=True),
        sa.Column("course_ids", sa.JSON, nullable=False),
        sa.Column("course_titles", sa.JSON, nullable=False),
        sa.Column("revenue_share_partners", sa.JSON, nullable=True),
        sa.Column("max_users_configured", sa.Integer, nullable=True),
        sa.Column(
            "purchased_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_purchase_records_tenant_id", "purchase_records", ["tenant_id"])


def downgrade() -> None:
    """Drop datastore tables."""
    op.drop_table("purchase_records")
    op.drop_table("users")
    op.drop_table("locations")
    op.drop_table("tenants")
    op.drop_table("courses")
    op.drop_table("programs")
