# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User model."""

from sqlalchemy import JSON, Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import (
    ID_LENGTH,
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    id_column,
)


class User(Base, TimestampMixin, SoftDeleteMixin):
    """A platform user.

    tenant_id is nullable so that users orphaned by data drift can be listed
    and reassigned by an operator.

    Attributes:
        id: String UUID.
        name: Display name.
        email: Lower-cased email address.
        role: Role label, "Admin" for provisioned administrators.
        tenant_id: Owning tenant, null when unassigned.
        assigned_location_ids: Locations the user may act in.
        requires_password_change: Force a password change at next login.
        credential_uid: Identity-service account id.
        is_active: Whether the user may sign in.
    """

    __tablename__ = "users"

    id: Mapped[str] = id_column()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="User")
    tenant_id: Mapped[str | None] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_location_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    requires_password_change: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    credential_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
