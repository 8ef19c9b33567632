# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Declarative base and shared column mixins."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.utils.datetime import utc_now


def new_id() -> str:
    """Generate a primary key value."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Declarative base for all models."""

    type_annotation_map = {
        dict: JSON,
        list: JSON,
    }


class TimestampMixin:
    """Adds a created_at column populated at insert time."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )


class SoftDeleteMixin:
    """Adds a deleted_at column. Rows with a value are hidden from listings."""

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


ID_LENGTH = 36


def id_column() -> Mapped[str]:
    """Primary key column holding a string UUID."""
    return mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)
