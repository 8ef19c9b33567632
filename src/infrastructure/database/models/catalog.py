# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Catalog models: programs and the courses they bundle."""

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, SoftDeleteMixin, TimestampMixin, id_column


class Program(Base, TimestampMixin, SoftDeleteMixin):
    """A sellable bundle of courses."""

    __tablename__ = "programs"

    id: Mapped[str] = id_column()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    course_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class Course(Base, TimestampMixin, SoftDeleteMixin):
    """A single course."""

    __tablename__ = "courses"

    id: Mapped[str] = id_column()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
