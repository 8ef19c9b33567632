# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Catalog service.

Read-only lookups of programs and courses. Soft-deleted rows are treated as
missing.

Example:
    >>> catalog = CatalogService(sessionmaker)
    >>> program = await catalog.get_program_by_id("prog-1")
"""

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infrastructure.database.models import Course, Program

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    """Program and course lookups."""

    async def get_program_by_id(self, program_id: str) -> Program | None:
        ...

    async def get_course_by_id(self, course_id: str) -> Course | None:
        ...


class CatalogService:
    """SQLAlchemy-backed catalog."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get_program_by_id(self, program_id: str) -> Program | None:
        """Get a program by id.

        Args:
            program_id: Program id.

        Returns:
            The Program, or None if missing or deleted.
        """
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Program).where(
                    Program.id == program_id,
                    Program.deleted_at.is_(None),
                )
            )
            program = result.scalar_one_or_none()

        if program is None:
            logger.debug("Program not found: %s", program_id)
        return program

    async def get_course_by_id(self, course_id: str) -> Course | None:
        """Get a course by id.

        Args:
            course_id: Course id.

        Returns:
            The Course, or None if missing or deleted.
        """
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Course).where(
                    Course.id == course_id,
                    Course.deleted_at.is_(None),
                )
            )
            return result.scalar_one_or_none()
