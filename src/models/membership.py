# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk membership reassignment models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class UnassignedUser(BaseModel):
    """A user that belongs to no tenant."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: str
    created_at: datetime


class CandidateTenant(BaseModel):
    """A tenant users can be moved into."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    is_trial: bool
    max_users: int | None = None


class ReassignRequest(BaseModel):
    """Operator request to move users into a tenant."""

    user_ids: list[str] = Field(default_factory=list)
    target_tenant_id: str = ""


class ReassignmentResult(BaseModel):
    """Result of a bulk reassignment.

    Attributes:
        updated_count: Users whose tenant was set.
        backfilled_count: Users that received the default location.
        failed_user_ids: Users whose location backfill failed.
        error_kind: Set when the request was rejected before any write.
        message: Human-readable summary.
    """

    updated_count: int = 0
    backfilled_count: int = 0
    failed_user_ids: list[str] = Field(default_factory=list)
    error_kind: Literal["validation", "persistence"] | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the batch update was applied."""
        return self.error_kind is None
