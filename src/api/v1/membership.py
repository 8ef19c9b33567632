# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Operator endpoints for membership repair.

- GET /users/unassigned - Users that belong to no tenant
- GET /tenants - Tenants users can be moved into
- POST /reassign - Move tenant-less users into a tenant

Authentication:
    Every endpoint requires the X-Operator-Key header.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from src.api.dependencies import MembershipServiceDep, require_operator
from src.models.membership import (
    CandidateTenant,
    ReassignmentResult,
    ReassignRequest,
    UnassignedUser,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_operator)])


@router.get(
    "/users/unassigned",
    response_model=list[UnassignedUser],
    summary="List users without a tenant",
)
async def list_unassigned_users(service: MembershipServiceDep) -> list[UnassignedUser]:
    """List active users that belong to no tenant."""
    return await service.list_unassigned_users()


@router.get(
    "/tenants",
    response_model=list[CandidateTenant],
    summary="List candidate tenants",
)
async def list_candidate_tenants(service: MembershipServiceDep) -> list[CandidateTenant]:
    """List tenants that users can be moved into."""
    return await service.list_candidate_tenants()


@router.post(
    "/reassign",
    response_model=ReassignmentResult,
    summary="Move users into a tenant",
    responses={
        400: {"description": "No users or no valid target tenant", "model": ReassignmentResult},
        401: {"description": "Missing or invalid operator key"},
        503: {"description": "Batch update failed", "model": ReassignmentResult},
    },
)
async def reassign(
    request: ReassignRequest,
    service: MembershipServiceDep,
) -> ReassignmentResult | JSONResponse:
    """Assign tenant-less users to a tenant and backfill their location.

    Args:
        request: Users and target tenant.
        service: Membership service.

    Returns:
        ReassignmentResult. Rejected or failed batches are returned with a
        400 or 503 status.
    """
    result = await service.reassign(request.user_ids, request.target_tenant_id)
    if result.ok:
        return result

    status_code = (
        status.HTTP_400_BAD_REQUEST
        if result.error_kind == "validation"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    logger.info("Reassignment rejected (%s): %s", result.error_kind, result.message)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
