# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant provisioning API endpoints.

This module exposes the three onboarding flows:
- POST /checkout - Paid checkout after the payment gateway confirmed payment
- POST /free-trial - Time-limited trial for a program
- POST /signup - Self-service signup from the public site

Request bodies are validated by the provisioning service rather than by
FastAPI, so that every response, including a validation failure, carries
the tagged provisioning outcome.

Example:
    POST /api/v1/provisioning/free-trial
    Body:
        {
            "customer_name": "Ada Lovelace",
            "company_name": "Analytical Engines",
            "admin_email": "ada@example.com",
            "selected_program_id": "prog-1"
        }
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, status
from fastapi.responses import JSONResponse

from src.api.dependencies import ProvisioningServiceDep
from src.models.provisioning import (
    ProvisioningErrorKind,
    ProvisioningFailure,
    ProvisioningSuccess,
)

logger = logging.getLogger(__name__)

router = APIRouter()

FAILURE_STATUS_CODES: dict[ProvisioningErrorKind, int] = {
    ProvisioningErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ProvisioningErrorKind.CREDENTIAL_CREATION: status.HTTP_409_CONFLICT,
    ProvisioningErrorKind.PERSISTENCE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ProvisioningErrorKind.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ProvisioningErrorKind.UNEXPECTED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

OUTCOME_RESPONSES: dict[int | str, dict[str, Any]] = {
    201: {"description": "Tenant provisioned", "model": ProvisioningSuccess},
    409: {"description": "Admin credential rejected", "model": ProvisioningFailure},
    422: {"description": "Invalid provisioning data", "model": ProvisioningFailure},
    500: {"description": "Unexpected failure", "model": ProvisioningFailure},
    503: {"description": "Datastore unavailable or timed out", "model": ProvisioningFailure},
}


def _to_response(outcome: ProvisioningSuccess | ProvisioningFailure) -> JSONResponse:
    """Render an outcome with the status code matching its kind."""
    if isinstance(outcome, ProvisioningSuccess):
        status_code = status.HTTP_201_CREATED
    else:
        status_code = FAILURE_STATUS_CODES[outcome.error_kind]
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode="json"))


@router.post(
    "/checkout",
    status_code=status.HTTP_201_CREATED,
    summary="Provision a tenant for a paid checkout",
    responses=OUTCOME_RESPONSES,
)
async def checkout(
    service: ProvisioningServiceDep,
    payload: dict[str, Any] = Body(...),
) -> JSONResponse:
    """Provision a tenant, admin and purchase record for a paid checkout.

    Args:
        service: Provisioning service.
        payload: Checkout fields.

    Returns:
        Tagged provisioning outcome.
    """
    logger.info("Checkout provisioning requested for %s", payload.get("company_name"))
    return _to_response(await service.process_checkout(payload))


@router.post(
    "/free-trial",
    status_code=status.HTTP_201_CREATED,
    summary="Provision a trial tenant",
    responses=OUTCOME_RESPONSES,
)
async def free_trial(
    service: ProvisioningServiceDep,
    payload: dict[str, Any] = Body(...),
) -> JSONResponse:
    """Provision a time-limited trial tenant."""
    logger.info("Free trial provisioning requested for %s", payload.get("company_name"))
    return _to_response(await service.process_free_trial(payload))


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    summary="Provision a tenant from the public signup form",
    responses=OUTCOME_RESPONSES,
)
async def signup(
    service: ProvisioningServiceDep,
    payload: dict[str, Any] = Body(...),
) -> JSONResponse:
    """Provision a self-service tenant. Success carries a login token."""
    logger.info("Public signup requested for %s", payload.get("company_name"))
    return _to_response(await service.process_public_signup(payload))
