# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Liveness and readiness endpoints.

``/health`` always answers 200 and describes each dependency the
provisioning flows touch. ``/ready`` is what a load balancer should gate
on: it only passes when the datastore answers and the identity service is
configured.
"""

import logging
import time
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src import __version__
from src.core.config import Settings, get_settings
from src.infrastructure.database.connection import DatabaseError, get_engine
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

_started_at = time.monotonic()

ComponentStatus = Literal["healthy", "unhealthy", "disabled"]


class ComponentHealth(BaseModel):
    """State of one dependency."""

    status: ComponentStatus
    latency_ms: float | None = None
    message: str | None = None


class ComponentsHealth(BaseModel):
    database: ComponentHealth
    identity: ComponentHealth
    email: ComponentHealth


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: datetime
    version: str = __version__
    environment: str
    uptime_seconds: int
    components: ComponentsHealth


class ReadinessResponse(BaseModel):
    ready: bool
    checks: dict[str, ComponentStatus] = Field(default_factory=dict)


async def check_database() -> ComponentHealth:
    """Round-trip ``SELECT 1`` through the shared engine."""
    started = time.perf_counter()
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (DatabaseError, SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed: %s", e)
        return ComponentHealth(status="unhealthy", message=str(e))
    elapsed = (time.perf_counter() - started) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(elapsed, 2))


def check_identity(settings: Settings) -> ComponentHealth:
    """Credential creation needs an API key and a signing key."""
    identity = settings.identity
    missing = [
        name
        for name, secret in (("api_key", identity.api_key), ("private_key", identity.private_key))
        if not secret.get_secret_value()
    ]
    if missing:
        return ComponentHealth(status="unhealthy", message=f"missing {', '.join(missing)}")
    return ComponentHealth(status="healthy")


def check_email(settings: Settings) -> ComponentHealth:
    # Welcome emails are optional; no SMTP host just means they are skipped.
    if not settings.smtp.enabled:
        return ComponentHealth(status="disabled", message="SMTP host not configured")
    return ComponentHealth(status="healthy")


async def collect_components(settings: Settings) -> ComponentsHealth:
    return ComponentsHealth(
        database=await check_database(),
        identity=check_identity(settings),
        email=check_email(settings),
    )


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Report overall and per-dependency health.

    The API is ``unhealthy`` without a datastore and ``degraded`` when the
    identity service is unconfigured, since no tenant can be provisioned.
    """
    settings = get_settings()
    components = await collect_components(settings)

    if components.database.status != "healthy":
        overall = "unhealthy"
    elif components.identity.status != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        timestamp=utc_now(),
        environment=settings.environment,
        uptime_seconds=int(time.monotonic() - _started_at),
        components=components,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Answer 503 until the datastore and identity service are usable."""
    components = await collect_components(get_settings())
    checks = {
        "database": components.database.status,
        "identity": components.identity.status,
    }
    ready = all(value == "healthy" for value in checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(ready=ready, checks=checks)
