# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

from collections.abc import Generator
from typing import Any

import pytest

from src.core.config import clear_settings_cache
from src.core.config.settings import (
    IdentitySettings,
    ProvisioningSettings,
    RetrySettings,
    Settings,
    SMTPSettings,
)


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings so environment changes do not leak between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def test_settings() -> Settings:
    """Provide settings suitable for tests.

    SMTP is disabled, retries do not wait and the identity service points at
    a local emulator address that tests replace with a mock transport.
    """
    return Settings(
        environment="development",
        debug=True,
        log_level="DEBUG",
        identity=IdentitySettings(
            base_url="http://identity.test",
            api_key="test-api-key",
            service_account_email="provisioner@test.iam",
            private_key="test-signing-secret",
            token_algorithm="HS256",
        ),
        smtp=SMTPSettings(host=""),
        retry=RetrySettings(max_attempts=3, base_delay_ms=0, max_delay_ms=0),
        provisioning=ProvisioningSettings(saga_timeout_seconds=5, default_trial_days=7),
    )


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (uses a SQLite datastore)"
    )


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_program_id() -> str:
    """Provide a sample program ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440010"


@pytest.fixture
def checkout_payload(sample_program_id: str) -> dict[str, Any]:
    """Provide a valid paid checkout payload."""
    return {
        "customer_name": "Grace Hopper",
        "company_name": "Compiler Works",
        "admin_email": "Grace@Example.com",
        "selected_program_id": sample_program_id,
        "max_users": 25,
        "final_total_amount": "499.00",
        "payment_reference": "pi_test_123",
        "revenue_share_partners": [
            {"name": "Partner One", "company": "P1 Ltd", "percentage": "10"},
        ],
        "partner_id": "partner-1",
    }


@pytest.fixture
def trial_payload(sample_program_id: str) -> dict[str, Any]:
    """Provide a valid free trial payload."""
    return {
        "customer_name": "Ada Lovelace",
        "company_name": "Analytical Engines",
        "admin_email": "ada@example.com",
        "selected_program_id": sample_program_id,
    }


@pytest.fixture
def signup_payload() -> dict[str, Any]:
    """Provide a valid public signup payload."""
    return {
        "customer_name": "Alan Turing",
        "company_name": "Bletchley Labs",
        "email": "alan@example.com",
        "password": "enigma-2024",
    }
