# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for logging setup."""

import logging

import pytest
import structlog

from src.core.config.settings import Settings
from src.utils.logging import bind_context, redact_secrets, setup_logging, unbind_context


class TestRedactSecrets:
    """Tests for the redaction processor."""

    def test_masks_credential_keys(self) -> None:
        """Test credential values are masked and other keys kept."""
        event = {
            "event": "Admin created",
            "temporary_password": "hunter2!",
            "login_token": "eyJ...",
            "tenant_id": "t1",
        }

        result = redact_secrets(None, "info", event)

        assert result["temporary_password"] == "***"
        assert result["login_token"] == "***"
        assert result["tenant_id"] == "t1"


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_installs_single_handler(self, test_settings: Settings) -> None:
        """Test the root logger gets exactly one structlog handler."""
        setup_logging(test_settings.model_copy(update={"log_level": "WARNING"}))

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_context_binding(self) -> None:
        """Test bound values are visible and removable."""
        bind_context(provisioning_run="run-1", flow="checkout")
        assert structlog.contextvars.get_contextvars()["provisioning_run"] == "run-1"

        unbind_context("provisioning_run", "flow")
        assert "provisioning_run" not in structlog.contextvars.get_contextvars()
