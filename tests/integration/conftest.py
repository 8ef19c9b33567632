# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for integration tests.

Provides a file-backed SQLite datastore through aiosqlite, seeded catalog
rows, and an in-process identity service emulator served over
httpx.MockTransport.
"""

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, AsyncIterator, Callable

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.core.config.settings import Settings
from src.infrastructure.database.connection import build_engine, build_sessionmaker
from src.infrastructure.database.models import Course, Program
from src.infrastructure.database.models.base import Base
from src.infrastructure.identity import CredentialContextFactory, IdentityServiceClient


# =============================================================================
# Datastore
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a SQLite engine with the full schema."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tenancy.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sessionmaker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessionmaker bound to the test datastore."""
    return build_sessionmaker(db_engine)


@pytest_asyncio.fixture
async def seeded_catalog(
    sessionmaker: async_sessionmaker[AsyncSession],
    sample_program_id: str,
) -> Program:
    """Seed program prog-1 bundling courses c1 and c2."""
    program = Program(id=sample_program_id, title="Leadership Essentials", course_ids=["c1", "c2"])
    async with sessionmaker() as session:
        async with session.begin():
            session.add_all(
                [
                    program,
                    Course(id="c1", title="Communicating Clearly"),
                    Course(id="c2", title="Running Meetings"),
                ]
            )
    return program


# =============================================================================
# Unreliable sessions
# =============================================================================


def connection_reset() -> OperationalError:
    return OperationalError("SELECT 1", {}, ConnectionError("connection reset by peer"))


class FlakySessionmaker:
    """Wraps a sessionmaker and fails its first calls.

    Attributes:
        calls: Number of sessions requested so far.
        fail_on_open: Errors raised when a session is requested, one per call.
        fail_after_commit: Errors raised once a session has committed and
            closed, one per call. Models a lost commit acknowledgement.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker
        self.calls = 0
        self.fail_on_open: list[Exception] = []
        self.fail_after_commit: list[Exception] = []

    def __call__(self):
        self.calls += 1
        if self.fail_on_open:
            raise self.fail_on_open.pop(0)
        return self._session()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._sessionmaker() as session:
            yield session
        if self.fail_after_commit:
            raise self.fail_after_commit.pop(0)


@pytest.fixture
def flaky_sessionmaker(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> FlakySessionmaker:
    """Sessionmaker over the test datastore with injectable failures."""
    return FlakySessionmaker(sessionmaker)


@pytest.fixture
def transient_error() -> Callable[[], OperationalError]:
    """Factory for a retryable connection error."""
    return connection_reset


# =============================================================================
# Identity service emulator
# =============================================================================


class IdentityEmulator:
    """Minimal Identity Toolkit emulator keyed by email.

    Attributes:
        accounts: Live accounts by email.
        deleted: uids removed through accounts:delete.
        fail_sign_up: Provider code returned by every sign-up when set.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, str]] = {}
        self.deleted: list[str] = []
        self.fail_sign_up: str | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if request.url.path == "/v1/accounts:signUp":
            return self._sign_up(body)
        if request.url.path == "/v1/accounts:delete":
            return self._delete(body)
        return httpx.Response(404, json={"error": {"code": 404, "message": "NOT_FOUND"}})

    def _error(self, code: str) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 400, "message": code}})

    def _sign_up(self, body: dict) -> httpx.Response:
        if self.fail_sign_up:
            return self._error(self.fail_sign_up)
        email = body["email"].lower()
        if email in self.accounts:
            return self._error("EMAIL_EXISTS")
        uid = f"uid-{len(self.accounts) + len(self.deleted) + 1}"
        account = {"localId": uid, "email": email, "idToken": f"id-token-{uid}"}
        self.accounts[email] = account
        return httpx.Response(200, json=account)

    def _delete(self, body: dict) -> httpx.Response:
        for email, account in list(self.accounts.items()):
            if account["idToken"] == body.get("idToken"):
                del self.accounts[email]
                self.deleted.append(account["localId"])
                return httpx.Response(200, json={})
        return self._error("INVALID_ID_TOKEN")


@pytest.fixture
def identity_emulator() -> IdentityEmulator:
    """Fresh identity emulator."""
    return IdentityEmulator()


@pytest.fixture
def credential_contexts(
    test_settings: Settings,
    identity_emulator: IdentityEmulator,
) -> CredentialContextFactory:
    """Context factory whose clients talk to the emulator."""
    transport = httpx.MockTransport(identity_emulator.handler)
    return CredentialContextFactory(
        test_settings.identity,
        client_factory=lambda name: IdentityServiceClient(
            test_settings.identity, name, transport=transport
        ),
    )
