# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Ephemeral identity-service contexts.

Every provisioning run gets its own identity client under a unique name so
that concurrent runs never share connection state. The context must be
released on every exit path; scoped() guarantees that.

Example:
    factory = CredentialContextFactory(settings.identity)
    async with factory.scoped("checkout") as handle:
        credential = await handle.identity.create_account(email, password)
"""

import logging
import secrets
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from src.core.config.settings import IdentitySettings
from src.infrastructure.identity.client import IdentityService, IdentityServiceClient
from src.utils.datetime import epoch_millis

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], IdentityService]


@dataclass
class CredentialContextHandle:
    """A live, named identity context.

    Attributes:
        name: Unique context name.
        identity: Client bound to this context.
        released: Set once the context has been released.
    """

    name: str
    identity: IdentityService
    released: bool = field(default=False)


class CredentialContextFactory:
    """Creates and releases named identity contexts.

    Acquiring a name that is still live returns the existing handle instead
    of opening a second client.
    """

    def __init__(
        self,
        settings: IdentitySettings,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            settings: Identity service settings.
            client_factory: Builds a client for a context name. Defaults to
                an IdentityServiceClient per name.
        """
        self._settings = settings
        self._client_factory = client_factory or (
            lambda name: IdentityServiceClient(settings, name)
        )
        self._live: dict[str, CredentialContextHandle] = {}

    @property
    def live_names(self) -> frozenset[str]:
        """Names of contexts that have been acquired and not yet released."""
        return frozenset(self._live)

    def new_context_name(self, prefix: str | None = None) -> str:
        """Generate a unique context name.

        Args:
            prefix: Flow label. Defaults to the configured prefix.

        Returns:
            Name of the form <prefix>-<epoch ms>-<random hex>.
        """
        return f"{prefix or self._settings.context_prefix}-{epoch_millis()}-{secrets.token_hex(4)}"

    async def acquire(self, name: str) -> CredentialContextHandle:
        """Create or reuse the context with the given name.

        Args:
            name: Context name.

        Returns:
            The live handle for name.
        """
        handle = self._live.get(name)
        if handle is not None:
            logger.debug("Reusing identity context %s", name)
            return handle

        handle = CredentialContextHandle(name=name, identity=self._client_factory(name))
        self._live[name] = handle
        logger.debug("Identity context acquired: %s", name)
        return handle

    async def release(self, handle: CredentialContextHandle) -> None:
        """Tear down a context. Releasing twice is a no-op.

        Args:
            handle: Handle returned by acquire().
        """
        if handle.released:
            logger.debug("Identity context %s already released", handle.name)
            return

        handle.released = True
        self._live.pop(handle.name, None)
        try:
            await handle.identity.aclose()
        except Exception as e:
            logger.warning("Failed to close identity context %s: %s", handle.name, e)
        else:
            logger.debug("Identity context released: %s", handle.name)

    @asynccontextmanager
    async def scoped(self, prefix: str | None = None) -> AsyncIterator[CredentialContextHandle]:
        """Acquire a uniquely named context and release it on exit.

        Args:
            prefix: Flow label for the generated name.

        Yields:
            The live handle.
        """
        handle = await self.acquire(self.new_context_name(prefix))
        try:
            yield handle
        finally:
            await self.release(handle)
