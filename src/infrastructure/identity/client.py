# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity service HTTP client.

Talks to an Identity Toolkit compatible REST API (the hosted service or the
local auth emulator) to create and delete sign-in accounts, and signs custom
login tokens with the service-account key so a freshly provisioned admin can
be logged in without re-entering a password.

Example:
    client = IdentityServiceClient(settings.identity, name="checkout-1718-ab12")
    credential = await client.create_account("owner@example.com", "s3cret-pass")
    token = client.mint_custom_token(credential.uid)
    await client.aclose()
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from src.core.config.settings import IdentitySettings
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """A sign-in account held by the identity service.

    Attributes:
        uid: Provider account id.
        email: Sign-in email.
        id_token: Session token returned at sign-up. Required to delete the
            account again during compensation.
    """

    uid: str
    email: str
    id_token: str | None = None


class IdentityServiceError(Exception):
    """Error reported by the identity service.

    Attributes:
        provider_code: Provider error code, e.g. EMAIL_EXISTS.
        message: Human-readable detail.
        status_code: HTTP status of the failed response, if any.
    """

    def __init__(
        self,
        provider_code: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{provider_code}: {message}")
        self.provider_code = provider_code
        self.message = message
        self.status_code = status_code


class IdentityService(Protocol):
    """Operations the provisioning flows need from the identity service."""

    async def create_account(self, email: str, password: str) -> Credential:
        ...

    async def delete_account(self, credential: Credential) -> None:
        ...

    def mint_custom_token(self, uid: str, claims: dict[str, Any] | None = None) -> str:
        ...

    async def aclose(self) -> None:
        ...


def parse_error_payload(response: httpx.Response) -> tuple[str, str]:
    """Extract the provider code and detail from an error response.

    Identity Toolkit errors look like
    {"error": {"code": 400, "message": "WEAK_PASSWORD : Password should be ..."}}.

    Args:
        response: The failed HTTP response.

    Returns:
        Tuple of (provider_code, detail).
    """
    try:
        error = response.json().get("error", {})
    except ValueError:
        return f"HTTP_{response.status_code}", response.text

    raw = str(error.get("message", "")) if isinstance(error, dict) else str(error)
    if not raw:
        return f"HTTP_{response.status_code}", response.text
    code, _, detail = raw.partition(" : ")
    return code.strip(), (detail.strip() or code.strip())


class IdentityServiceClient:
    """REST client for one ephemeral identity context.

    Each instance owns its own connection pool. Instances are created and
    closed by CredentialContextFactory, never shared across provisioning
    runs.

    Attributes:
        name: Context name the client was created for.
    """

    def __init__(
        self,
        settings: IdentitySettings,
        name: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Identity service settings.
            name: Context name, used for log correlation.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.name = name
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def _key_params(self) -> dict[str, str]:
        return {"key": self._settings.api_key.get_secret_value()}

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(path, params=self._key_params, json=payload)
        if response.status_code >= 400:
            provider_code, detail = parse_error_payload(response)
            raise IdentityServiceError(provider_code, detail, response.status_code)
        return response.json()

    async def create_account(self, email: str, password: str) -> Credential:
        """Create an email/password account.

        Args:
            email: Sign-in email.
            password: Initial password.

        Returns:
            The created Credential.

        Raises:
            IdentityServiceError: If the service rejects the request.
            httpx.TransportError: If the service is unreachable.
        """
        data = await self._post(
            "/v1/accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        credential = Credential(
            uid=data["localId"],
            email=data.get("email", email),
            id_token=data.get("idToken"),
        )
        logger.info("Identity account created: %s (context=%s)", credential.uid, self.name)
        return credential

    async def delete_account(self, credential: Credential) -> None:
        """Delete an account created by this service.

        Args:
            credential: The credential returned by create_account.

        Raises:
            IdentityServiceError: If the service rejects the request or the
                credential carries no session token.
        """
        if not credential.id_token:
            raise IdentityServiceError(
                "MISSING_ID_TOKEN",
                f"Credential {credential.uid} has no session token to delete with",
            )
        await self._post("/v1/accounts:delete", {"idToken": credential.id_token})
        logger.info("Identity account deleted: %s (context=%s)", credential.uid, self.name)

    def mint_custom_token(self, uid: str, claims: dict[str, Any] | None = None) -> str:
        """Sign a custom login token for the given account.

        Args:
            uid: Provider account id.
            claims: Optional developer claims embedded in the token.

        Returns:
            Encoded JWT.

        Raises:
            IdentityServiceError: If no signing key is configured or signing
                fails.
        """
        key = self._settings.private_key.get_secret_value()
        if not key:
            raise IdentityServiceError("TOKEN_SIGNING_FAILED", "No signing key configured")

        issued_at = int(utc_now().timestamp())
        payload: dict[str, Any] = {
            "iss": self._settings.service_account_email,
            "sub": self._settings.service_account_email,
            "aud": self._settings.token_audience,
            "uid": uid,
            "iat": issued_at,
            "exp": issued_at + self._settings.token_ttl_seconds,
        }
        if claims:
            payload["claims"] = claims

        try:
            return jwt.encode(payload, key, algorithm=self._settings.token_algorithm)
        except JOSEError as e:
            raise IdentityServiceError("TOKEN_SIGNING_FAILED", str(e)) from e

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
