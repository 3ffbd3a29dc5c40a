"""Authentication variants shared by vendor adapters.

- BearerKeyAdapter: a static API key sent as a bearer token.
- ClientCredentialsAdapter: OAuth2 client-credentials grant. No refresh
  token; a new token is exchanged whenever the cached one expires.
- RefreshTokenAdapter: OAuth2 refresh-token grant. A one-time grant token is
  exchanged for an access/refresh pair on first use, and the refresh token is
  used from then on.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from syncbridge.outbound.base import VendorAdapter
from syncbridge.outbound.credentials import CredentialStore, VendorCredential, now_ms
from syncbridge.outbound.exceptions import AuthenticationError
from syncbridge.outbound.retry import response_details

logger = logging.getLogger(__name__)

TOKEN_TIMEOUT = httpx.Timeout(10.0, connect=5.0)  # 10s read, 5s connect

# Used when a token response carries no expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# Token response fields that are not kept in VendorCredential.extra
_TOKEN_FIELDS = {"access_token", "refresh_token", "expires_in", "token_type", "scope"}


class BearerKeyAdapter(VendorAdapter, ABC):
    """Adapter authenticating with a static, non-expiring API key.

    The key is never persisted. A 401 still clears the cached key and
    re-reads it from config before the single retry.

    Required credentials:
        - api_key
    """

    def _lifecycle_store(self) -> CredentialStore | None:
        return None

    async def exchange_token(self, current: VendorCredential | None) -> VendorCredential:
        api_key = self.config.credentials.get("api_key")
        if not api_key:
            raise AuthenticationError(
                f"Missing required {self.vendor_type.value} credential: api_key"
            )
        return VendorCredential(access_token=api_key, expires_in_seconds=None)

    def auth_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}


class OAuthAdapter(VendorAdapter, ABC):
    """Shared token-endpoint handling for OAuth2 grants."""

    # Required credential keys
    REQUIRED_CREDENTIALS: tuple[str, ...] = ("client_id", "client_secret")

    @property
    @abstractmethod
    def token_url(self) -> str:
        pass  # pragma: no cover

    def _check_credentials(self, *required: str) -> dict[str, Any]:
        creds = self.config.credentials
        missing = [key for key in required or self.REQUIRED_CREDENTIALS if not creds.get(key)]
        if missing:
            raise AuthenticationError(
                f"Missing required {self.vendor_type.value} credentials: {', '.join(missing)}"
            )
        return creds

    async def _post_token(self, form: dict[str, str]) -> dict[str, Any]:
        """POST a form-encoded grant to the token endpoint.

        Raises:
            AuthenticationError: If the endpoint is unreachable, rejects the
                grant, or answers without an access token.
        """
        vendor = self.vendor_type.value
        try:
            response = await self.client.post(self.token_url, data=form, timeout=TOKEN_TIMEOUT)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            message = self._extract_error_message(e.response) or e.response.reason_phrase
            raise AuthenticationError(
                f"Failed to obtain {vendor} access token: {message}",
                status=e.response.status_code,
                details=response_details(e.response),
            ) from e
        except httpx.RequestError as e:
            raise AuthenticationError(
                f"Failed to reach {vendor} token endpoint: {e}", network=True
            ) from e
        except ValueError as e:
            raise AuthenticationError(f"Invalid {vendor} token response: {e}") from e

        # Some vendors report grant errors with a 200 response
        if not isinstance(data, dict) or not data.get("access_token"):
            error = data.get("error") if isinstance(data, dict) else None
            raise AuthenticationError(
                f"Failed to obtain {vendor} access token: {error or 'no access_token in response'}",
                status=response.status_code,
                details=data,
            )
        logger.info(f"{vendor} access token obtained ({form.get('grant_type')})")
        return data

    def _credential_from_response(
        self, data: dict[str, Any], refresh_token: str | None = None
    ) -> VendorCredential:
        expires_in = data.get("expires_in")
        return VendorCredential(
            access_token=data["access_token"],
            expires_in_seconds=int(expires_in) if expires_in else DEFAULT_TOKEN_LIFETIME_SECONDS,
            issued_at_epoch_ms=now_ms(),
            refresh_token=data.get("refresh_token") or refresh_token,
            extra={key: value for key, value in data.items() if key not in _TOKEN_FIELDS},
        )


class ClientCredentialsAdapter(OAuthAdapter, ABC):
    """Adapter using the OAuth2 client-credentials grant.

    Required credentials:
        - client_id
        - client_secret
    """

    async def exchange_token(self, current: VendorCredential | None) -> VendorCredential:
        creds = self._check_credentials()
        data = await self._post_token(
            {
                "grant_type": "client_credentials",
                "client_id": creds["client_id"],
                "client_secret": creds["client_secret"],
            }
        )
        return self._credential_from_response(data)


class RefreshTokenAdapter(OAuthAdapter, ABC):
    """Adapter using the OAuth2 refresh-token grant.

    The refresh token outlives access-token invalidation. It is kept in
    memory and, when a credential store is injected, persisted under
    ``"<vendor>-refresh-<env>"``.

    Required credentials:
        - client_id
        - client_secret
        - refresh_token or grant_token (one-time authorization code)
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        stored = self.credential_store.get(self.refresh_key) if self.credential_store else None
        self._refresh_token: str | None = stored or self.config.credentials.get("refresh_token")

    @property
    def refresh_key(self) -> str:
        return f"{self.vendor_type.value}-refresh-{self.config.environment}"

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    async def exchange_token(self, current: VendorCredential | None) -> VendorCredential:
        creds = self._check_credentials()
        refresh_token = (current.refresh_token if current else None) or self._refresh_token

        form = {"client_id": creds["client_id"], "client_secret": creds["client_secret"]}
        if refresh_token:
            form.update(grant_type="refresh_token", refresh_token=refresh_token)
        elif creds.get("grant_token"):
            form.update(grant_type="authorization_code", code=creds["grant_token"])
            if creds.get("redirect_uri"):
                form["redirect_uri"] = creds["redirect_uri"]
        else:
            raise AuthenticationError(
                f"Missing required {self.vendor_type.value} credentials: "
                "refresh_token or grant_token"
            )

        data = await self._post_token(form)
        credential = self._credential_from_response(data, refresh_token)
        self._remember_refresh_token(credential.refresh_token)
        return credential

    def _remember_refresh_token(self, refresh_token: str | None) -> None:
        if not refresh_token or refresh_token == self._refresh_token:
            return
        self._refresh_token = refresh_token
        if self.credential_store is not None:
            self.credential_store.set(self.refresh_key, refresh_token)
