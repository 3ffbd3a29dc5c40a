"""Base vendor adapter abstract class."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import httpx

from syncbridge.outbound.config import VendorConfig, VendorType
from syncbridge.outbound.credentials import CredentialStore, TokenLifecycle, VendorCredential
from syncbridge.outbound.exceptions import OutboundError, VendorHTTPError
from syncbridge.outbound.query import PaginatedResult, Pagination, QueryOptions
from syncbridge.outbound.retry import RetryExecutor, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP timeouts (in seconds)
API_TIMEOUT = httpx.Timeout(30.0, connect=10.0)  # 30s read, 10s connect

# Key holding relationship links in create/update payloads
ASSOCIATIONS_KEY = "associations"


class VendorAdapter(ABC):
    """Abstract base class for outbound CRM adapters.

    Implements the vendor-neutral CRUD contract on top of a small set of
    wire-level hooks. Every call authenticates through a TokenLifecycle and
    runs through a RetryExecutor, so a rejected token is refreshed and the
    call retried once.

    Subclasses must implement:
    - exchange_token(): Obtain a credential from the vendor
    - auth_headers(): Headers carrying the access token
    - api_base_url: Root URL that relative request paths are joined to
    - _create_record(), _fetch_record(), _update_record(), _delete_record()
    - _search(): Run a parsed query, returning (total count, records)
    - _link_associations(): Submit relationship links after a write
    - get_ref_url(): UI deep link for a record

    Subclasses must set the class attribute:
    - vendor_type: The VendorType enum value for this adapter

    Can be used as an async context manager:
        async with SalesforceAdapter(config) as adapter:
            account = await adapter.create("Account", {"Name": "Acme"})
    """

    vendor_type: VendorType

    # Object type -> UI path segment used by get_ref_url()
    OBJECT_ALIASES: dict[str, str] = {}

    # Largest page the vendor serves; find() clamps larger limits
    MAX_PAGE_SIZE: int | None = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Validate that subclasses define vendor_type."""
        super().__init_subclass__(**kwargs)
        # Skip validation for abstract subclasses
        if ABC in cls.__bases__:
            return
        if not hasattr(cls, "vendor_type") or cls.vendor_type is None:
            raise TypeError(f"{cls.__name__} must define a 'vendor_type' class attribute")

    def __init__(
        self,
        config: VendorConfig,
        credential_store: CredentialStore | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize adapter with configuration.

        Args:
            config: Vendor configuration including credentials.
            credential_store: Persistence for cached tokens. Tokens are kept
                in memory only when omitted.
            client: HTTP client to use. Created lazily when omitted and
                closed by aclose().
        """
        self.config = config
        self.credential_store = credential_store
        self._client = client
        self._owns_client = client is None
        self.lifecycle = TokenLifecycle(
            key=config.token_key,
            exchange=self.exchange_token,
            store=self._lifecycle_store(),
            refresh_buffer_ms=config.refresh_buffer_ms,
        )
        self.retry = RetryExecutor(self.lifecycle, self._classify)

    async def __aenter__(self) -> VendorAdapter:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=API_TIMEOUT)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this adapter created it."""
        logger.debug(f"Closing adapter: {self.config.name}")
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _lifecycle_store(self) -> CredentialStore | None:
        return self.credential_store

    # Authentication

    @abstractmethod
    async def exchange_token(self, current: VendorCredential | None) -> VendorCredential:
        """Obtain a new credential from the vendor.

        Args:
            current: The cached credential being replaced, if any.

        Raises:
            AuthenticationError: If the exchange fails.
        """
        pass  # pragma: no cover

    @abstractmethod
    def auth_headers(self, access_token: str) -> dict[str, str]:
        pass  # pragma: no cover

    @property
    @abstractmethod
    def api_base_url(self) -> str:
        pass  # pragma: no cover

    async def authenticate(self) -> str:
        """Return a valid access token, refreshing it if needed.

        Raises:
            AuthenticationError: If the token exchange fails.
        """
        return await self.lifecycle.authenticate()

    # Transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request and raise on non-2xx responses."""
        token = await self.authenticate()
        url = path if path.startswith("http") else f"{self.api_base_url}{path}"
        headers = {**self.auth_headers(token), **kwargs.pop("headers", {})}
        response = await self.client.request(method, url, headers=headers, **kwargs)
        response.raise_for_status()
        return response

    async def _call(self, operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
        return await self.retry.execute_with_retry(operation, operation_name)

    def _classify(self, exc: BaseException, context: str) -> OutboundError:
        return classify_error(
            exc, f"{self.vendor_type.value} {context}", self._extract_error_message
        )

    def _extract_error_message(self, response: httpx.Response) -> str | None:
        """Pull a readable message out of a vendor error response."""
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, list) and body and isinstance(body[0], Mapping):
            body = body[0]
        if isinstance(body, Mapping):
            return body.get("message") or body.get("error_description") or body.get("error")
        return None

    # Wire hooks

    @abstractmethod
    async def _create_record(self, object_type: str, payload: dict[str, Any]) -> str:
        """Create a record and return its id."""
        pass  # pragma: no cover

    @abstractmethod
    async def _fetch_record(
        self, object_type: str, record_id: str, select: list[str]
    ) -> dict[str, Any] | None:
        """Fetch one flattened record, or None when the vendor reports no content."""
        pass  # pragma: no cover

    @abstractmethod
    async def _update_record(
        self, object_type: str, record_id: str, payload: dict[str, Any]
    ) -> None:
        pass  # pragma: no cover

    @abstractmethod
    async def _delete_record(self, object_type: str, record_id: str) -> None:
        pass  # pragma: no cover

    @abstractmethod
    async def _search(
        self, object_type: str, query: QueryOptions
    ) -> tuple[int, list[dict[str, Any]]]:
        pass  # pragma: no cover

    @abstractmethod
    async def _link_associations(
        self, object_type: str, record_id: str, associations: Mapping[str, Any]
    ) -> None:
        pass  # pragma: no cover

    # CRUD contract

    async def create(self, object_type: str, data: Mapping[str, Any]) -> dict[str, Any]:
        """Create a record and return it as stored by the vendor.

        Any ``associations`` entry is removed from the payload and linked
        after the record exists.

        Returns:
            The record re-read after the write.
        """
        payload, associations = _split_associations(data)
        record_id = await self._call(
            lambda: self._create_record(object_type, payload), f"create {object_type}"
        )
        logger.info(f"Created {self.vendor_type.value} {object_type} {record_id}")

        if associations:
            await self._call(
                lambda: self._link_associations(object_type, record_id, associations),
                f"link {object_type} {record_id}",
            )

        record = await self.find_one(object_type, record_id)
        if record is None:
            logger.warning(f"{object_type} {record_id} not readable after create")
            return {"id": record_id, **payload}
        return record

    async def find(
        self, object_type: str, options: Mapping[str, Any] | None = None
    ) -> PaginatedResult:
        """Query records with vendor-neutral filters and pagination.

        Args:
            object_type: Vendor object type, e.g. "Contact" or "deals".
            options: Query options; see syncbridge.outbound.query.

        Returns:
            One page of records with normalized pagination.
        """
        query = QueryOptions.parse(options)
        if self.MAX_PAGE_SIZE is not None and query.limit > self.MAX_PAGE_SIZE:
            logger.warning(
                f"{self.vendor_type.value} pages hold at most {self.MAX_PAGE_SIZE} records, "
                f"limit {query.limit} reduced"
            )
            query.limit = self.MAX_PAGE_SIZE
        count, records = await self._call(
            lambda: self._search(object_type, query), f"find {object_type}"
        )
        return PaginatedResult(
            pagination=Pagination.build(count, query.page, query.limit),
            data=records,
        )

    async def find_one(
        self,
        object_type: str,
        record_id: str,
        options: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Fetch one record by id.

        Returns:
            The flattened record, or None if the vendor reports it missing.
        """
        select = QueryOptions.parse(_select_only(options)).select
        try:
            return await self._call(
                lambda: self._fetch_record(object_type, record_id, select),
                f"fetch {object_type} {record_id}",
            )
        except VendorHTTPError as e:
            if e.status == 404:
                return None
            raise

    async def update(
        self,
        object_type: str,
        record_id: str,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Partially update a record and return it re-read from the vendor.

        Args:
            options: May hold a "select" restricting the returned fields.
        """
        payload, associations = _split_associations(data)
        if payload:
            await self._call(
                lambda: self._update_record(object_type, record_id, payload),
                f"update {object_type} {record_id}",
            )
        if associations:
            await self._call(
                lambda: self._link_associations(object_type, record_id, associations),
                f"link {object_type} {record_id}",
            )
        return await self.find_one(object_type, record_id, options)

    async def delete(self, object_type: str, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if deleted, False if the record didn't exist.
        """
        try:
            await self._call(
                lambda: self._delete_record(object_type, record_id),
                f"delete {object_type} {record_id}",
            )
        except VendorHTTPError as e:
            if e.status == 404:
                return False
            raise
        return True

    # Cross references

    def get_ref_data(self, object_type: str, record_id: str) -> dict[str, str]:
        """Return the {refId, refUrl} pair stored locally for a vendor record."""
        return {"refId": record_id, "refUrl": self.get_ref_url(object_type, record_id)}

    @abstractmethod
    def get_ref_url(self, object_type: str, record_id: str) -> str:
        pass  # pragma: no cover

    def _ui_object(self, object_type: str) -> str:
        return self.OBJECT_ALIASES.get(object_type, object_type)


def _split_associations(data: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    payload = dict(data)
    associations = payload.pop(ASSOCIATIONS_KEY, None) or {}
    return payload, dict(associations)


def _select_only(options: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if not options:
        return None
    return {"select": options.get("select")}
