"""Salesforce adapter (OAuth2 client credentials, REST + SOQL)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any
from urllib.parse import urlparse

import httpx

from syncbridge.outbound.auth import ClientCredentialsAdapter
from syncbridge.outbound.config import VendorType
from syncbridge.outbound.credentials import VendorCredential, now_ms
from syncbridge.outbound.exceptions import ConfigError
from syncbridge.outbound.query import FilterPredicate, PaginatedResult, Pagination, QueryOptions
from syncbridge.outbound.registry import get_registry
from syncbridge.outbound.retry import parsing_response

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "59.0"

# Salesforce token responses carry no expires_in; session timeout is 2h by
# default, so assume a shorter lifetime.
TOKEN_LIFETIME_SECONDS = 5400

SOQL_OPERATORS = {
    "$eq": "=",
    "$ne": "!=",
    "$gt": ">",
    "$gte": ">=",
    "$lt": "<",
    "$lte": "<=",
}


def soql_literal(value: Any) -> str:
    """Render a Python value as a SOQL literal."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat() if value.tzinfo else f"{value.isoformat()}Z"
    if isinstance(value, date):
        return value.isoformat()
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def soql_condition(predicate: FilterPredicate) -> str:
    """Translate one filter predicate into a SOQL condition."""
    field, operator, value = predicate.field, predicate.operator, predicate.value
    if operator == "$exists":
        return f"{field} != null" if value else f"{field} = null"
    if operator == "$in":
        values = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
        return f"{field} IN ({', '.join(soql_literal(v) for v in values)})"
    return f"{field} {SOQL_OPERATORS[operator]} {soql_literal(value)}"


def build_soql(object_type: str, query: QueryOptions, count: bool = False) -> str:
    """Build the SOQL statement for a parsed query.

    With count=True, builds the matching ``SELECT COUNT()`` statement.
    """
    fields = "COUNT()" if count else ", ".join(query.select or ["Id"])
    soql = f"SELECT {fields} FROM {object_type}"
    if query.filters:
        soql += " WHERE " + " AND ".join(soql_condition(p) for p in query.filters)
    if count:
        return soql
    if query.sort:
        soql += " ORDER BY " + ", ".join(
            f"{key.field} {'DESC' if key.descending else 'ASC'}" for key in query.sort
        )
    soql += f" LIMIT {query.limit}"
    if query.offset:
        soql += f" OFFSET {query.offset}"
    return soql


def _strip_attributes(record: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in record.items() if key != "attributes"}


class SalesforceAdapter(ClientCredentialsAdapter):
    """Adapter for the Salesforce REST API.

    Authenticates with the client-credentials flow of a connected app and
    queries with SOQL. Associations are lookup fields, set with a PATCH
    after the record is created.

    Required credentials:
        - client_id: Connected app consumer key
        - client_secret: Connected app consumer secret

    Required connection_params:
        - instance_url: My Domain URL, e.g. https://acme.my.salesforce.com

    Optional connection_params:
        - api_version: REST API version (default: 59.0)

    Example:
        >>> config = VendorConfig(
        ...     vendor_type=VendorType.SALESFORCE,
        ...     name="Salesforce Prod",
        ...     credentials={"client_id": "...", "client_secret": "..."},
        ...     connection_params={"instance_url": "https://acme.my.salesforce.com"},
        ... )
        >>> async with SalesforceAdapter(config) as adapter:
        ...     page = await adapter.find("Opportunity", {"Amount": {"$gt": 100}})
    """

    vendor_type = VendorType.SALESFORCE

    OBJECT_ALIASES = {
        "accounts": "Account",
        "contacts": "Contact",
        "leads": "Lead",
        "opportunities": "Opportunity",
        "deals": "Opportunity",
        "cases": "Case",
    }

    @property
    def instance_url(self) -> str:
        url = self.config.connection_params.get("instance_url")
        if not url:
            raise ConfigError("Salesforce connection_params require 'instance_url'")
        url = url.rstrip("/")
        return url if url.startswith("http") else f"https://{url}"

    @property
    def api_version(self) -> str:
        return str(self.config.connection_params.get("api_version", DEFAULT_API_VERSION))

    @property
    def token_url(self) -> str:
        return f"{self.instance_url}/services/oauth2/token"

    @property
    def api_base_url(self) -> str:
        credential = self.lifecycle.credential
        instance = (credential.extra.get("instance_url") if credential else None) or self.instance_url
        return f"{instance.rstrip('/')}/services/data/v{self.api_version}"

    def auth_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def _credential_from_response(
        self, data: dict[str, Any], refresh_token: str | None = None
    ) -> VendorCredential:
        credential = super()._credential_from_response(data, refresh_token)
        credential.expires_in_seconds = TOKEN_LIFETIME_SECONDS
        issued_at = data.get("issued_at")
        credential.issued_at_epoch_ms = int(issued_at) if issued_at else now_ms()
        return credential

    async def _create_record(self, object_type: str, payload: dict[str, Any]) -> str:
        response = await self._request("POST", f"/sobjects/{object_type}/", json=payload)
        with parsing_response(response):
            return str(response.json()["id"])

    async def _fetch_record(
        self, object_type: str, record_id: str, select: list[str]
    ) -> dict[str, Any] | None:
        params = {"fields": ",".join(select)} if select else None
        response = await self._request("GET", f"/sobjects/{object_type}/{record_id}", params=params)
        with parsing_response(response):
            return _strip_attributes(response.json())

    async def _update_record(
        self, object_type: str, record_id: str, payload: dict[str, Any]
    ) -> None:
        await self._request("PATCH", f"/sobjects/{object_type}/{record_id}", json=payload)

    async def _delete_record(self, object_type: str, record_id: str) -> None:
        await self._request("DELETE", f"/sobjects/{object_type}/{record_id}")

    async def _link_associations(
        self, object_type: str, record_id: str, associations: Mapping[str, Any]
    ) -> None:
        await self._request(
            "PATCH", f"/sobjects/{object_type}/{record_id}", json=dict(associations)
        )

    async def _search(
        self, object_type: str, query: QueryOptions
    ) -> tuple[int, list[dict[str, Any]]]:
        count_soql = build_soql(object_type, query, count=True)
        soql = build_soql(object_type, query)
        logger.debug(f"SOQL: {soql}")

        count, _ = await self._query(count_soql)
        _, records = await self._query(soql)
        return count, records

    async def _query(self, soql: str) -> tuple[int, list[dict[str, Any]]]:
        """Run SOQL, returning (totalSize, records without attributes)."""
        response = await self._request("GET", "/query", params={"q": soql})
        with parsing_response(response):
            result = response.json()
            records = [_strip_attributes(record) for record in result["records"]]
            return int(result.get("totalSize", len(records))), records

    async def find(
        self, object_type: str, options: Mapping[str, Any] | str | None = None
    ) -> PaginatedResult:
        """Query records.

        Args:
            object_type: Salesforce object, e.g. "Opportunity".
            options: Vendor-neutral query options, or a raw SOQL statement
                which is run as-is on a single page.
        """
        if not isinstance(options, str):
            return await super().find(object_type, options)

        soql = options
        logger.debug(f"SOQL: {soql}")
        total, records = await self._call(lambda: self._query(soql), f"query {object_type}")
        return PaginatedResult(
            pagination=Pagination.build(total, 1, max(len(records), 1)),
            data=records,
        )

    def get_ref_url(self, object_type: str, record_id: str) -> str:
        """Lightning record page, e.g. .../lightning/r/Account/001.../view."""
        host = urlparse(self.instance_url).netloc
        host = host.replace(".my.salesforce.com", ".lightning.force.com")
        return f"https://{host}/lightning/r/{self._ui_object(object_type)}/{record_id}/view"

    def _extract_error_message(self, response: httpx.Response) -> str | None:
        message = super()._extract_error_message(response)
        if message is None:
            return None
        try:
            body = response.json()
        except ValueError:
            return message
        if isinstance(body, list) and body and isinstance(body[0], Mapping):
            code = body[0].get("errorCode")
            if code:
                return f"{code}: {message}"
        return message


# Auto-register adapter
get_registry().register(VendorType.SALESFORCE, SalesforceAdapter)
