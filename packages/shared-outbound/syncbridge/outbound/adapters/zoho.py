"""Zoho CRM adapter (OAuth2 refresh token, CRM v3 API + COQL)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import httpx

from syncbridge.outbound.auth import RefreshTokenAdapter
from syncbridge.outbound.config import VendorType
from syncbridge.outbound.exceptions import ConfigError, VendorHTTPError
from syncbridge.outbound.query import FilterPredicate, QueryOptions
from syncbridge.outbound.registry import get_registry
from syncbridge.outbound.retry import parsing_response, response_details

logger = logging.getLogger(__name__)

# Valid Zoho API domains (regional data centers)
VALID_DOMAINS = {
    "zohoapis.com",  # US
    "zohoapis.eu",  # EU
    "zohoapis.com.au",  # Australia
    "zohoapis.in",  # India
    "zohoapis.jp",  # Japan
    "zohoapis.com.cn",  # China
    "zohoapis.ca",  # Canada
}

DEFAULT_DOMAIN = "zohoapis.com"

COQL_OPERATORS = {
    "$eq": "=",
    "$ne": "!=",
    "$gt": ">",
    "$gte": ">=",
    "$lt": "<",
    "$lte": "<=",
}


def _validate_domain(domain: str) -> str:
    """Validate Zoho API domain.

    Raises:
        ConfigError: If the domain is not a valid Zoho data center.
    """
    if domain not in VALID_DOMAINS:
        raise ConfigError(
            f"Invalid Zoho domain: '{domain}'. "
            f"Valid domains are: {', '.join(sorted(VALID_DOMAINS))}"
        )
    return domain


def coql_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return f"'{value.isoformat()}'"
    if isinstance(value, date):
        return f"'{value.isoformat()}'"
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def coql_condition(predicate: FilterPredicate) -> str:
    """Translate one filter predicate into a COQL condition."""
    field, operator, value = predicate.field, predicate.operator, predicate.value
    if operator == "$exists":
        return f"{field} is not null" if value else f"{field} is null"
    if value is None and operator in ("$eq", "$ne"):
        return f"{field} is null" if operator == "$eq" else f"{field} is not null"
    if operator == "$in":
        values = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
        return f"{field} in ({', '.join(coql_literal(v) for v in values)})"
    return f"{field} {COQL_OPERATORS[operator]} {coql_literal(value)}"


def build_coql(module: str, query: QueryOptions, count: bool = False) -> str:
    """Build the COQL statement for a parsed query.

    COQL requires a WHERE clause, so an always-true condition is used when
    there are no filters.
    """
    fields = "COUNT(id)" if count else ", ".join(query.select or ["id"])
    conditions = [coql_condition(p) for p in query.filters] or ["id is not null"]
    coql = f"select {fields} from {module} where {' and '.join(conditions)}"
    if count:
        return coql
    if query.sort:
        coql += " order by " + ", ".join(
            f"{key.field} {'desc' if key.descending else 'asc'}" for key in query.sort
        )
    return coql + f" limit {query.limit} offset {query.offset}"


def _rejects_record_id(response: httpx.Response) -> bool:
    """True when Zoho answered that the record id in the URL does not exist.

    Zoho reports an unknown id as an INVALID_DATA entry naming the id field,
    with HTTP 400 or as a per-record error on a 2xx response.
    """
    try:
        body = response.json()
    except ValueError:
        return False
    entries = body.get("data") if isinstance(body, Mapping) else None
    if not isinstance(entries, list) or not entries or not isinstance(entries[0], Mapping):
        return False
    entry = entries[0]
    details = entry.get("details")
    return entry.get("code") == "INVALID_DATA" and isinstance(details, Mapping) and "id" in details


def _record_not_found(object_type: str, record_id: str, response: httpx.Response) -> VendorHTTPError:
    return VendorHTTPError(
        f"zoho {object_type} {record_id} not found",
        status=404,
        details=response_details(response),
    )


class ZohoAdapter(RefreshTokenAdapter):
    """Adapter for Zoho CRM with OAuth refresh-token authentication.

    Object types are Zoho module API names ("Deals", "Contacts", ...).
    Associations map a related list API name to one id or a list of ids.

    Required credentials:
        - client_id: Zoho OAuth client ID
        - client_secret: Zoho OAuth client secret
        - refresh_token, or grant_token for the first exchange

    Optional connection_params:
        - domain: API domain for regional data centers (default: zohoapis.com)

    Example:
        >>> config = VendorConfig.from_env(VendorType.ZOHO)
        >>> async with ZohoAdapter(config, credential_store=store) as adapter:
        ...     page = await adapter.find("Deals", {"Stage": "Closed Won", "limit": 50})
    """

    vendor_type = VendorType.ZOHO

    OBJECT_ALIASES = {
        "Deals": "Potentials",
        "deals": "Potentials",
        "contacts": "Contacts",
        "accounts": "Accounts",
        "leads": "Leads",
    }

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.domain = _validate_domain(
            self.config.connection_params.get("domain", DEFAULT_DOMAIN)
        )

    @property
    def token_url(self) -> str:
        accounts_domain = self.domain.replace("zohoapis", "zoho")
        return f"https://accounts.{accounts_domain}/oauth/v2/token"

    @property
    def api_base_url(self) -> str:
        return f"https://www.{self.domain}/crm/v3"

    def auth_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Zoho-oauthtoken {access_token}"}

    async def _create_record(self, object_type: str, payload: dict[str, Any]) -> str:
        response = await self._request("POST", f"/{object_type}", json={"data": [payload]})
        entry = self._first_entry(response)
        with parsing_response(response):
            return str(entry["details"]["id"])

    async def _fetch_record(
        self, object_type: str, record_id: str, select: list[str]
    ) -> dict[str, Any] | None:
        params = {"fields": ",".join(select)} if select else None
        response = await self._request("GET", f"/{object_type}/{record_id}", params=params)
        if response.status_code == 204:
            return None
        with parsing_response(response):
            records = response.json().get("data") or []
            return records[0] if records else None

    async def _update_record(
        self, object_type: str, record_id: str, payload: dict[str, Any]
    ) -> None:
        response = await self._request(
            "PUT", f"/{object_type}/{record_id}", json={"data": [payload]}
        )
        self._first_entry(response)

    async def _delete_record(self, object_type: str, record_id: str) -> None:
        try:
            response = await self._request("DELETE", f"/{object_type}/{record_id}")
        except httpx.HTTPStatusError as e:
            if _rejects_record_id(e.response):
                raise _record_not_found(object_type, record_id, e.response) from e
            raise
        if _rejects_record_id(response):
            raise _record_not_found(object_type, record_id, response)
        self._first_entry(response)

    async def _link_associations(
        self, object_type: str, record_id: str, associations: Mapping[str, Any]
    ) -> None:
        for related_list, related_ids in associations.items():
            if not isinstance(related_ids, (list, tuple, set)):
                related_ids = [related_ids]
            for related_id in related_ids:
                await self._request(
                    "PUT",
                    f"/{object_type}/{record_id}/{related_list}/{related_id}",
                    json={"data": [{}]},
                )

    async def _search(
        self, object_type: str, query: QueryOptions
    ) -> tuple[int, list[dict[str, Any]]]:
        count_rows = await self._coql(build_coql(object_type, query, count=True))
        count = int(count_rows[0].get("COUNT(id)", 0)) if count_rows else 0
        records = await self._coql(build_coql(object_type, query)) if count else []
        return count, records

    async def _coql(self, coql: str) -> list[dict[str, Any]]:
        logger.debug(f"COQL: {coql}")
        response = await self._request("POST", "/coql", json={"select_query": coql})
        if response.status_code == 204:
            return []
        with parsing_response(response):
            return response.json().get("data") or []

    def _first_entry(self, response: httpx.Response) -> dict[str, Any]:
        """Return the first per-record result, raising if Zoho rejected it.

        Record writes answer with a list of per-record results whose status
        can be "error" even when the HTTP status is 2xx.
        """
        with parsing_response(response):
            entry = (response.json().get("data") or [{}])[0]
            status = entry.get("status")
        if status == "error":
            raise VendorHTTPError(
                f"zoho {entry.get('code', 'ERROR')}: {entry.get('message', 'record rejected')}",
                status=response.status_code,
                details=response_details(response),
            )
        return entry

    def get_ref_url(self, object_type: str, record_id: str) -> str:
        crm_domain = self.domain.replace("zohoapis", "zoho")
        return f"https://crm.{crm_domain}/crm/tab/{self._ui_object(object_type)}/{record_id}"

    def _extract_error_message(self, response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, Mapping) and isinstance(body.get("data"), list) and body["data"]:
            body = body["data"][0]
        if isinstance(body, Mapping):
            code, message = body.get("code"), body.get("message") or body.get("error")
            if code and message:
                return f"{code}: {message}"
            return message or code
        return None


# Auto-register adapter
get_registry().register(VendorType.ZOHO, ZohoAdapter)
