"""HubSpot CRM adapter (private-app token, CRM v3 objects API)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from syncbridge.outbound.auth import BearerKeyAdapter
from syncbridge.outbound.config import VendorType
from syncbridge.outbound.query import FilterPredicate, QueryOptions
from syncbridge.outbound.registry import get_registry
from syncbridge.outbound.retry import parsing_response

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.hubapi.com"

# Search endpoint rejects larger pages
MAX_SEARCH_LIMIT = 200

FILTER_OPERATORS = {
    "$eq": "EQ",
    "$ne": "NEQ",
    "$gt": "GT",
    "$gte": "GTE",
    "$lt": "LT",
    "$lte": "LTE",
}


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filter(predicate: FilterPredicate) -> dict[str, Any]:
    """Translate one filter predicate into a HubSpot search filter."""
    field, operator, value = predicate.field, predicate.operator, predicate.value
    if operator == "$exists":
        return {"propertyName": field, "operator": "HAS_PROPERTY" if value else "NOT_HAS_PROPERTY"}
    if operator == "$eq" and value is None:
        return {"propertyName": field, "operator": "NOT_HAS_PROPERTY"}
    if operator == "$ne" and value is None:
        return {"propertyName": field, "operator": "HAS_PROPERTY"}
    if operator == "$in":
        values = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
        return {"propertyName": field, "operator": "IN", "values": [_filter_value(v) for v in values]}
    return {"propertyName": field, "operator": FILTER_OPERATORS[operator], "value": _filter_value(value)}


def build_search_body(query: QueryOptions) -> dict[str, Any]:
    """Build the JSON body for POST /crm/v3/objects/{type}/search."""
    limit = min(query.limit, MAX_SEARCH_LIMIT)
    body: dict[str, Any] = {
        "filterGroups": (
            [{"filters": [build_filter(p) for p in query.filters]}] if query.filters else []
        ),
        "limit": limit,
        "after": str((query.page - 1) * limit),
    }
    if query.select:
        body["properties"] = query.select
    if query.sort:
        body["sorts"] = [
            {"propertyName": key.field, "direction": "DESCENDING" if key.descending else "ASCENDING"}
            for key in query.sort
        ]
    return body


def flatten(record: Mapping[str, Any]) -> dict[str, Any]:
    """Lift the properties container to the top level of a record."""
    flat = {key: value for key, value in record.items() if key != "properties"}
    flat.update(record.get("properties") or {})
    flat["id"] = record.get("id", flat.get("hs_object_id"))
    return flat


class HubSpotAdapter(BearerKeyAdapter):
    """Adapter for HubSpot CRM objects.

    Uses a private-app access token. Object types are the CRM v3 API names
    ("contacts", "companies", "deals", ...). Associations map a target
    object type to one id or a list of ids and are created with the default
    association type.

    Required credentials:
        - api_key: HubSpot private app access token

    Optional connection_params:
        - portal_id: HubSpot account id, used for UI links

    Example:
        >>> config = VendorConfig.from_env(VendorType.HUBSPOT)
        >>> async with HubSpotAdapter(config) as adapter:
        ...     deal = await adapter.create(
        ...         "deals",
        ...         {"dealname": "Renewal", "associations": {"companies": "123"}},
        ...     )
    """

    vendor_type = VendorType.HUBSPOT
    MAX_PAGE_SIZE = MAX_SEARCH_LIMIT

    OBJECT_ALIASES = {
        "contacts": "contact",
        "companies": "company",
        "deals": "deal",
        "tickets": "ticket",
        "products": "product",
        "quotes": "quote",
    }

    @property
    def api_base_url(self) -> str:
        return self.config.connection_params.get("base_url", API_BASE_URL).rstrip("/")

    async def _create_record(self, object_type: str, payload: dict[str, Any]) -> str:
        response = await self._request(
            "POST", f"/crm/v3/objects/{object_type}", json={"properties": payload}
        )
        with parsing_response(response):
            return str(response.json()["id"])

    async def _fetch_record(
        self, object_type: str, record_id: str, select: list[str]
    ) -> dict[str, Any] | None:
        params = {"properties": ",".join(select)} if select else None
        response = await self._request(
            "GET", f"/crm/v3/objects/{object_type}/{record_id}", params=params
        )
        with parsing_response(response):
            return flatten(response.json())

    async def _update_record(
        self, object_type: str, record_id: str, payload: dict[str, Any]
    ) -> None:
        await self._request(
            "PATCH", f"/crm/v3/objects/{object_type}/{record_id}", json={"properties": payload}
        )

    async def _delete_record(self, object_type: str, record_id: str) -> None:
        await self._request("DELETE", f"/crm/v3/objects/{object_type}/{record_id}")

    async def _link_associations(
        self, object_type: str, record_id: str, associations: Mapping[str, Any]
    ) -> None:
        for to_object_type, to_ids in associations.items():
            if not isinstance(to_ids, (list, tuple, set)):
                to_ids = [to_ids]
            for to_id in to_ids:
                await self._request(
                    "PUT",
                    f"/crm/v4/objects/{object_type}/{record_id}"
                    f"/associations/default/{to_object_type}/{to_id}",
                )

    async def _search(
        self, object_type: str, query: QueryOptions
    ) -> tuple[int, list[dict[str, Any]]]:
        body = build_search_body(query)
        logger.debug(f"HubSpot search {object_type}: {body}")
        response = await self._request(
            "POST", f"/crm/v3/objects/{object_type}/search", json=body
        )
        with parsing_response(response):
            data = response.json()
            return int(data.get("total", 0)), [flatten(r) for r in data.get("results", [])]

    def get_ref_url(self, object_type: str, record_id: str) -> str:
        portal_id = self.config.connection_params.get("portal_id")
        prefix = f"{portal_id}/" if portal_id else ""
        return f"https://app.hubspot.com/contacts/{prefix}{self._ui_object(object_type)}/{record_id}"


# Auto-register adapter
get_registry().register(VendorType.HUBSPOT, HubSpotAdapter)
