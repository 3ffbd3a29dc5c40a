"""Vendor-neutral query shape shared by all adapters.

``find`` accepts a flat options mapping. The keys ``select``, ``limit``,
``page`` and ``sort`` shape the query; every other key is a filter:

    {
        "select": "Id Name Amount",
        "Amount": {"$gt": 100},
        "StageName": "Closed Won",
        "sort": "-CreatedDate",
        "limit": 10,
        "page": 2,
    }

Adapters translate the parsed predicates into their native filter syntax.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from syncbridge.outbound.exceptions import ConfigError

logger = logging.getLogger(__name__)

RESERVED_QUERY_KEYS = frozenset({"select", "limit", "page", "sort"})

SUPPORTED_OPERATORS = ("$eq", "$exists", "$ne", "$gt", "$gte", "$lt", "$lte", "$in")

DEFAULT_LIMIT = 100


@dataclass(frozen=True)
class FilterPredicate:
    """A single field comparison."""

    field: str
    operator: str  # One of SUPPORTED_OPERATORS
    value: Any


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass
class QueryOptions:
    """Parsed form of a find() options mapping."""

    select: list[str] = field(default_factory=list)
    filters: list[FilterPredicate] = field(default_factory=list)
    sort: list[SortKey] = field(default_factory=list)
    limit: int = DEFAULT_LIMIT
    page: int = 1

    @property
    def offset(self) -> int:
        """Zero-based index of the first record on the requested page."""
        return (self.page - 1) * self.limit

    @classmethod
    def parse(cls, options: Mapping[str, Any] | None) -> QueryOptions:
        """Split an options mapping into query shape and filter predicates.

        Plain values mean equality and plain lists mean ``$in``. Operator
        dicts may combine several operators on one field. Unknown operators
        are logged and skipped.

        Raises:
            ConfigError: If options is not a mapping, or limit/page is not a
                positive integer.
        """
        if options is None:
            return cls()
        if not isinstance(options, Mapping):
            raise ConfigError("Query options must be a mapping")

        filters: list[FilterPredicate] = []
        for key, value in options.items():
            if key in RESERVED_QUERY_KEYS:
                continue
            if isinstance(value, Mapping) and any(str(k).startswith("$") for k in value):
                for operator, operand in value.items():
                    if operator not in SUPPORTED_OPERATORS:
                        logger.warning(f"Skipping unsupported operator {operator!r} on field '{key}'")
                        continue
                    filters.append(FilterPredicate(key, operator, operand))
            elif isinstance(value, (list, tuple, set, frozenset)):
                filters.append(FilterPredicate(key, "$in", list(value)))
            else:
                filters.append(FilterPredicate(key, "$eq", value))

        return cls(
            select=_parse_select(options.get("select")),
            filters=filters,
            sort=_parse_sort(options.get("sort")),
            limit=_positive_int(options.get("limit"), "limit", DEFAULT_LIMIT),
            page=_positive_int(options.get("page"), "page", 1),
        )


@dataclass(frozen=True)
class Pagination:
    count: int
    page: int
    limit: int
    last_page: int
    start_index: int

    @classmethod
    def build(cls, count: int, page: int, limit: int) -> Pagination:
        return cls(
            count=count,
            page=page,
            limit=limit,
            last_page=math.ceil(count / limit) if limit else 0,
            start_index=(page - 1) * limit,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "count": self.count,
            "page": self.page,
            "limit": self.limit,
            "lastPage": self.last_page,
            "startIndex": self.start_index,
        }


@dataclass
class PaginatedResult:
    """One page of records plus normalized pagination."""

    pagination: Pagination
    data: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the result in its wire shape (camelCase pagination keys)."""
        return {"pagination": self.pagination.to_dict(), "data": self.data}


def _parse_select(select: Any) -> list[str]:
    if not select:
        return []
    if isinstance(select, str):
        return [name for name in select.replace(",", " ").split() if name]
    return [str(name) for name in select]


def _parse_sort(sort: Any) -> list[SortKey]:
    """Parse "-CreatedDate Name" style sort specs.

    A leading "-" sorts descending. Mappings of ``{field: 1 | -1}`` are
    accepted as well.
    """
    if not sort:
        return []
    if isinstance(sort, Mapping):
        return [SortKey(name, direction in (-1, "desc", "-1")) for name, direction in sort.items()]
    names = _parse_select(sort)
    return [
        SortKey(name[1:], True) if name.startswith("-") else SortKey(name.lstrip("+"))
        for name in names
    ]


def _positive_int(value: Any, name: str, default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Query option '{name}' must be an integer, got {value!r}") from e
    if number < 1:
        raise ConfigError(f"Query option '{name}' must be at least 1, got {number}")
    return number
