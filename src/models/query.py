# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Query value types shared by the document store and the query cache.

Filters and orderings are immutable tuples so a query shape can be
serialised deterministically into a cache key.
"""

from enum import Enum
from typing import Any, NamedTuple


class FilterOperator(str, Enum):
    """Comparison operators supported by the document store."""

    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    NOT_IN = "not-in"
    ARRAY_CONTAINS = "array-contains"
    ARRAY_CONTAINS_ANY = "array-contains-any"


class SortDirection(str, Enum):
    """Ordering direction."""

    ASC = "asc"
    DESC = "desc"


class Filter(NamedTuple):
    """Single field filter applied to a collection query."""

    field: str
    operator: FilterOperator
    value: Any

    @classmethod
    def eq(cls, field: str, value: Any) -> "Filter":
        """Build an equality filter."""
        return cls(field, FilterOperator.EQ, value)


class Ordering(NamedTuple):
    """Single-field ordering of a collection query."""

    field: str
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def desc(cls, field: str) -> "Ordering":
        """Build a descending ordering."""
        return cls(field, SortDirection.DESC)


# Field names shared across collections
ORGANIZATION_FIELD = "organizationId"
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"

NEWEST_FIRST = Ordering.desc(CREATED_AT_FIELD)
