"""Pagination strategies."""

from httpengine.pagination.strategy import (
    NoPagination,
    OffsetLimitPaginationStrategy,
    PaginationStrategy,
    get_pagination_strategy,
)


__all__ = [
    "NoPagination",
    "OffsetLimitPaginationStrategy",
    "PaginationStrategy",
    "get_pagination_strategy",
]
