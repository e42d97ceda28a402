"""Pagination strategies.

A strategy prepares the first page of a descriptor and derives the next
page from the previous response. It moves through the PaginationState
states: NOT_INITIATED -> INITIATED -> HAS_NEXT_PAGE* -> EXHAUSTED.
"""

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import structlog

from httpengine.errors import PaginationError
from httpengine.query.models import (
    KeyValuePair,
    OffsetLimitPagination,
    PaginationParametersLocation,
    PaginationState,
    QueryConfiguration,
)


if TYPE_CHECKING:
    from httpengine.engine.response import HttpResponse


logger = structlog.get_logger()


class PaginationStrategy(ABC):
    """Derives successive page descriptors from responses."""

    def __init__(self, config: QueryConfiguration) -> None:
        self._config = config

    @property
    def state(self) -> PaginationState:
        """Pagination progress of the descriptor."""
        return self._config.pagination_state

    @abstractmethod
    def initiate_pagination(self, config: QueryConfiguration) -> QueryConfiguration:
        """Prepare the first page. Does nothing if already done."""

    @abstractmethod
    def get_next_page_configuration(
        self, response: "HttpResponse"
    ) -> QueryConfiguration | None:
        """Get the next page descriptor, or None when pagination is over."""

    @abstractmethod
    def get_last_count(self, response: "HttpResponse") -> int:
        """Number of elements in the last page."""


class NoPagination(PaginationStrategy):
    """Single page."""

    def initiate_pagination(self, config: QueryConfiguration) -> QueryConfiguration:
        if not config.init_pagination_done:
            config.pagination_state = PaginationState.INITIATED
        return config

    def get_next_page_configuration(
        self, response: "HttpResponse"
    ) -> QueryConfiguration | None:
        self._config.pagination_state = PaginationState.EXHAUSTED
        return None

    def get_last_count(self, response: "HttpResponse") -> int:
        return 1


class OffsetLimitPaginationStrategy(PaginationStrategy):
    """Offset/limit pagination.

    The offset is advanced by the number of elements found at the
    configured element path of the previous response. The element count
    is computed once per strategy instance.
    """

    def __init__(self, config: QueryConfiguration) -> None:
        super().__init__(config)
        if config.offset_limit_pagination is None:
            msg = "Offset/limit pagination is not configured."
            raise ValueError(msg)
        self._pagination: OffsetLimitPagination = config.offset_limit_pagination
        self._last_count: int | None = None
        self._log = logger.bind(component="pagination", strategy="offset_limit")

    def initiate_pagination(self, config: QueryConfiguration) -> QueryConfiguration:
        if config.init_pagination_done:
            return config

        pairs = self._pairs(config)
        pairs.append(
            KeyValuePair(
                key=self._pagination.offset_param_name,
                value=self._pagination.offset_value,
            )
        )
        pairs.append(
            KeyValuePair(
                key=self._pagination.limit_param_name,
                value=self._pagination.limit_value,
            )
        )
        config.pagination_state = PaginationState.INITIATED
        return config

    def get_next_page_configuration(
        self, response: "HttpResponse"
    ) -> QueryConfiguration | None:
        received = self.get_last_count(response)
        if received <= 0:
            self._config.pagination_state = PaginationState.EXHAUSTED
            self._log.debug("pagination_exhausted")
            return None

        pairs = self._pairs(self._config)
        offset_name = self._pagination.offset_param_name
        limit_name = self._pagination.limit_param_name

        offset = next((pair for pair in pairs if pair.key == offset_name), None)
        if offset is None:
            pairs.append(KeyValuePair(key=offset_name, value=self._pagination.offset_value))
        else:
            offset.value = _next_offset(offset.value, received)

        if not any(pair.key == limit_name for pair in pairs):
            pairs.append(KeyValuePair(key=limit_name, value=self._pagination.limit_value))

        self._config.pagination_state = PaginationState.HAS_NEXT_PAGE
        self._log.debug(
            "pagination_next_page",
            received=received,
            offset=offset.value if offset is not None else self._pagination.offset_value,
        )
        return self._config

    def get_last_count(self, response: "HttpResponse") -> int:
        if self._last_count is None:
            self._last_count = self._count_elements(response.get_body_as_string())
        return self._last_count

    def _pairs(self, config: QueryConfiguration) -> list[KeyValuePair]:
        if self._pagination.location == PaginationParametersLocation.HEADERS:
            return config.headers
        return config.query_params

    def _count_elements(self, body: str) -> int:
        elements_path = self._pagination.elements_path
        segments = [s for s in elements_path.strip(".").split(".") if s]

        try:
            current: Any = json.loads(body)
        except json.JSONDecodeError as e:
            msg = f"Response payload is not valid JSON: {e}"
            raise PaginationError(msg, elements_path=elements_path) from e

        if not segments:
            if not isinstance(current, list):
                msg = "Without element path, the response root must be a JSON array."
                raise PaginationError(msg, elements_path=elements_path)
            return len(current)

        for index, segment in enumerate(segments):
            if not isinstance(current, dict):
                msg = f"Segment '{segment}' of '{elements_path}' is not in a JSON object."
                raise PaginationError(msg, elements_path=elements_path, segment=segment)
            if segment not in current:
                msg = f"Segment '{segment}' of '{elements_path}' not found."
                raise PaginationError(msg, elements_path=elements_path, segment=segment)

            current = current[segment]
            last = index == len(segments) - 1
            if last and not isinstance(current, list):
                msg = f"Segment '{segment}' of '{elements_path}' is not a JSON array."
                raise PaginationError(msg, elements_path=elements_path, segment=segment)

        return len(current)


def _next_offset(previous: str | None, received: int) -> str:
    try:
        return str(int(previous or "") + received)
    except ValueError as e:
        msg = f"Offset value '{previous}' is not an integer."
        raise PaginationError(msg) from e


def get_pagination_strategy(config: QueryConfiguration) -> PaginationStrategy:
    """Select the strategy matching the descriptor's pagination settings.

    Args:
        config: Request descriptor.

    Returns:
        A new strategy bound to the descriptor.
    """
    if config.offset_limit_pagination is not None:
        return OffsetLimitPaginationStrategy(config)
    return NoPagination(config)
