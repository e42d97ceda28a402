"""Dictionaries supplying placeholder values."""

import json
import re
from collections.abc import Mapping
from typing import Any

import structlog


logger = structlog.get_logger()

_SEGMENT_PATTERN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")
_MISSING = object()


class MapDictionary:
    """Looks keys up in a plain mapping."""

    def __init__(self, values: Mapping[str, str | None]) -> None:
        self._values = values

    def __call__(self, key: str) -> str | None:
        return self._values.get(key)


class RecordDictionary:
    """Resolves dot paths against an upstream JSON-like record.

    ``.user.name`` reads ``record["user"]["name"]`` and ``.items[1].id``
    reads ``record["items"][1]["id"]``. Strings are returned as is, other
    scalars and containers are rendered as JSON. Unresolvable paths give None.
    """

    def __init__(self, record: Mapping[str, Any]) -> None:
        self._record = record
        self._log = logger.bind(component="substitutor", subcomponent="record")

    def __call__(self, key: str) -> str | None:
        value = self._resolve(key)
        if value is _MISSING or value is None:
            self._log.debug("placeholder_not_resolved", key=key)
            return None
        if isinstance(value, str):
            return value
        return json.dumps(value, separators=(",", ":"))

    def _resolve(self, key: str) -> Any:
        path = key.strip()
        if not path.strip("."):
            return self._record

        current: Any = self._record
        position = 0
        for match in _SEGMENT_PATTERN.finditer(path):
            # Anything between two segments other than '.' makes the path invalid
            if path[position : match.start()].strip(".") != "":
                return _MISSING
            position = match.end()

            name, index = match.group(1), match.group(2)
            if index is not None:
                if not isinstance(current, list) or int(index) >= len(current):
                    return _MISSING
                current = current[int(index)]
            else:
                if not isinstance(current, Mapping) or name not in current:
                    return _MISSING
                current = current[name]

        if path[position:].strip(".") != "":
            return _MISSING
        return current
