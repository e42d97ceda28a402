"""Placeholder substitution over a pluggable dictionary.

A placeholder is ``<opener><key_prefix><key>[:-<default>]<closer>``. With
opener ``{``, closer ``}`` and key prefix ``.input``, the string
``"Hello {.input.user.name:-anonymous}"`` is rendered by looking up
``.user.name`` in the dictionary, falling back to ``anonymous`` when the
dictionary has no value for it.

The key prefix lets several dictionaries coexist in one template: a
substitutor configured with ``.response`` leaves ``{.input...}``
placeholders untouched for another pass.
"""

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

from httpengine.constants import PLACEHOLDER_DEFAULT_SEPARATOR, PLACEHOLDER_ESCAPE


Dictionary = Callable[[str], str | None]


class PlaceholderConfiguration(BaseModel):
    """Delimiters recognizing placeholders for one dictionary scope."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    opener: str = Field(min_length=1)
    closer: str = Field(min_length=1)
    key_prefix: str | None = None

    @property
    def opener_with_key_prefix(self) -> str:
        """Opener followed by the key prefix, if any."""
        return self.opener + (self.key_prefix or "")


class CachedLookup:
    """Memoizes a dictionary function, including ``None`` outcomes.

    The cache lives as long as the instance and is never evicted, so a
    CachedLookup must only wrap a dictionary whose values don't change.
    """

    def __init__(self, lookup: Dictionary) -> None:
        self._lookup = lookup
        self._cache: dict[str, str | None] = {}

    def __call__(self, key: str) -> str | None:
        if key not in self._cache:
            self._cache[key] = self._lookup(key)
        return self._cache[key]

    def __len__(self) -> int:
        return len(self._cache)


class Substitutor:
    """Replaces placeholders in strings with dictionary values."""

    def __init__(
        self,
        placeholder_configuration: PlaceholderConfiguration,
        dictionary: Dictionary,
    ) -> None:
        """Initialize the substitutor.

        Args:
            placeholder_configuration: Delimiters and key prefix to recognize.
            dictionary: Key to value lookup; returns None for unknown keys.
        """
        self._config = placeholder_configuration
        if isinstance(dictionary, CachedLookup):
            self._lookup = dictionary
        else:
            self._lookup = CachedLookup(dictionary)

    @property
    def placeholder_configuration(self) -> PlaceholderConfiguration:
        """Get the placeholder configuration."""
        return self._config

    @property
    def lookup(self) -> CachedLookup:
        """Get the memoized dictionary."""
        return self._lookup

    def replace(self, source: str | None) -> str | None:
        """Replace every placeholder of the source string.

        An opener preceded by a backslash is not substituted: the backslash
        is dropped and the opener is kept literally.

        Args:
            source: Template string, may be None.

        Returns:
            The substituted string, or the source itself when it is None,
            blank, or too short to hold a placeholder.
        """
        if source is None or not source.strip():
            return source

        opener = self._config.opener_with_key_prefix
        closer = self._config.closer
        prefix_length = len(opener)
        suffix_length = len(closer)

        if len(source) < prefix_length + suffix_length:
            return source

        output: list[str] = []
        cursor = 0

        while True:
            start = source.find(opener, cursor)
            if start < 0:
                output.append(source[cursor:])
                break

            if start > 0 and source[start - 1] == PLACEHOLDER_ESCAPE:
                output.append(source[cursor : start - 1])
                output.append(opener)
                cursor = start + prefix_length
                continue

            end = self._find_closer(source, start)
            if end < 0:
                # Unterminated placeholder, keep the rest as is
                output.append(source[cursor:])
                break

            output.append(source[cursor:start])
            output.append(self._get_value(source[start + prefix_length : end]))
            cursor = end + suffix_length

        return "".join(output)

    def _find_closer(self, source: str, start: int) -> int:
        """Find the closer of the placeholder opened at ``start``.

        Unprefixed openers found before the candidate closer belong to
        nested text such as ``{.input.user{age > 40}}``; the search resumes
        after that closer.

        Args:
            source: Template string.
            start: Index of the placeholder opener.

        Returns:
            Index of the closer, or -1 if there is none.
        """
        closer = self._config.closer
        opener = self._config.opener
        intermediate = start

        while True:
            end = source.find(closer, intermediate)
            if end < 0:
                return -1

            intermediate = source.find(opener, intermediate + 1)
            if 0 <= intermediate < end:
                intermediate = end + 1
                continue

            return end

    def _get_value(self, key: str) -> str:
        split = key.split(PLACEHOLDER_DEFAULT_SEPARATOR)
        value = self._lookup(split[0])

        if value is None:
            return split[1] if len(split) > 1 else ""
        return value
