"""Unit tests for placeholder dictionaries."""

from httpengine.substitutor import (
    MapDictionary,
    PlaceholderConfiguration,
    RecordDictionary,
    Substitutor,
)


RECORD = {
    "user": {"name": "Ada", "age": 36, "tags": ["a", "b"]},
    "items": [{"id": 10}, {"id": 20}],
    "token": "abc",
    "empty": None,
}


class TestMapDictionary:
    """Tests for MapDictionary."""

    def test_known_and_unknown_keys(self) -> None:
        """Test lookups in a plain mapping."""
        dictionary = MapDictionary({"a": "1"})

        assert dictionary("a") == "1"
        assert dictionary("b") is None


class TestRecordDictionary:
    """Tests for RecordDictionary."""

    def test_nested_string(self) -> None:
        """Test that a nested string value is returned as is."""
        assert RecordDictionary(RECORD)(".user.name") == "Ada"

    def test_number_rendered_as_json(self) -> None:
        """Test that non-string scalars are rendered as JSON."""
        assert RecordDictionary(RECORD)(".user.age") == "36"

    def test_list_index(self) -> None:
        """Test that list indexes are resolved."""
        assert RecordDictionary(RECORD)(".items[1].id") == "20"

    def test_container_rendered_as_json(self) -> None:
        """Test that containers are rendered as compact JSON."""
        assert RecordDictionary(RECORD)(".user.tags") == '["a","b"]'

    def test_unresolved_paths(self) -> None:
        """Test that missing keys, bad indexes and nulls give None."""
        dictionary = RecordDictionary(RECORD)

        assert dictionary(".user.unknown") is None
        assert dictionary(".items[5].id") is None
        assert dictionary(".token.length") is None
        assert dictionary(".empty") is None

    def test_with_input_substitutor(self) -> None:
        """Test input placeholders resolved against a record."""
        substitutor = Substitutor(
            PlaceholderConfiguration(opener="{", closer="}", key_prefix=".input"),
            RecordDictionary(RECORD),
        )

        result = substitutor.replace("Bearer {.input.token} for {.input.user.name}")

        assert result == "Bearer abc for Ada"
