"""Placeholder substitution engine."""

from httpengine.substitutor.dictionary import MapDictionary, RecordDictionary
from httpengine.substitutor.substitutor import (
    CachedLookup,
    Dictionary,
    PlaceholderConfiguration,
    Substitutor,
)


__all__ = [
    "CachedLookup",
    "Dictionary",
    "MapDictionary",
    "PlaceholderConfiguration",
    "RecordDictionary",
    "Substitutor",
]
