"""Confidence tiers and their fixed precision encoding."""

from __future__ import annotations

from enum import Enum

from cp_geocoder.geocode.selection import POSTCODE_TYPE
from cp_geocoder.geocode.strategies import Strategy, StrategyFamily


class ConfidenceTier(str, Enum):
    EXACT_POSTCODE = "exact_postcode"
    TEXT_LOCALITY = "text_locality"
    MUNICIPALITY_FALLBACK = "municipality_fallback"
    NO_RESULT = "no_result"

    @property
    def precision(self) -> int:
        return PRECISION_BY_TIER[self]


PRECISION_BY_TIER = {
    ConfidenceTier.EXACT_POSTCODE: 3,
    ConfidenceTier.TEXT_LOCALITY: 2,
    ConfidenceTier.MUNICIPALITY_FALLBACK: 1,
    ConfidenceTier.NO_RESULT: 0,
}

# Rows in these tiers are copied to the misses stream for manual review.
MISS_TIERS = frozenset({ConfidenceTier.MUNICIPALITY_FALLBACK, ConfidenceTier.NO_RESULT})


def classify(strategy: Strategy | None, match_type: str | None) -> ConfidenceTier:
    """Tier for an accepted candidate, or ``NO_RESULT`` when the ladder produced none.

    A postcode-family hit whose feature is not itself a postcode (accepted
    because ``address.postcode`` matched) lies inside the postal code without
    being its centroid, so it ranks with the locality matches.
    """
    if strategy is None:
        return ConfidenceTier.NO_RESULT
    family = strategy.family
    if family is StrategyFamily.POSTCODE:
        if match_type == POSTCODE_TYPE:
            return ConfidenceTier.EXACT_POSTCODE
        return ConfidenceTier.TEXT_LOCALITY
    if family is StrategyFamily.SETTLEMENT_TEXT:
        return ConfidenceTier.TEXT_LOCALITY
    return ConfidenceTier.MUNICIPALITY_FALLBACK
