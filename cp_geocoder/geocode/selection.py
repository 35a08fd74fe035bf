"""Candidate filtering and scoring for a single ladder attempt."""

from __future__ import annotations

from typing import Iterable

from cp_geocoder.geocode.models import Candidate, Region, SourceRecord
from cp_geocoder.geocode.strategies import AcceptanceMode

POSTCODE_TYPE = "postcode"

WHITELIST_TYPES = frozenset(
    {
        "postcode",
        "neighbourhood",
        "suburb",
        "residential",
        "city_district",
        "quarter",
        "hamlet",
        "village",
        "town",
        "locality",
        "administrative",
    }
)
WHITELIST_CLASSES = frozenset({"place", "boundary", "addr"})
BLACKLIST_CLASSES = frozenset({"highway", "railway", "shop", "amenity", "office"})

IMPORTANCE_WEIGHT = 10
TYPE_BONUS = 12
CLASS_BONUS = 6
MUNICIPALITY_BONUS = 6


def is_exact_postcode_match(postal_code: str, candidate: Candidate) -> bool:
    if candidate.type == POSTCODE_TYPE:
        return True
    return bool(postal_code) and candidate.postcode == str(postal_code)


def pick_exact_postcode(postal_code: str, candidates: Iterable[Candidate]) -> Candidate | None:
    for candidate in candidates:
        if is_exact_postcode_match(postal_code, candidate):
            return candidate
    return None


def score_candidate(candidate: Candidate, municipality: str) -> float:
    score = candidate.importance * IMPORTANCE_WEIGHT
    if candidate.type in WHITELIST_TYPES:
        score += TYPE_BONUS
    if candidate.osm_class in WHITELIST_CLASSES:
        score += CLASS_BONUS
    want = municipality.lower()
    if want and want in candidate.locality.lower():
        score += MUNICIPALITY_BONUS
    return score


def _passes_filters(candidate: Candidate, region_state: str) -> bool:
    if candidate.osm_class in BLACKLIST_CLASSES:
        return False
    state = candidate.address_state
    if state and state.lower() != region_state.lower():
        return False
    return True


def pick_best_generic(municipality: str, candidates: Iterable[Candidate], region_state: str) -> Candidate | None:
    best: Candidate | None = None
    best_score = float("-inf")
    for candidate in candidates:
        if not _passes_filters(candidate, region_state):
            continue
        score = score_candidate(candidate, municipality)
        # Strict comparison: ties keep the earlier candidate.
        if score > best_score:
            best, best_score = candidate, score
    return best


def select_candidate(
    mode: AcceptanceMode,
    record: SourceRecord,
    candidates: list[Candidate],
    region: Region,
) -> Candidate | None:
    if mode is AcceptanceMode.EXACT_POSTCODE:
        return pick_exact_postcode(record.postalCode, candidates)
    return pick_best_generic(record.municipality, candidates, region.state)
