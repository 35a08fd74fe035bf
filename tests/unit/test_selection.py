from cp_geocoder.geocode.models import Candidate, Region, SourceRecord, parse_candidates
from cp_geocoder.geocode.selection import (
    is_exact_postcode_match,
    pick_best_generic,
    pick_exact_postcode,
    score_candidate,
    select_candidate,
)
from cp_geocoder.geocode.strategies import AcceptanceMode


def cand(type_="", cls="", importance=0.0, **address) -> Candidate:
    return Candidate(lat=20.0, lon=-103.0, type=type_, osm_class=cls, importance=importance, address=address)


def test_exact_postcode_accepts_postcode_type_or_matching_address():
    assert is_exact_postcode_match("44100", cand("postcode"))
    assert is_exact_postcode_match("44100", cand("residential", postcode="44100"))
    assert is_exact_postcode_match("44100", cand("residential", postal_code="44100"))
    assert not is_exact_postcode_match("44100", cand("residential", postcode="44200"))
    assert not is_exact_postcode_match("", cand("residential", postcode=""))


def test_exact_postcode_takes_first_in_response_order():
    first = cand("suburb", importance=0.1, postcode="44100")
    second = cand("postcode", importance=0.9)
    assert pick_exact_postcode("44100", [cand("road"), first, second]) is first
    assert pick_exact_postcode("44100", [cand("road", postcode="1")]) is None


def test_generic_drops_blacklisted_classes_and_other_states():
    road = cand("primary", "highway", importance=0.9)
    elsewhere = cand("neighbourhood", "place", importance=0.9, state="Michoacán")
    assert pick_best_generic("Guadalajara", [road, elsewhere], "Jalisco") is None


def test_generic_state_match_is_case_insensitive():
    local = cand("neighbourhood", "place", state="JALISCO")
    assert pick_best_generic("Guadalajara", [local], "Jalisco") is local


def test_generic_scoring_components():
    c = cand("neighbourhood", "place", importance=0.5, city="Guadalajara", state="Jalisco")
    assert score_candidate(c, "guadalajara") == 0.5 * 10 + 12 + 6 + 6
    assert score_candidate(cand("house", "building", importance=0.2), "") == 2.0


def test_generic_municipality_falls_back_to_county():
    c = cand("village", "place", county="Municipio de Zapopan")
    assert score_candidate(c, "Zapopan") == 12 + 6 + 6


def test_generic_highest_score_wins_ties_keep_first():
    a = cand("village", "place", importance=0.1)
    b = cand("village", "place", importance=0.1)
    c = cand("house", "building", importance=0.9)
    assert pick_best_generic("", [c, a, b], "Jalisco") is a


def test_select_candidate_dispatches_on_mode():
    region = Region(state="Jalisco", country="Mexico")
    row = SourceRecord(postalCode="44100", municipality="Guadalajara")
    candidates = [cand("neighbourhood", "place", importance=0.4)]
    assert select_candidate(AcceptanceMode.EXACT_POSTCODE, row, candidates, region) is None
    assert select_candidate(AcceptanceMode.GENERIC, row, candidates, region) is candidates[0]


def test_parse_candidates_skips_entries_without_coordinates():
    payload = [
        {"lat": "20.5", "lon": "-103.1", "type": "postcode", "class": "place", "importance": "0.3", "address": {}},
        {"lat": "", "lon": "-103.1", "type": "postcode"},
        "garbage",
    ]
    parsed = parse_candidates(payload)
    assert len(parsed) == 1
    assert parsed[0].lat == 20.5
    assert parsed[0].importance == 0.3
    assert parse_candidates({"error": "x"}) == []
