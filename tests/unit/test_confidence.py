import pytest

from cp_geocoder.geocode.confidence import MISS_TIERS, PRECISION_BY_TIER, ConfidenceTier, classify
from cp_geocoder.geocode.strategies import STRATEGY_LADDER, Strategy


def test_precision_mapping_is_fixed_and_total():
    assert {tier.value: tier.precision for tier in ConfidenceTier} == {
        "exact_postcode": 3,
        "text_locality": 2,
        "municipality_fallback": 1,
        "no_result": 0,
    }
    assert set(PRECISION_BY_TIER) == set(ConfidenceTier)


@pytest.mark.parametrize("strategy", STRATEGY_LADDER[:5])
def test_postcode_family_with_postcode_type_is_exact(strategy):
    assert classify(strategy, "postcode") is ConfidenceTier.EXACT_POSTCODE


def test_postcode_family_with_other_type_is_locality():
    assert classify(Strategy.CP_CITY, "residential") is ConfidenceTier.TEXT_LOCALITY


@pytest.mark.parametrize("strategy", [Strategy.SETTLEMENT_MUNICIPALITY_TEXT, Strategy.SETTLEMENT_CP_TEXT])
def test_settlement_text_is_locality(strategy):
    assert classify(strategy, "postcode") is ConfidenceTier.TEXT_LOCALITY
    assert classify(strategy, "neighbourhood") is ConfidenceTier.TEXT_LOCALITY


def test_municipality_text_is_fallback_and_nothing_is_no_result():
    assert classify(Strategy.MUNICIPALITY_TEXT, "administrative") is ConfidenceTier.MUNICIPALITY_FALLBACK
    assert classify(None, None) is ConfidenceTier.NO_RESULT
    assert MISS_TIERS == {ConfidenceTier.MUNICIPALITY_FALLBACK, ConfidenceTier.NO_RESULT}
