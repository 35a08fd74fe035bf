"""Ordered query strategy ladder, most to least precise."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from cp_geocoder.geocode.models import Region, SourceRecord


class AcceptanceMode(str, Enum):
    EXACT_POSTCODE = "exact_postcode"
    GENERIC = "generic"


class StrategyFamily(str, Enum):
    POSTCODE = "postcode"
    SETTLEMENT_TEXT = "settlement_text"
    MUNICIPALITY_TEXT = "municipality_text"


@dataclass(frozen=True)
class GeocodeQuery:
    strategy: "Strategy"
    params: dict[str, str] = field(default_factory=dict)


class Strategy(str, Enum):
    """Ladder members; the value is the ``strategySource`` written to output."""

    CP_ONLY_BIAS = "nominatim_cp_only_bias"
    CP_ONLY = "nominatim_cp_only"
    CP_CITY = "nominatim_cp_city"
    CP_COUNTY = "nominatim_cp_county"
    CP_FREETEXT = "nominatim_cp_freetext"
    SETTLEMENT_MUNICIPALITY_TEXT = "nominatim_freetext"
    SETTLEMENT_CP_TEXT = "nominatim_freetext_cp"
    MUNICIPALITY_TEXT = "nominatim_municipality"

    @property
    def family(self) -> StrategyFamily:
        return _FAMILIES[self]

    @property
    def acceptance(self) -> AcceptanceMode:
        if self.family is StrategyFamily.POSTCODE:
            return AcceptanceMode.EXACT_POSTCODE
        return AcceptanceMode.GENERIC

    def build_query(self, record: SourceRecord, region: Region) -> GeocodeQuery:
        return GeocodeQuery(strategy=self, params=_BUILDERS[self](record, region))


NO_RESULT_SOURCE = "nominatim"

_FAMILIES = {
    Strategy.CP_ONLY_BIAS: StrategyFamily.POSTCODE,
    Strategy.CP_ONLY: StrategyFamily.POSTCODE,
    Strategy.CP_CITY: StrategyFamily.POSTCODE,
    Strategy.CP_COUNTY: StrategyFamily.POSTCODE,
    Strategy.CP_FREETEXT: StrategyFamily.POSTCODE,
    Strategy.SETTLEMENT_MUNICIPALITY_TEXT: StrategyFamily.SETTLEMENT_TEXT,
    Strategy.SETTLEMENT_CP_TEXT: StrategyFamily.SETTLEMENT_TEXT,
    Strategy.MUNICIPALITY_TEXT: StrategyFamily.MUNICIPALITY_TEXT,
}


def _with_bias(params: dict[str, str], region: Region) -> dict[str, str]:
    # No bounded=1: a hard box hides postcode features on the edges.
    viewbox = region.viewbox()
    if viewbox:
        params["viewbox"] = viewbox
    return params


def _structured(record: SourceRecord, region: Region, *, qualifier: str | None = None) -> dict[str, str]:
    params = {"country": region.country, "state": region.state}
    if qualifier and record.municipality:
        params[qualifier] = record.municipality
    if record.postalCode:
        params["postalcode"] = record.postalCode
    return params


def _free_text(parts: list[str], region: Region) -> dict[str, str]:
    params = {"q": ", ".join([*parts, region.state, region.country])}
    if region.country_code:
        params["countrycodes"] = region.country_code
    return params


_BUILDERS: dict[Strategy, Callable[[SourceRecord, Region], dict[str, str]]] = {
    Strategy.CP_ONLY_BIAS: lambda r, g: _with_bias(_structured(r, g), g),
    Strategy.CP_ONLY: lambda r, g: _structured(r, g),
    Strategy.CP_CITY: lambda r, g: _with_bias(_structured(r, g, qualifier="city"), g),
    Strategy.CP_COUNTY: lambda r, g: _with_bias(_structured(r, g, qualifier="county"), g),
    Strategy.CP_FREETEXT: lambda r, g: _with_bias(_free_text([r.postalCode], g), g),
    Strategy.SETTLEMENT_MUNICIPALITY_TEXT: lambda r, g: _with_bias(_free_text([r.settlement, r.municipality], g), g),
    Strategy.SETTLEMENT_CP_TEXT: lambda r, g: _with_bias(_free_text([r.settlement, r.postalCode], g), g),
    Strategy.MUNICIPALITY_TEXT: lambda r, g: _with_bias(_free_text([r.municipality], g), g),
}

STRATEGY_LADDER: tuple[Strategy, ...] = tuple(Strategy)
