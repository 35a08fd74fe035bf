from pathlib import Path

from cp_geocoder.geocode.models import Region, SourceRecord, parse_candidates
from cp_geocoder.geocode.strategies import Strategy
from cp_geocoder.geocode.transport import TransportResult
from cp_geocoder.pipeline.orchestrator import GeocodePipeline
from cp_geocoder.pipeline.writer import ResultWriter

EXPECTED_HEADER = (
    "postalCode,settlement,settlementType,municipality,state,city,postalCodeAlt,stateCode,officeCode,"
    "postalCodeKey,settlementTypeCode,municipalityCode,settlementIdCpcons,zone,cityCode,"
    "lat,lon,strategySource,matchNote,confidenceTier,missReason,precision"
)

ROW = SourceRecord(
    postalCode="44100",
    settlement="Centro",
    settlementType="Colonia",
    municipality="Guadalajara",
    state="Jalisco",
    city="Guadalajara",
    postalCodeAlt="44101",
    stateCode="14",
    officeCode="44101",
    postalCodeKey="44101",
    settlementTypeCode="09",
    municipalityCode="039",
    settlementIdCpcons="0001",
    zone="Urbano",
    cityCode="02",
)


class ScriptedTransport:
    def __init__(self, responses: dict) -> None:
        self.responses = responses

    def send(self, query):
        return TransportResult(candidates=parse_candidates(self.responses.get(query.strategy, [])))


def run_once(tmp_path: Path, responses: dict) -> tuple[list[str], list[str]]:
    results = tmp_path / "results.csv"
    misses = tmp_path / "misses.csv"
    with ResultWriter(results, misses) as writer:
        pipeline = GeocodePipeline(
            ScriptedTransport(responses),
            writer,
            Region(state="Jalisco", country="Mexico", country_code="mx"),
            key_fields=["postalCode", "settlement", "municipality", "settlementIdCpcons"],
        )
        pipeline.run([ROW])
    return (
        results.read_text(encoding="utf-8").splitlines(),
        misses.read_text(encoding="utf-8").splitlines(),
    )


def test_exact_postcode_row_snapshot(tmp_path: Path):
    responses = {
        Strategy.CP_ONLY_BIAS: [
            {"lat": "20.6736", "lon": "-103.3442", "type": "postcode", "class": "place", "importance": 0.3,
             "address": {"postcode": "44100", "state": "Jalisco"}}
        ]
    }

    results, misses = run_once(tmp_path, responses)

    assert results == [
        EXPECTED_HEADER,
        "44100,Centro,Colonia,Guadalajara,Jalisco,Guadalajara,44101,14,44101,44101,09,039,0001,Urbano,02,"
        "20.6736,-103.3442,nominatim_cp_only_bias,postcode,exact_postcode,,3",
    ]
    assert misses == [EXPECTED_HEADER]


def test_no_result_row_snapshot(tmp_path: Path):
    results, misses = run_once(tmp_path, {})

    expected_row = (
        "44100,Centro,Colonia,Guadalajara,Jalisco,Guadalajara,44101,14,44101,44101,09,039,0001,Urbano,02,"
        ",,nominatim,no_result,no_result,no_result,0"
    )
    assert results == [EXPECTED_HEADER, expected_row]
    assert misses == [EXPECTED_HEADER, expected_row]
