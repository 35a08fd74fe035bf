"""Data models used across the geocoder."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

# Registry (SEPOMEX) header -> normalized field name.
HEADER_MAP = {
    "d_codigo": "postalCode",
    "d_asenta": "settlement",
    "d_tipo_asenta": "settlementType",
    "d_mnpio": "municipality",
    "d_estado": "state",
    "d_ciudad": "city",
    "d_cp": "postalCodeAlt",
    "c_estado": "stateCode",
    "c_oficina": "officeCode",
    "c_cp": "postalCodeKey",
    "c_tipo_asenta": "settlementTypeCode",
    "c_mnpio": "municipalityCode",
    "id_asenta_cpcons": "settlementIdCpcons",
    "d_zona": "zone",
    "c_cve_ciudad": "cityCode",
}

SOURCE_FIELDS = tuple(HEADER_MAP.values())
RESULT_FIELDS = ("lat", "lon", "strategySource", "matchNote", "confidenceTier", "missReason", "precision")
OUTPUT_COLUMNS = SOURCE_FIELDS + RESULT_FIELDS


def _safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class SourceRecord:
    postalCode: str = ""
    settlement: str = ""
    settlementType: str = ""
    municipality: str = ""
    state: str = ""
    city: str = ""
    postalCodeAlt: str = ""
    stateCode: str = ""
    officeCode: str = ""
    postalCodeKey: str = ""
    settlementTypeCode: str = ""
    municipalityCode: str = ""
    settlementIdCpcons: str = ""
    zone: str = ""
    cityCode: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SourceRecord":
        values = {}
        for name in SOURCE_FIELDS:
            value = row.get(name)
            values[name] = "" if value is None else str(value).strip()
        return cls(**values)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class Region:
    """Target region the ladder queries and filters against."""

    state: str
    country: str
    country_code: str = ""
    bbox: tuple[float, float, float, float] | None = None
    use_bias: bool = True

    @classmethod
    def from_config(cls, region_cfg: dict) -> "Region":
        bbox = region_cfg.get("bbox")
        return cls(
            state=region_cfg["state"],
            country=region_cfg["country"],
            country_code=region_cfg.get("country_code") or "",
            bbox=tuple(float(v) for v in bbox) if bbox else None,
            use_bias=bool(region_cfg.get("use_bias", True)),
        )

    def viewbox(self) -> str | None:
        # Nominatim viewbox order is west,north,east,south.
        if not self.use_bias or self.bbox is None:
            return None
        west, south, east, north = self.bbox
        return f"{west},{north},{east},{south}"


@dataclass(frozen=True)
class Candidate:
    lat: float
    lon: float
    type: str = ""
    osm_class: str = ""
    importance: float = 0.0
    address: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, item: Any) -> "Candidate | None":
        if not isinstance(item, dict):
            return None
        lat = _safe_float(item.get("lat"))
        lon = _safe_float(item.get("lon"))
        if lat is None or lon is None:
            return None
        address = item.get("address")
        return cls(
            lat=lat,
            lon=lon,
            type=str(item.get("type") or ""),
            osm_class=str(item.get("class") or item.get("category") or ""),
            importance=_safe_float(item.get("importance")) or 0.0,
            address=dict(address) if isinstance(address, dict) else {},
        )

    @property
    def postcode(self) -> str:
        return str(self.address.get("postcode") or self.address.get("postal_code") or "")

    @property
    def address_state(self) -> str:
        return str(self.address.get("state") or "")

    @property
    def locality(self) -> str:
        for key in ("city", "town", "municipality", "county"):
            value = self.address.get(key)
            if value:
                return str(value)
        return ""


def parse_candidates(payload: Any) -> list[Candidate]:
    if not isinstance(payload, list):
        return []
    out = []
    for item in payload:
        candidate = Candidate.from_payload(item)
        if candidate is not None:
            out.append(candidate)
    return out


@dataclass(frozen=True)
class OutputRecord:
    source: SourceRecord
    lat: float | None
    lon: float | None
    strategy_source: str
    match_note: str
    confidence_tier: str
    miss_reason: str
    precision: int

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = self.source.to_dict()
        row.update(
            {
                "lat": "" if self.lat is None else self.lat,
                "lon": "" if self.lon is None else self.lon,
                "strategySource": self.strategy_source,
                "matchNote": self.match_note,
                "confidenceTier": self.confidence_tier,
                "missReason": self.miss_reason,
                "precision": self.precision,
            }
        )
        return row

