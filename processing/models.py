"""
Broadband Data Model

Typed, immutable records shared by the loaders, the enrichment engine, the
statistics engine and the export seams.

Usage:
    from processing.models import MetricRecord, Tier

    record = MetricRecord(region_id="54001965400", max_down_mbps=10.0, ...)
    if record.tier is Tier.NO_SERVICE:
        ...
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union

from shapely.geometry import MultiPolygon, Polygon

Boundary = Union[Polygon, MultiPolygon]

# Speed (Mbps) at or above which a region counts as high-speed, independent of the
# user-adjustable threshold.
HIGH_SPEED_CUTOFF_MBPS = 100.0

# Fill color for regions without a matching metric record.
MISSING_DATA_COLOR = "#cccccc"


class MalformedPayloadError(ValueError):
    """Raised when a geometry or metric payload is structurally invalid."""


class Tier(Enum):
    """Categorical broadband speed bucket."""

    NO_SERVICE = "No Service"
    BASIC = "Basic"
    STANDARD = "Standard"
    HIGH_SPEED = "High Speed"
    GIGABIT = "Gigabit"

    @classmethod
    def parse(cls, label: Any) -> "Tier":
        """
        Parse a tier label, tolerating case, spaces, underscores and hyphens.

        Args:
            label: Raw label from the metric payload (e.g. "No Service", "no_service")

        Returns:
            Matching Tier

        Raises:
            MalformedPayloadError: If the label is not a known tier
        """
        if isinstance(label, cls):
            return label
        key = _normalize_label(label)
        for tier in cls:
            if key in (_normalize_label(tier.value), _normalize_label(tier.name)):
                return tier
        raise MalformedPayloadError(f"Unknown broadband tier: {label!r}")


def _normalize_label(label: Any) -> str:
    text = str(label).strip().lower()
    for ch in (" ", "_", "-"):
        text = text.replace(ch, "")
    return text


@dataclass(frozen=True)
class GeometryFeature:
    """An administrative region (county or census tract)."""

    id: str
    name: str
    boundary: Boundary
    parent_region_id: Optional[str] = None
    area_sq_meters: Optional[float] = None
    county_name: Optional[str] = None


@dataclass(frozen=True)
class MetricRecord:
    """Provider-reported broadband observation for one region."""

    region_id: str
    max_down_mbps: float
    max_up_mbps: float
    tier: Tier
    provider_count: int
    population_estimate: int
    percent_covered: float
    color_hint: Optional[str] = None
    county_fips: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class EnrichedFeature:
    """
    A geometry feature with its (optional) metric record attached.

    ``metric`` is None when no record matched the feature's identifier. The
    ``broadband_*`` accessors then return None, keeping "no data" distinct from a
    measured zero speed.
    """

    feature: GeometryFeature
    metric: Optional[MetricRecord] = None

    @property
    def id(self) -> str:
        return self.feature.id

    @property
    def name(self) -> str:
        return self.feature.name

    @property
    def has_data(self) -> bool:
        return self.metric is not None

    @property
    def broadband_tier(self) -> Optional[Tier]:
        return self.metric.tier if self.metric else None

    @property
    def broadband_down(self) -> Optional[float]:
        return self.metric.max_down_mbps if self.metric else None

    @property
    def broadband_up(self) -> Optional[float]:
        return self.metric.max_up_mbps if self.metric else None

    @property
    def broadband_providers(self) -> Optional[int]:
        return self.metric.provider_count if self.metric else None

    @property
    def broadband_coverage(self) -> Optional[float]:
        return self.metric.percent_covered if self.metric else None

    @property
    def broadband_color(self) -> Optional[str]:
        return self.metric.color_hint if self.metric else None


@dataclass(frozen=True)
class SpeedTestTile:
    """Crowdsourced speed-test tile, independently sourced from the tract metrics."""

    tile_id: str
    boundary: Boundary
    download_mbps: float
    upload_mbps: float
    ping_ms: Optional[float] = None
    provider: Optional[str] = None
    county_name: Optional[str] = None
    color_hint: Optional[str] = None
    tests: Optional[int] = None
    population: Optional[float] = None
    is_rural: Optional[bool] = None


@dataclass(frozen=True)
class SpeedTestSummary:
    """Headline numbers for the speed-test dataset."""

    total_tests: int
    median_download_mbps: float


@dataclass(frozen=True)
class PopulationWeightedSummary:
    """Population-weighted statistics, usually precomputed outside this engine."""

    underserved_percent: float
    underserved_population: int
    pop_weighted_median_speed: float
    high_speed_percent: float
    total_population: int
    geographic_breakdown: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only copy of the breakdown
        object.__setattr__(
            self, "geographic_breakdown", MappingProxyType(dict(self.geographic_breakdown))
        )

    @property
    def rural_percent(self) -> Optional[float]:
        return self.geographic_breakdown.get("rural_percent")

    def to_dict(self) -> dict:
        return {
            "underserved_percent": self.underserved_percent,
            "underserved_population": self.underserved_population,
            "pop_weighted_median_speed": self.pop_weighted_median_speed,
            "high_speed_percent": self.high_speed_percent,
            "total_population": self.total_population,
            "geographic_breakdown": dict(self.geographic_breakdown),
        }


@dataclass(frozen=True)
class BroadbandDatasets:
    """Everything a session loads at once. Optional inputs may be empty or None."""

    counties: Tuple[GeometryFeature, ...] = ()
    tracts: Tuple[GeometryFeature, ...] = ()
    metrics: Tuple[MetricRecord, ...] = ()
    speed_tests: Tuple[SpeedTestTile, ...] = ()
    speed_test_summary: Optional[SpeedTestSummary] = None
    population_summary: Optional[PopulationWeightedSummary] = None

    def describe(self) -> str:
        return (
            f"{len(self.counties)} counties, {len(self.tracts)} census tracts, "
            f"{len(self.metrics)} broadband records, and {len(self.speed_tests)} speed test tiles"
        )
