"""
Enrichment Engine

Attaches broadband metric records to tract geometries by GEOID and builds the
renderer payload (a WGS84 GeoDataFrame with ``broadband_*`` properties).

Usage:
    from processing.identifier_index import build_index
    from processing.enrichment import enrich, to_geodataframe

    enriched = enrich(tracts, build_index(records))
    gdf = to_geodataframe(enriched)
"""

from typing import Dict, List, Mapping, Sequence, Union

import geopandas as gpd
from loguru import logger

from .models import MISSING_DATA_COLOR, EnrichedFeature, GeometryFeature, MetricRecord

FeatureInput = Union[GeometryFeature, EnrichedFeature]

# Property columns written onto each tract for the renderer
BROADBAND_COLUMNS = [
    "broadband_tier",
    "broadband_down",
    "broadband_up",
    "broadband_providers",
    "broadband_coverage",
    "broadband_color",
]


def enrich(
    features: Sequence[FeatureInput], index: Mapping[str, MetricRecord]
) -> List[EnrichedFeature]:
    """
    Merge metric records into geometry features by identifier.

    Features that were already enriched are unwrapped to their geometry first, so
    repeated enrichment with the same index yields the same result.

    Args:
        features: Geometry (or previously enriched) features, in render order
        index: region_id -> MetricRecord lookup from build_index()

    Returns:
        Enriched features in input order; unmatched features carry metric=None
    """
    enriched: List[EnrichedFeature] = []
    for item in features:
        feature = item.feature if isinstance(item, EnrichedFeature) else item
        enriched.append(EnrichedFeature(feature=feature, metric=index.get(feature.id)))
    return enriched


def enrichment_summary(enriched: Sequence[EnrichedFeature]) -> Dict[str, int]:
    """Count matched and unmatched features and log the result."""
    matched = sum(1 for item in enriched if item.has_data)
    summary = {"total": len(enriched), "matched": matched, "unmatched": len(enriched) - matched}

    logger.info(
        f"🔗 Enriched {summary['total']:,} tracts: "
        f"{summary['matched']:,} matched, {summary['unmatched']:,} without broadband data"
    )
    return summary


def to_geodataframe(
    enriched: Sequence[EnrichedFeature], missing_color: str = MISSING_DATA_COLOR
) -> gpd.GeoDataFrame:
    """
    Build the renderer payload for an enriched feature set.

    Args:
        enriched: Output of enrich()
        missing_color: Fill color for tracts without broadband data

    Returns:
        GeoDataFrame in EPSG:4326 with tract identity and broadband_* columns
    """
    rows = []
    for item in enriched:
        feature = item.feature
        tier = item.broadband_tier
        rows.append(
            {
                "GEOID": feature.id,
                "NAME": feature.name,
                "NAMELSADCO": feature.county_name,
                "ALAND": feature.area_sq_meters,
                "broadband_tier": tier.value if tier else None,
                "broadband_down": item.broadband_down,
                "broadband_up": item.broadband_up,
                "broadband_providers": item.broadband_providers,
                "broadband_coverage": item.broadband_coverage,
                "broadband_color": item.broadband_color or missing_color,
                "geometry": feature.boundary,
            }
        )

    columns = ["GEOID", "NAME", "NAMELSADCO", "ALAND"] + BROADBAND_COLUMNS + ["geometry"]
    return gpd.GeoDataFrame(rows, columns=columns, geometry="geometry", crs="EPSG:4326")
