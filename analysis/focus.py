"""
Focus region lookup: the county picker list and the bounds a renderer fits to
when a county is selected.
"""

from typing import List, NamedTuple, Optional, Sequence, Tuple

from shapely.geometry import MultiPolygon, Polygon

from processing.models import GeometryFeature

Bounds = Tuple[Tuple[float, float], Tuple[float, float]]


class CountyOption(NamedTuple):
    name: str
    fips: Optional[str]
    geoid: str


def county_options(counties: Sequence[GeometryFeature]) -> List[CountyOption]:
    """Counties as (name, county FIPS, GEOID), sorted by name."""
    options = [CountyOption(name=c.name, fips=c.id[-3:], geoid=c.id) for c in counties]
    return sorted(options, key=lambda option: option.name.lower())


def find_region(features: Sequence[GeometryFeature], name: str) -> Optional[GeometryFeature]:
    """First feature whose name matches exactly, or None."""
    for feature in features:
        if feature.name == name:
            return feature
    return None


def region_bounds(feature: GeometryFeature) -> Optional[Bounds]:
    """South-west and north-east corners of a region's polygon extent."""
    boundary = feature.boundary
    if not isinstance(boundary, (Polygon, MultiPolygon)) or boundary.is_empty:
        return None

    min_lng, min_lat, max_lng, max_lat = boundary.bounds
    return (min_lng, min_lat), (max_lng, max_lat)
