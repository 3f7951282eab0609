"""Shared fixtures: small tract/county sets, metric records and on-disk inputs."""

import json
from pathlib import Path

import pytest
import yaml
from shapely.geometry import Polygon, mapping

from processing.models import (
    BroadbandDatasets,
    GeometryFeature,
    MetricRecord,
    PopulationWeightedSummary,
    SpeedTestSummary,
    SpeedTestTile,
    Tier,
)


def square(x0: float, y0: float, size: float = 1.0) -> Polygon:
    return Polygon([(x0, y0), (x0 + size, y0), (x0 + size, y0 + size), (x0, y0 + size)])


def make_tract(geoid: str, name: str = "", x0: float = 0.0, y0: float = 0.0) -> GeometryFeature:
    return GeometryFeature(
        id=geoid,
        name=name or f"Census Tract {geoid[-6:]}",
        boundary=square(x0, y0),
        parent_region_id=geoid[:5],
        area_sq_meters=1000.0,
        county_name="Kanawha County",
    )


def make_metric(
    geoid: str,
    down: float,
    population: int,
    tier: Tier = Tier.BASIC,
    up: float = 5.0,
    color: str = "#ff0000",
) -> MetricRecord:
    return MetricRecord(
        region_id=geoid,
        max_down_mbps=down,
        max_up_mbps=up,
        tier=tier,
        provider_count=2,
        population_estimate=population,
        percent_covered=80.0,
        color_hint=color,
        county_fips=geoid[2:5],
        name=f"Census Tract {geoid[-6:]}",
    )


TRACT_A = "54039000100"
TRACT_B = "54039000200"
TRACT_C = "54039000300"


@pytest.fixture
def tracts():
    """Three tracts; C has no metric record."""
    return [
        make_tract(TRACT_A, x0=0.0),
        make_tract(TRACT_B, x0=1.0),
        make_tract(TRACT_C, x0=2.0),
    ]


@pytest.fixture
def metrics():
    """A: 10 Mbps / 100 people, B: 30 Mbps / 200 people."""
    return [
        make_metric(TRACT_A, 10.0, 100, Tier.BASIC),
        make_metric(TRACT_B, 30.0, 200, Tier.STANDARD),
    ]


@pytest.fixture
def counties():
    return [
        GeometryFeature(
            id="54039",
            name="Kanawha",
            boundary=Polygon([(-81.9, 38.1), (-81.2, 38.1), (-81.2, 38.6), (-81.9, 38.6)]),
            parent_region_id="54",
        ),
        GeometryFeature(
            id="54001",
            name="Barbour",
            boundary=Polygon([(-80.2, 39.0), (-79.9, 39.0), (-79.9, 39.3), (-80.2, 39.3)]),
            parent_region_id="54",
        ),
    ]


@pytest.fixture
def speed_tiles():
    return [
        SpeedTestTile(tile_id="q1", boundary=square(0, 0, 0.1), download_mbps=20.0, upload_mbps=3.0,
                      population=100.0, is_rural=True),
        SpeedTestTile(tile_id="q2", boundary=square(1, 0, 0.1), download_mbps=150.0, upload_mbps=20.0,
                      population=300.0, is_rural=False),
    ]


@pytest.fixture
def population_summary():
    return PopulationWeightedSummary(
        underserved_percent=42.5,
        underserved_population=750000,
        pop_weighted_median_speed=87.3,
        high_speed_percent=38.0,
        total_population=1790000,
        geographic_breakdown={"rural_percent": 51.2},
    )


@pytest.fixture
def datasets(counties, tracts, metrics, speed_tiles):
    return BroadbandDatasets(
        counties=tuple(counties),
        tracts=tuple(tracts),
        metrics=tuple(metrics),
        speed_tests=tuple(speed_tiles),
        speed_test_summary=SpeedTestSummary(total_tests=1234, median_download_mbps=64.5),
    )


def feature_collection(features):
    return {"type": "FeatureCollection", "features": features}


def geojson_feature(properties, geometry):
    return {"type": "Feature", "properties": properties, "geometry": mapping(geometry)}


@pytest.fixture
def tracts_geojson():
    return feature_collection(
        [
            geojson_feature(
                {"GEOID": TRACT_A, "NAME": "1", "STATEFP": "54", "COUNTYFP": "039",
                 "NAMELSADCO": "Kanawha County", "ALAND": 1200},
                square(0, 0),
            ),
            geojson_feature(
                {"GEOID": TRACT_B, "NAME": "2", "STATEFP": "54", "COUNTYFP": "039",
                 "NAMELSADCO": "Kanawha County", "ALAND": 3400},
                square(1, 0),
            ),
        ]
    )


@pytest.fixture
def counties_geojson():
    return feature_collection(
        [
            geojson_feature({"GEOID": "54039", "NAME": "Kanawha", "COUNTY": "039"}, square(0, 0, 2)),
            geojson_feature({"GEOID": "54001", "NAME": "Barbour", "COUNTY": "001"}, square(3, 0, 2)),
        ]
    )


@pytest.fixture
def broadband_rows():
    return [
        {"geoid": TRACT_A, "county_fips": "039", "tract_name": "Census Tract 1", "max_down_mbps": 10,
         "max_up_mbps": 1, "tier": "Basic", "provider_count": 1, "population_estimate": 100,
         "percent_covered": 55.5, "color": "#ffffb2"},
        {"geoid": TRACT_B, "county_fips": "039", "tract_name": "Census Tract 2", "max_down_mbps": 30,
         "max_up_mbps": 5, "tier": "Standard", "provider_count": 3, "population_estimate": 200,
         "percent_covered": 90, "color": "#fd8d3c"},
    ]


def write_json_file(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload))
    return path


@pytest.fixture
def project_dir(tmp_path, counties_geojson, tracts_geojson, broadband_rows):
    """A project root with config.yaml and the three required inputs."""
    data_dir = tmp_path / "data"
    write_json_file(data_dir / "counties.geojson", counties_geojson)
    write_json_file(data_dir / "tracts.geojson", tracts_geojson)
    write_json_file(data_dir / "broadband.json", broadband_rows)

    config = {
        "project_name": "Test Broadband",
        "region_name": "West Virginia",
        "region_abbreviation": "WV",
        "directories": {"data": "data", "output": "output"},
        "input_files": {
            "counties_geojson": "data/counties.geojson",
            "tracts_geojson": "data/tracts.geojson",
            "broadband_json": "data/broadband.json",
            "population_stats_json": "data/population_stats.json",
        },
        "analysis": {"default_threshold": 25},
    }
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(config))
    return tmp_path
