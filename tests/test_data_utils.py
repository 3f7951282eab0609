import json

import pytest
from conftest import TRACT_A, TRACT_B, feature_collection, geojson_feature, square
from shapely.geometry import Point

from ops.config_loader import Config
from processing.data_utils import (
    geometry_features_from_geojson,
    load_datasets,
    load_json,
    metric_records_from_payload,
    population_summary_from_payload,
    speed_test_summary_from_payload,
    speed_test_tiles_from_geojson,
)
from processing.models import MalformedPayloadError, Tier


def test_tract_features_from_geojson(tracts_geojson):
    features = geometry_features_from_geojson(tracts_geojson, "tract")

    assert [f.id for f in features] == [TRACT_A, TRACT_B]
    assert features[0].parent_region_id == "54039"
    assert features[0].area_sq_meters == 1200.0
    assert features[0].county_name == "Kanawha County"
    assert features[0].boundary.equals(square(0, 0))


def test_county_features_from_geojson(counties_geojson):
    features = geometry_features_from_geojson(counties_geojson, "county")

    assert [f.name for f in features] == ["Kanawha", "Barbour"]
    assert all(f.parent_region_id == "54" for f in features)


def test_tract_without_county_codes_uses_geoid_prefix():
    payload = feature_collection([geojson_feature({"GEOID": "54001965400", "NAME": "9654"}, square(0, 0))])
    assert geometry_features_from_geojson(payload)[0].parent_region_id == "54001"


def test_empty_feature_collection():
    assert geometry_features_from_geojson(feature_collection([])) == []


def test_missing_identifier_is_malformed():
    payload = feature_collection([geojson_feature({"NAME": "9654"}, square(0, 0))])
    with pytest.raises(MalformedPayloadError):
        geometry_features_from_geojson(payload)


def test_non_polygon_geometry_is_malformed():
    payload = feature_collection([geojson_feature({"GEOID": "54001965400", "NAME": "9654"}, Point(0, 0))])
    with pytest.raises(MalformedPayloadError):
        geometry_features_from_geojson(payload)


def test_wrong_top_level_shape_is_malformed():
    with pytest.raises(MalformedPayloadError):
        geometry_features_from_geojson({"type": "Feature"})


def test_metric_records_from_payload(broadband_rows):
    records = metric_records_from_payload(broadband_rows)

    assert [r.region_id for r in records] == [TRACT_A, TRACT_B]
    first = records[0]
    assert first.max_down_mbps == 10.0
    assert first.tier is Tier.BASIC
    assert first.county_fips == "039"
    assert first.name == "Census Tract 1"
    assert first.color_hint == "#ffffb2"


def test_empty_metric_payload():
    assert metric_records_from_payload([]) == []


@pytest.mark.parametrize(
    "field, value",
    [
        ("max_down_mbps", "fast"),
        ("max_down_mbps", -1),
        ("max_up_mbps", -0.5),
        ("population_estimate", None),
        ("population_estimate", -400),
        ("population_estimate", 100.9),
        ("provider_count", 2.5),
        ("percent_covered", -10),
        ("tier", "Ultra"),
    ],
)
def test_bad_metric_values_are_malformed(broadband_rows, field, value):
    broadband_rows[0][field] = value
    with pytest.raises(MalformedPayloadError):
        metric_records_from_payload(broadband_rows)


def test_whole_number_floats_are_accepted(broadband_rows):
    broadband_rows[0]["population_estimate"] = 100.0
    broadband_rows[1]["population_estimate"] = "1,200"
    records = metric_records_from_payload(broadband_rows)
    assert [r.population_estimate for r in records] == [100, 1200]


def test_missing_metric_field_is_malformed(broadband_rows):
    del broadband_rows[1]["max_up_mbps"]
    with pytest.raises(MalformedPayloadError):
        metric_records_from_payload(broadband_rows)


def test_metric_payload_must_be_array():
    with pytest.raises(MalformedPayloadError):
        metric_records_from_payload({"geoid": TRACT_A})


@pytest.mark.parametrize("label", ["No Service", "no_service", "NoService", "no-service"])
def test_tier_parse_is_tolerant(label):
    assert Tier.parse(label) is Tier.NO_SERVICE


def test_speed_test_tiles_from_geojson():
    payload = feature_collection(
        [
            geojson_feature(
                {"quadkey": "0320", "download_mbps": 45.2, "upload_mbps": 8.1, "ping_ms": 30,
                 "provider": "Ookla", "NAMELSADCO": "Kanawha County", "color": "#abc"},
                square(0, 0, 0.1),
            )
        ]
    )
    tile = speed_test_tiles_from_geojson(payload)[0]

    assert tile.tile_id == "0320"
    assert tile.download_mbps == 45.2
    assert tile.ping_ms == 30.0
    assert tile.county_name == "Kanawha County"
    assert tile.population is None


def test_speed_test_tiles_require_speeds():
    payload = feature_collection([geojson_feature({"upload_mbps": 8.1}, square(0, 0, 0.1))])
    with pytest.raises(MalformedPayloadError):
        speed_test_tiles_from_geojson(payload)


def test_speed_test_tile_rural_flags_are_parsed():
    payload = feature_collection(
        [
            geojson_feature({"quadkey": "a", "download_mbps": 20, "upload_mbps": 2, "is_rural": "false"},
                            square(0, 0, 0.1)),
            geojson_feature({"quadkey": "b", "download_mbps": 20, "upload_mbps": 2, "is_rural": "TRUE"},
                            square(1, 0, 0.1)),
            geojson_feature({"quadkey": "c", "download_mbps": 20, "upload_mbps": 2}, square(2, 0, 0.1)),
        ]
    )
    tiles = speed_test_tiles_from_geojson(payload)
    assert [tile.is_rural for tile in tiles] == [False, True, None]


def test_speed_test_tile_bad_rural_flag_is_malformed():
    payload = feature_collection(
        [geojson_feature({"download_mbps": 20, "upload_mbps": 2, "is_rural": "maybe"}, square(0, 0, 0.1))]
    )
    with pytest.raises(MalformedPayloadError):
        speed_test_tiles_from_geojson(payload)


def test_negative_tile_speed_is_malformed():
    payload = feature_collection(
        [geojson_feature({"download_mbps": -5, "upload_mbps": 2}, square(0, 0, 0.1))]
    )
    with pytest.raises(MalformedPayloadError):
        speed_test_tiles_from_geojson(payload)


def test_population_summary_from_payload():
    summary = population_summary_from_payload(
        {
            "underserved_percent": 41.7,
            "underserved_population": 740000,
            "pop_weighted_median_speed": 92.4,
            "high_speed_percent": 36.0,
            "total_population": 1775000,
            "geographic_breakdown": {"rural_percent": 51.0},
        }
    )
    assert summary.rural_percent == 51.0
    assert summary.total_population == 1775000


def test_population_summary_missing_keys():
    with pytest.raises(MalformedPayloadError):
        population_summary_from_payload({"underserved_percent": 40})


def test_speed_test_summary_from_payload():
    summary = speed_test_summary_from_payload({"total_tests": 5120, "median_download_mbps": 71.3})
    assert summary.total_tests == 5120
    assert summary.median_download_mbps == 71.3


def test_load_json_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_json(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(MalformedPayloadError):
        load_json(broken)


def test_load_datasets_skips_missing_optional_inputs(project_dir):
    config = Config(project_dir / "config.yaml", project_root_override=project_dir)
    datasets = load_datasets(config)

    assert len(datasets.counties) == 2
    assert len(datasets.tracts) == 2
    assert len(datasets.metrics) == 2
    assert datasets.speed_tests == ()
    assert datasets.population_summary is None


def test_load_datasets_reads_population_summary(project_dir):
    (project_dir / "data" / "population_stats.json").write_text(
        json.dumps(
            {
                "underserved_percent": 40,
                "underserved_population": 120,
                "pop_weighted_median_speed": 28.0,
                "high_speed_percent": 0,
                "total_population": 300,
            }
        )
    )
    config = Config(project_dir / "config.yaml", project_root_override=project_dir)
    assert load_datasets(config).population_summary.underserved_population == 120


def test_load_datasets_requires_metrics(project_dir):
    (project_dir / "data" / "broadband.json").unlink()
    config = Config(project_dir / "config.yaml", project_root_override=project_dir)
    with pytest.raises(FileNotFoundError):
        load_datasets(config)


def test_load_json_reads_utf8(tmp_path):
    path = tmp_path / "names.json"
    path.write_bytes(json.dumps({"name": "Peñasco • Tract"}, ensure_ascii=False).encode("utf-8"))
    assert load_json(path) == {"name": "Peñasco • Tract"}
