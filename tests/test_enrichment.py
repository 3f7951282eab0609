from conftest import TRACT_A, TRACT_B, TRACT_C

from processing.enrichment import BROADBAND_COLUMNS, enrich, enrichment_summary, to_geodataframe
from processing.identifier_index import build_index
from processing.models import MISSING_DATA_COLOR, Tier


def test_enrich_preserves_order_and_attaches_metrics(tracts, metrics):
    enriched = enrich(tracts, build_index(metrics))

    assert [item.id for item in enriched] == [TRACT_A, TRACT_B, TRACT_C]
    assert enriched[0].broadband_down == 10.0
    assert enriched[1].broadband_tier is Tier.STANDARD


def test_unmatched_feature_has_no_data_rather_than_zero(tracts, metrics):
    unmatched = enrich(tracts, build_index(metrics))[2]

    assert not unmatched.has_data
    assert unmatched.metric is None
    assert unmatched.broadband_down is None
    assert unmatched.broadband_color is None


def test_enrich_is_idempotent(tracts, metrics):
    index = build_index(metrics)
    once = enrich(tracts, index)
    twice = enrich(once, index)
    assert twice == once


def test_records_without_geometry_are_ignored(tracts, metrics):
    from conftest import make_metric

    index = build_index(metrics + [make_metric("54999999999", 5.0, 10)])
    enriched = enrich(tracts, index)
    assert len(enriched) == len(tracts)


def test_enrichment_summary_counts(tracts, metrics):
    summary = enrichment_summary(enrich(tracts, build_index(metrics)))
    assert summary == {"total": 3, "matched": 2, "unmatched": 1}


def test_renderer_payload_uses_missing_color_only_for_unmatched(tracts, metrics):
    gdf = to_geodataframe(enrich(tracts, build_index(metrics)))

    assert gdf.crs.to_epsg() == 4326
    assert list(gdf.columns) == ["GEOID", "NAME", "NAMELSADCO", "ALAND"] + BROADBAND_COLUMNS + ["geometry"]
    colors = dict(zip(gdf["GEOID"], gdf["broadband_color"]))
    assert colors[TRACT_A] == "#ff0000"
    assert colors[TRACT_C] == MISSING_DATA_COLOR
    assert gdf.loc[gdf["GEOID"] == TRACT_B, "broadband_tier"].iloc[0] == "Standard"
