from dataclasses import replace
from datetime import date

import pytest
from conftest import TRACT_A, TRACT_B, square

from analysis.layer_state import BROADBAND_CHOROPLETH, SPEED_TEST_OVERLAY, TRACTS
from analysis.session import BroadbandSession
from ops.config_loader import Config
from processing.models import SpeedTestTile


@pytest.fixture
def session(datasets):
    session = BroadbandSession()
    session.load(datasets)
    return session


def test_load_enriches_tracts_and_computes_statistics(session):
    assert len(session.enriched) == 3
    assert sum(item.has_data for item in session.enriched) == 2
    assert session.statistics.below_threshold == 1
    assert session.statistics.underserved_percent == 33


def test_threshold_change_recomputes_statistics_and_highlight(session):
    assert [f.id for f in session.underserved_features()] == [TRACT_A]

    stats = session.set_threshold(50)
    assert stats.below_threshold == 2
    assert stats.underserved_percent == 100
    assert session.statistics is stats
    assert [f.id for f in session.underserved_features()] == [TRACT_A, TRACT_B]


def test_threshold_is_clamped_before_recompute(session):
    stats = session.set_threshold(0)
    assert session.threshold == 1
    assert stats.threshold == 1
    assert stats.below_threshold == 0


def test_toggles_do_not_recompute(session):
    count = session.engine.recompute_count
    session.toggle(SPEED_TEST_OVERLAY)
    session.show_underserved_highlight()
    session.hide_underserved_highlight()
    session.select_focus_region("Kanawha")
    assert session.engine.recompute_count == count


def test_highlight_transition_is_asymmetric(session):
    session.toggle(TRACTS)
    session.toggle(BROADBAND_CHOROPLETH)
    session.show_underserved_highlight()
    session.hide_underserved_highlight()

    state = session.visibility()
    assert not state.is_visible(TRACTS)
    assert not state.is_visible(BROADBAND_CHOROPLETH)


def test_select_focus_region(session):
    assert session.select_focus_region("Kanawha") == ((-81.9, 38.1), (-81.2, 38.6))
    assert session.focus_region().id == "54039"

    assert session.select_focus_region("Atlantis") is None
    assert session.focus_region_name == "Atlantis"

    assert session.select_focus_region(None) is None
    assert session.focus_region_name is None


def test_report_reflects_current_state(session):
    session.set_threshold(50)
    session.select_focus_region("Kanawha")
    report = session.report(generated_on=date(2025, 6, 1))

    assert report.threshold == 50
    assert report.focus_area == "Kanawha County"
    assert report.statistics.below_threshold == 2
    assert report.speed_test_summary.total_tests == 1234


def test_discrepancy_tiles(session):
    assert [tile.tile_id for tile in session.discrepancy_tiles()] == ["q1"]


def test_reset_view(session):
    session.set_threshold(80)
    session.toggle(TRACTS)
    session.select_focus_region("Kanawha")

    session.reset_view()
    assert session.threshold == 25
    assert session.statistics.threshold == 25
    assert not session.visibility().is_visible(TRACTS)
    assert session.focus_region_name is None


def test_empty_datasets_give_zero_statistics():
    from processing.models import BroadbandDatasets

    session = BroadbandSession()
    stats = session.load(BroadbandDatasets())
    assert stats.is_empty
    assert session.underserved_features() == []


def test_from_config_uses_analysis_settings(project_dir):
    config = Config(project_dir / "config.yaml", project_root_override=project_dir)
    config.apply_overrides({"analysis.default_threshold": 40, "analysis.max_threshold": 60})

    session = BroadbandSession.from_config(config)
    assert session.threshold == 40
    session.set_threshold(90)
    assert session.threshold == 60


def test_population_summary_is_derived_from_tiles(session):
    view = session.display_statistics()
    assert view.source == "population_weighted"
    assert view.underserved_percent == 25
    assert view.total_population == 400
    assert view.rural_percent == 25

    report = session.report(generated_on=date(2025, 6, 1))
    assert report.population_summary.underserved_population == 100


def test_derived_summary_follows_threshold(datasets, speed_tiles):
    slow = SpeedTestTile(tile_id="q3", boundary=square(2, 0, 0.1), download_mbps=60.0, upload_mbps=10.0,
                         population=300.0, is_rural=False)
    session = BroadbandSession()
    session.load(replace(datasets, speed_tests=(speed_tiles[0], slow)))
    assert session.display_statistics().underserved_percent == 25

    session.set_threshold(80)
    assert session.display_statistics().underserved_percent == 100

    session.reset_view()
    assert session.display_statistics().underserved_percent == 25


def test_precomputed_population_summary_takes_precedence(datasets, population_summary):
    session = BroadbandSession()
    session.load(replace(datasets, population_summary=population_summary))
    session.set_threshold(80)

    view = session.display_statistics()
    assert view.underserved_percent == 42.5
    assert view.total_population == 1790000


def test_tiles_without_population_fall_back_to_tract_statistics(datasets, speed_tiles):
    tiles = tuple(replace(tile, population=None) for tile in speed_tiles)
    session = BroadbandSession()
    session.load(replace(datasets, speed_tests=tiles))

    view = session.display_statistics()
    assert view.source == "tract"
    assert view.underserved_percent == 33
