"""
Broadband Session

Wires the engine components together for one viewing session and makes the
recomputation events explicit:

    load(datasets)      -> build index, enrich tracts, recompute statistics
    set_threshold(v)    -> clamp, recompute statistics, refresh the highlight predicate

Without a precomputed population summary, one is derived from speed-test tiles
that carry population and is refreshed with the threshold.

Layer toggles and focus selection never touch the statistics.

Usage:
    session = BroadbandSession.from_config(config)
    session.load(load_datasets(config))
    session.set_threshold(50)
    report = session.report()
"""

from datetime import date
from typing import List, Optional

from loguru import logger

from processing.enrichment import enrich, enrichment_summary
from processing.identifier_index import build_index
from processing.models import (
    HIGH_SPEED_CUTOFF_MBPS,
    BroadbandDatasets,
    EnrichedFeature,
    GeometryFeature,
    SpeedTestTile,
)

from .focus import Bounds, find_region, region_bounds
from .layer_state import (
    DEFAULT_THRESHOLD,
    MAX_THRESHOLD,
    MIN_THRESHOLD,
    LayerStateManager,
    VisibilityState,
    discrepancy_predicate,
)
from .report import DEFAULT_REGION_NAME, ReportSummary, assemble_report
from .statistics import AggregateStatistics, StatisticsEngine, StatisticsView, summarize_speed_tests


class BroadbandSession:
    """Owns the datasets, derived state and view state of one session."""

    def __init__(
        self,
        region_name: str = DEFAULT_REGION_NAME,
        default_threshold: float = DEFAULT_THRESHOLD,
        min_threshold: float = MIN_THRESHOLD,
        max_threshold: float = MAX_THRESHOLD,
        high_speed_cutoff: float = HIGH_SPEED_CUTOFF_MBPS,
    ):
        self.region_name = region_name
        self.high_speed_cutoff = high_speed_cutoff
        self.layers = LayerStateManager(default_threshold, min_threshold, max_threshold)
        self.engine = StatisticsEngine(
            threshold=self.layers.speed_threshold, high_speed_cutoff=high_speed_cutoff
        )
        self.layers.subscribe(self.engine.set_threshold)
        self.layers.subscribe(self._refresh_derived_summary)

        self.datasets = BroadbandDatasets()
        self.enriched: List[EnrichedFeature] = []
        self.focus_region_name: Optional[str] = None
        self.summary_from_tiles = False

    @classmethod
    def from_config(cls, config) -> "BroadbandSession":
        """Build a session from the analysis settings in an ops.Config."""
        return cls(
            region_name=config.get("region_name", DEFAULT_REGION_NAME),
            default_threshold=config.get_analysis_setting("default_threshold"),
            min_threshold=config.get_analysis_setting("min_threshold"),
            max_threshold=config.get_analysis_setting("max_threshold"),
            high_speed_cutoff=config.get_analysis_setting("high_speed_cutoff"),
        )

    # ---- events ---------------------------------------------------------

    def load(self, datasets: BroadbandDatasets) -> AggregateStatistics:
        """Replace all datasets and rebuild every piece of derived state."""
        logger.info(f"📥 Loading {datasets.describe()}")
        self.datasets = datasets

        index = build_index(datasets.metrics)
        self.enriched = enrich(datasets.tracts, index)
        enrichment_summary(self.enriched)

        summary = datasets.population_summary
        self.summary_from_tiles = summary is None
        if self.summary_from_tiles:
            summary = summarize_speed_tests(datasets.speed_tests, self.threshold, self.high_speed_cutoff)
            if summary is not None:
                logger.info("👥 Population-weighted summary derived from speed test tiles")
        self.engine.set_population_summary(summary)
        return self.engine.load(datasets.metrics)

    def set_threshold(self, value: float) -> AggregateStatistics:
        self.layers.set_threshold(value)
        return self.engine.statistics

    def toggle(self, layer: str) -> bool:
        return self.layers.toggle(layer)

    def show_underserved_highlight(self) -> None:
        self.layers.show_underserved_highlight()

    def hide_underserved_highlight(self) -> None:
        self.layers.hide_underserved_highlight()

    def reset_view(self) -> None:
        """Back to session-start layer defaults and threshold."""
        self.layers.reset()
        self.engine.set_threshold(self.layers.speed_threshold)
        self._refresh_derived_summary(self.layers.speed_threshold)
        self.focus_region_name = None

    def select_focus_region(self, name: Optional[str]) -> Optional[Bounds]:
        """
        Select (or clear, with None/"") the focus county.

        Returns:
            The county's bounds to fit the view to, or None when cleared or unknown
        """
        self.focus_region_name = name or None
        if not self.focus_region_name:
            return None

        county = find_region(self.datasets.counties, self.focus_region_name)
        if county is None:
            logger.warning(f"⚠️ County not found: {self.focus_region_name}")
            return None
        return region_bounds(county)

    def _refresh_derived_summary(self, threshold: float) -> None:
        if self.summary_from_tiles:
            self.engine.set_population_summary(
                summarize_speed_tests(self.datasets.speed_tests, threshold, self.high_speed_cutoff)
            )

    # ---- read side ------------------------------------------------------

    @property
    def statistics(self) -> AggregateStatistics:
        return self.engine.statistics

    @property
    def threshold(self) -> float:
        return self.layers.speed_threshold

    def visibility(self) -> VisibilityState:
        return self.layers.snapshot()

    def display_statistics(self) -> StatisticsView:
        return self.engine.display_statistics()

    def underserved_features(self) -> List[EnrichedFeature]:
        predicate = self.layers.underserved_predicate()
        return [feature for feature in self.enriched if predicate(feature)]

    def discrepancy_tiles(self) -> List[SpeedTestTile]:
        return [
            tile
            for tile in self.datasets.speed_tests
            if discrepancy_predicate(tile, self.high_speed_cutoff)
        ]

    def focus_region(self) -> Optional[GeometryFeature]:
        if not self.focus_region_name:
            return None
        return find_region(self.datasets.counties, self.focus_region_name)

    def report(self, generated_on: Optional[date] = None) -> ReportSummary:
        """Snapshot the current statistics, threshold and focus region for export."""
        return assemble_report(
            self.engine.statistics,
            self.layers.speed_threshold,
            focus_region_name=self.focus_region_name,
            region_name=self.region_name,
            generated_on=generated_on,
            population_summary=self.engine.population_summary,
            speed_test_summary=self.datasets.speed_test_summary,
        )
