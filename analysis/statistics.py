"""
Statistics Engine

Threshold-based and population-weighted aggregates over the broadband metric
set. Statistics are always derived from the current records and threshold and
are replaced wholesale on every recomputation; nothing accumulates across runs.

Statistics run over the full metric set, including records whose GEOID has no
matching tract geometry.

Usage:
    from analysis.statistics import StatisticsEngine, compute_statistics

    stats = compute_statistics(records, threshold=25)

    engine = StatisticsEngine(threshold=25)
    engine.load(records)
    engine.set_threshold(50)
    view = engine.display_statistics()
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger

from processing.models import (
    HIGH_SPEED_CUTOFF_MBPS,
    MetricRecord,
    PopulationWeightedSummary,
    SpeedTestTile,
    Tier,
)

from .calculation_helpers import calculate_percentage, count_where, round_half_up, weighted_median

DEFAULT_THRESHOLD = 25


@dataclass(frozen=True)
class AggregateStatistics:
    """Summary of the metric set under one speed threshold."""

    threshold: float
    total_regions: int
    no_service: int
    below_threshold: int
    high_speed: int
    avg_speed: int
    total_population: int
    underserved_population: int
    underserved_percent: int
    high_speed_percent: int

    @classmethod
    def empty(cls, threshold: float = DEFAULT_THRESHOLD) -> "AggregateStatistics":
        return cls(
            threshold=threshold,
            total_regions=0,
            no_service=0,
            below_threshold=0,
            high_speed=0,
            avg_speed=0,
            total_population=0,
            underserved_population=0,
            underserved_percent=0,
            high_speed_percent=0,
        )

    @property
    def is_empty(self) -> bool:
        return self.total_regions == 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StatisticsView:
    """
    Statistics chosen for display.

    ``source`` is "population_weighted" when a precomputed population-weighted
    summary is present (its fields are surfaced verbatim) and "tract" otherwise.
    """

    source: str
    underserved_percent: float
    underserved_population: int
    total_population: int
    high_speed_percent: float
    headline_speed: float
    headline_speed_label: str
    no_service: Optional[int] = None
    rural_percent: Optional[float] = None


def records_to_frame(records: Sequence[MetricRecord]) -> pd.DataFrame:
    """Tabulate the fields the aggregation needs."""
    return pd.DataFrame(
        {
            "region_id": [r.region_id for r in records],
            "tier": [r.tier for r in records],
            "max_down_mbps": [float(r.max_down_mbps) for r in records],
            "population_estimate": [int(r.population_estimate) for r in records],
        }
    )


def compute_statistics(
    records: Sequence[MetricRecord],
    threshold: float,
    high_speed_cutoff: float = HIGH_SPEED_CUTOFF_MBPS,
) -> AggregateStatistics:
    """
    Compute coverage and underservice statistics.

    Args:
        records: Broadband metric records (matched to geometry or not)
        threshold: Speed threshold in Mbps; regions strictly below it are underserved
        high_speed_cutoff: Fixed high-speed cutoff, independent of the threshold

    Returns:
        AggregateStatistics; all zeros when records is empty
    """
    if not records:
        logger.debug("  📭 No broadband records, returning empty statistics")
        return AggregateStatistics.empty(threshold)

    df = records_to_frame(records)
    total = len(df)
    below_mask = df["max_down_mbps"] < threshold
    high_speed = count_where(df["max_down_mbps"] >= high_speed_cutoff)

    total_population = int(df["population_estimate"].sum())
    underserved_population = int(df.loc[below_mask, "population_estimate"].sum())

    stats = AggregateStatistics(
        threshold=threshold,
        total_regions=total,
        no_service=count_where(df["tier"] == Tier.NO_SERVICE),
        below_threshold=count_where(below_mask),
        high_speed=high_speed,
        avg_speed=round_half_up(df["max_down_mbps"].mean()),
        total_population=total_population,
        underserved_population=underserved_population,
        underserved_percent=calculate_percentage(underserved_population, total_population),
        high_speed_percent=calculate_percentage(high_speed, total),
    )

    logger.debug(
        f"  📊 {stats.total_regions} regions, {stats.below_threshold} below {threshold} Mbps, "
        f"{stats.underserved_percent}% of population underserved"
    )
    return stats


def summarize_speed_tests(
    tiles: Sequence[SpeedTestTile],
    threshold: float = DEFAULT_THRESHOLD,
    high_speed_cutoff: float = HIGH_SPEED_CUTOFF_MBPS,
) -> Optional[PopulationWeightedSummary]:
    """
    Derive a population-weighted summary from speed-test tiles.

    Args:
        tiles: Speed-test tiles; only tiles carrying a population are used
        threshold: Speed threshold in Mbps
        high_speed_cutoff: High-speed cutoff in Mbps

    Returns:
        PopulationWeightedSummary, or None when no tile carries population
    """
    weighted = [t for t in tiles if t.population is not None]
    if not weighted:
        logger.debug("  📭 Speed test tiles carry no population, skipping weighted summary")
        return None

    df = pd.DataFrame(
        {
            "download_mbps": [t.download_mbps for t in weighted],
            "population": [float(t.population) for t in weighted],
            "is_rural": [t.is_rural for t in weighted],
        }
    )
    total_population = float(df["population"].sum())
    underserved = float(df.loc[df["download_mbps"] < threshold, "population"].sum())
    high_speed = float(df.loc[df["download_mbps"] >= high_speed_cutoff, "population"].sum())

    breakdown: Dict[str, Any] = {}
    if df["is_rural"].notna().any():
        rural = float(df.loc[df["is_rural"] == True, "population"].sum())  # noqa: E712
        breakdown["rural_percent"] = calculate_percentage(rural, total_population)
        breakdown["urban_percent"] = calculate_percentage(total_population - rural, total_population)

    return PopulationWeightedSummary(
        underserved_percent=calculate_percentage(underserved, total_population),
        underserved_population=round_half_up(underserved),
        pop_weighted_median_speed=weighted_median(df["download_mbps"], df["population"]),
        high_speed_percent=calculate_percentage(high_speed, total_population),
        total_population=round_half_up(total_population),
        geographic_breakdown=breakdown,
    )


class StatisticsEngine:
    """
    Holds the current metric set and threshold and the statistics derived from them.

    Loading records and changing the threshold are the only recomputation events.
    The population-weighted summary is display-only and never triggers a
    recomputation.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        population_summary: Optional[PopulationWeightedSummary] = None,
        high_speed_cutoff: float = HIGH_SPEED_CUTOFF_MBPS,
    ):
        self._records: Tuple[MetricRecord, ...] = ()
        self._threshold = threshold
        self.high_speed_cutoff = high_speed_cutoff
        self.population_summary = population_summary
        self.statistics = AggregateStatistics.empty(threshold)
        self.recompute_count = 0

    @property
    def records(self) -> Tuple[MetricRecord, ...]:
        return self._records

    @property
    def threshold(self) -> float:
        return self._threshold

    def load(self, records: Sequence[MetricRecord]) -> AggregateStatistics:
        """Replace the metric set and recompute."""
        self._records = tuple(records)
        logger.debug(f"📥 Statistics engine loaded {len(self._records):,} records")
        return self._recompute()

    def set_threshold(self, threshold: float) -> AggregateStatistics:
        """Replace the threshold and recompute."""
        self._threshold = threshold
        return self._recompute()

    def set_population_summary(self, summary: Optional[PopulationWeightedSummary]) -> None:
        self.population_summary = summary

    def display_statistics(self) -> StatisticsView:
        """
        Choose the statistics to present.

        A population-weighted summary takes precedence and is surfaced verbatim;
        otherwise the locally computed tract statistics are used.
        """
        summary = self.population_summary
        if summary is not None:
            return StatisticsView(
                source="population_weighted",
                underserved_percent=summary.underserved_percent,
                underserved_population=summary.underserved_population,
                total_population=summary.total_population,
                high_speed_percent=summary.high_speed_percent,
                headline_speed=summary.pop_weighted_median_speed,
                headline_speed_label="Population-weighted median speed (Mbps)",
                rural_percent=summary.rural_percent,
            )

        stats = self.statistics
        return StatisticsView(
            source="tract",
            underserved_percent=stats.underserved_percent,
            underserved_population=stats.underserved_population,
            total_population=stats.total_population,
            high_speed_percent=stats.high_speed_percent,
            headline_speed=stats.avg_speed,
            headline_speed_label="Average speed (Mbps)",
            no_service=stats.no_service,
        )

    def _recompute(self) -> AggregateStatistics:
        self.statistics = compute_statistics(self._records, self._threshold, self.high_speed_cutoff)
        self.recompute_count += 1
        return self.statistics
