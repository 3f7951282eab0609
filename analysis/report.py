"""
Report Data Assembler

Packages the current statistics, threshold and focus region into an immutable
ReportSummary snapshot for document exporters, together with the templated
executive-summary narrative. No I/O happens here.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional

from processing.models import PopulationWeightedSummary, SpeedTestSummary

from .statistics import AggregateStatistics

DEFAULT_REGION_NAME = "West Virginia"


def format_report_date(day: date) -> str:
    """Month/day/year without zero padding, e.g. 3/7/2025."""
    return f"{day.month}/{day.day}/{day.year}"


@dataclass(frozen=True)
class ReportSummary:
    """Snapshot of everything a report exporter needs besides the map image."""

    statistics: AggregateStatistics
    threshold: float
    generated_on: date
    region_name: str = DEFAULT_REGION_NAME
    focus_region_name: Optional[str] = None
    population_summary: Optional[PopulationWeightedSummary] = None
    speed_test_summary: Optional[SpeedTestSummary] = None
    narrative: str = field(default="", compare=False)

    @property
    def focus_area(self) -> str:
        if self.focus_region_name:
            return f"{self.focus_region_name} County"
        return self.region_name

    @property
    def title(self) -> str:
        return f"{self.region_name} Broadband Analysis"

    def statistics_lines(self) -> List[str]:
        """Key-statistics block of the report's first page."""
        stats = self.statistics
        return [
            f"Total Census Tracts: {stats.total_regions}",
            f"Speed Threshold: {_fmt_number(self.threshold)} Mbps",
            f"Population Below Threshold: {stats.underserved_percent}% "
            f"({stats.underserved_population:,})",
            f"Average Speed: {stats.avg_speed} Mbps",
            f"Tracts with No Service: {stats.no_service}",
            f"Tracts with 100+ Mbps: {stats.high_speed_percent}%",
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "generated_on": self.generated_on.isoformat(),
            "region_name": self.region_name,
            "focus_region_name": self.focus_region_name,
            "focus_area": self.focus_area,
            "threshold": self.threshold,
            "statistics": self.statistics.to_dict(),
            "statistics_lines": self.statistics_lines(),
            "population_summary": self.population_summary.to_dict() if self.population_summary else None,
            "speed_test_summary": (
                {
                    "total_tests": self.speed_test_summary.total_tests,
                    "median_download_mbps": self.speed_test_summary.median_download_mbps,
                }
                if self.speed_test_summary
                else None
            ),
            "narrative": self.narrative,
        }


def build_narrative(
    stats: AggregateStatistics,
    threshold: float,
    focus_area: str,
    region_name: str,
    generated_on: date,
) -> str:
    """
    Render the executive summary text.

    Args:
        stats: Statistics to embed
        threshold: Active speed threshold (Mbps)
        focus_area: "<County> County" or the region name
        region_name: Name of the analyzed region (state)
        generated_on: Report date

    Returns:
        Multi-section plain-text summary
    """
    speed = _fmt_number(threshold)
    lines = [
        f"{region_name.upper()} BROADBAND ANALYSIS REPORT",
        f"Generated: {format_report_date(generated_on)}",
        f"Focus Area: {focus_area}",
        f"Speed Threshold: {speed} Mbps",
        "",
        "EXECUTIVE SUMMARY:",
        f"This analysis reveals critical broadband infrastructure gaps across {region_name}.",
        f"{stats.underserved_percent}% of the population ({stats.underserved_population:,} residents)",
        f"lack access to broadband speeds of {speed} Mbps or higher, which is considered",
        "the minimum for modern digital needs.",
        "",
        "KEY FINDINGS:",
        f"• {stats.total_regions} census tracts analyzed",
        f"• {stats.no_service} tracts have no broadband service",
        f"• Average broadband speed: {stats.avg_speed} Mbps",
        f"• {stats.high_speed_percent}% of tracts have high-speed access (100+ Mbps)",
        f"• {stats.below_threshold} tracts fall below the {speed} Mbps threshold",
        "",
        "POLICY IMPLICATIONS:",
        "The data indicates significant infrastructure investment is needed to achieve universal",
        "broadband access. Priority areas for BEAD funding and infrastructure development",
        f"should focus on the {stats.below_threshold} underserved census tracts, particularly",
        "those with no current service.",
        "",
        "RECOMMENDATIONS:",
        f"1. Target BEAD funding to areas below {speed} Mbps",
        "2. Prioritize fiber infrastructure in unserved areas",
        "3. Encourage public-private partnerships for rural connectivity",
        "4. Monitor progress with quarterly speed assessments",
        "",
        "This analysis provides the foundation for evidence-based broadband policy decisions",
        "and infrastructure investment strategies.",
    ]
    return "\n".join(lines)


def assemble_report(
    stats: AggregateStatistics,
    threshold: float,
    focus_region_name: Optional[str] = None,
    region_name: str = DEFAULT_REGION_NAME,
    generated_on: Optional[date] = None,
    population_summary: Optional[PopulationWeightedSummary] = None,
    speed_test_summary: Optional[SpeedTestSummary] = None,
) -> ReportSummary:
    """
    Package statistics, threshold and focus region into a ReportSummary.

    Args:
        stats: Current aggregate statistics
        threshold: Active speed threshold (Mbps)
        focus_region_name: Selected county name, if any
        region_name: Name of the analyzed region
        generated_on: Report date (defaults to today)
        population_summary: Population-weighted summary shown alongside, if loaded
        speed_test_summary: Speed-test headline numbers, if loaded

    Returns:
        Immutable ReportSummary with its narrative filled in
    """
    generated_on = generated_on or date.today()
    focus_region_name = focus_region_name or None

    summary = ReportSummary(
        statistics=stats,
        threshold=threshold,
        generated_on=generated_on,
        region_name=region_name,
        focus_region_name=focus_region_name,
        population_summary=population_summary,
        speed_test_summary=speed_test_summary,
    )
    narrative = build_narrative(stats, threshold, summary.focus_area, region_name, generated_on)
    return replace(summary, narrative=narrative)


def _fmt_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
