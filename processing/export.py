"""
Export seams for the tabular, renderer and report collaborators.

- metric CSV: one quoted row per raw metric record, fixed column set
- enriched GeoJSON: renderer payload from processing.enrichment.to_geodataframe()
- JSON snapshots: report summary and visibility/filter state

Write failures are logged and re-raised as ExportError; in-memory state is never
touched by an export.
"""

import csv
import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import pandas as pd
from loguru import logger

from .data_utils import ensure_output_directory
from .enrichment import to_geodataframe
from .models import MISSING_DATA_COLOR, EnrichedFeature, MetricRecord

PathLike = Union[str, Path]

CSV_COLUMNS = [
    "Tract ID",
    "County FIPS",
    "Tract Name",
    "Max Download (Mbps)",
    "Max Upload (Mbps)",
    "Service Tier",
    "Provider Count",
    "Population Estimate",
    "Coverage Percent",
]


class ExportError(RuntimeError):
    """An export could not be written. The caller may retry."""


def export_filename(prefix: str, extension: str, day: Optional[date] = None) -> str:
    """Date-stamped export name, e.g. wv-broadband-data-2025-03-07.csv."""
    day = day or date.today()
    return f"{prefix}-{day.isoformat()}.{extension.lstrip('.')}"


def metric_rows(records: Sequence[MetricRecord]) -> pd.DataFrame:
    """Tabulate raw metric records with the fixed export column set."""
    rows = [
        [
            record.region_id,
            record.county_fips,
            record.name,
            record.max_down_mbps,
            record.max_up_mbps,
            record.tier.value,
            record.provider_count,
            record.population_estimate,
            record.percent_covered,
        ]
        for record in records
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def write_metrics_csv(records: Sequence[MetricRecord], output_path: PathLike) -> Path:
    """
    Write raw metric records as CSV with every field quoted.

    Args:
        records: Metric records in load order
        output_path: Destination file

    Returns:
        Path written

    Raises:
        ExportError: If the file cannot be written
    """
    output_path = Path(output_path)
    logger.info(f"💾 Writing {len(records):,} broadband records to {output_path}")
    df = metric_rows(records)
    try:
        ensure_output_directory(output_path)
        df.to_csv(output_path, index=False, quoting=csv.QUOTE_ALL, na_rep="")
    except OSError as e:
        logger.error(f"❌ CSV export failed: {e}")
        logger.info("💡 Check the output directory and try again")
        raise ExportError(f"CSV export failed: {e}") from e

    logger.success(f"  ✅ Saved CSV: {output_path}")
    return output_path


def write_enriched_geojson(
    enriched: Sequence[EnrichedFeature],
    output_path: PathLike,
    missing_color: str = MISSING_DATA_COLOR,
) -> Path:
    """Write the enriched tract set as GeoJSON for the renderer."""
    output_path = Path(output_path)
    logger.info(f"🗺️ Writing {len(enriched):,} enriched tracts to {output_path}")
    gdf = to_geodataframe(enriched, missing_color)
    try:
        ensure_output_directory(output_path)
        gdf.to_file(output_path, driver="GeoJSON")
    except Exception as e:
        logger.error(f"❌ GeoJSON export failed: {e}")
        logger.info("💡 Check the output directory and try again")
        raise ExportError(f"GeoJSON export failed: {e}") from e

    logger.success(f"  ✅ Saved GeoJSON: {output_path}")
    return output_path


def write_json(payload: Dict[str, Any], output_path: PathLike, description: str = "JSON") -> Path:
    """Write a JSON snapshot (report summary, visibility state)."""
    output_path = Path(output_path)
    try:
        ensure_output_directory(output_path)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
    except (OSError, TypeError) as e:
        logger.error(f"❌ {description} export failed: {e}")
        raise ExportError(f"{description} export failed: {e}") from e

    logger.success(f"  ✅ Saved {description}: {output_path}")
    return output_path


def write_text(text: str, output_path: PathLike, description: str = "text") -> Path:
    """Write a plain-text document (the report narrative)."""
    output_path = Path(output_path)
    try:
        ensure_output_directory(output_path)
        output_path.write_text(text, encoding="utf-8")
    except OSError as e:
        logger.error(f"❌ {description} export failed: {e}")
        logger.info("💡 Check the output directory and try again")
        raise ExportError(f"{description} export failed: {e}") from e

    logger.success(f"  ✅ Saved {description}: {output_path}")
    return output_path
