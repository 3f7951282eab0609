"""
Identifier Index

Builds the region-identifier -> MetricRecord lookup used by a single enrichment
pass. Later records win when an identifier repeats.
"""

from typing import Dict, Iterable

from loguru import logger

from .models import MetricRecord


def build_index(records: Iterable[MetricRecord]) -> Dict[str, MetricRecord]:
    """
    Index metric records by region identifier.

    Args:
        records: Metric records in load order

    Returns:
        Mapping of region_id to the last record seen for that identifier
    """
    index: Dict[str, MetricRecord] = {}
    duplicates = 0

    for record in records:
        if record.region_id in index:
            duplicates += 1
        index[record.region_id] = record

    if duplicates:
        logger.debug(f"  🔁 {duplicates} duplicate region ids (last record kept)")
    logger.debug(f"  🗂️ Indexed {len(index):,} metric records")

    return index
