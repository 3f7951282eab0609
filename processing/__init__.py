"""
Processing package for the broadband data-join engine

Loading, validation, the identifier index, tract enrichment and the export seams.
"""

__version__ = "0.1.0"

from .data_utils import (
    clean_and_validate,
    find_column_by_pattern,
    load_datasets,
    load_geometry_features,
    load_metric_records,
    validate_required_columns,
)
from .enrichment import enrich, enrichment_summary, to_geodataframe
from .identifier_index import build_index
from .models import (
    BroadbandDatasets,
    EnrichedFeature,
    GeometryFeature,
    MalformedPayloadError,
    MetricRecord,
    Tier,
)

__all__ = [
    "find_column_by_pattern",
    "validate_required_columns",
    "clean_and_validate",
    "load_datasets",
    "load_geometry_features",
    "load_metric_records",
    "build_index",
    "enrich",
    "enrichment_summary",
    "to_geodataframe",
    "BroadbandDatasets",
    "EnrichedFeature",
    "GeometryFeature",
    "MalformedPayloadError",
    "MetricRecord",
    "Tier",
]
