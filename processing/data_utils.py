#!/usr/bin/env python3
"""
data_utils.py - Broadband Data Loading and Validation

Turns raw county/tract GeoJSON, broadband metric JSON and speed-test payloads
into the typed records in processing.models. Every loader validates the whole
payload up front and raises MalformedPayloadError before any record is handed
to the enrichment or statistics engines.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import geopandas as gpd
import numpy as np
import pandas as pd
from loguru import logger
from shapely.geometry import MultiPolygon, Polygon

from .models import (
    BroadbandDatasets,
    GeometryFeature,
    MalformedPayloadError,
    MetricRecord,
    PopulationWeightedSummary,
    SpeedTestSummary,
    SpeedTestTile,
    Tier,
)

PathLike = Union[str, Path]

GEOMETRY_KINDS = ("county", "tract")

METRIC_REQUIRED_COLUMNS = [
    "geoid",
    "max_down_mbps",
    "max_up_mbps",
    "tier",
    "provider_count",
    "population_estimate",
    "percent_covered",
]
METRIC_NUMERIC_COLUMNS = [
    "max_down_mbps",
    "max_up_mbps",
    "provider_count",
    "population_estimate",
    "percent_covered",
]
METRIC_COUNT_COLUMNS = ["provider_count", "population_estimate"]

SPEED_TEST_REQUIRED_COLUMNS = ["download_mbps", "upload_mbps"]

POPULATION_SUMMARY_KEYS = [
    "underserved_percent",
    "underserved_population",
    "pop_weighted_median_speed",
    "high_speed_percent",
    "total_population",
]


def find_column_by_pattern(df: pd.DataFrame, patterns: list, description: str = "column") -> Optional[str]:
    """Find a column by exact (case-insensitive) name, trying patterns in order.

    Args:
        df: DataFrame to search
        patterns: Candidate column names (e.g., ["GEOID", "GEO_ID"])
        description: Description for logging

    Returns:
        Column name if found, None if not found
    """
    lowered = {str(col).lower(): col for col in df.columns}
    for pattern in patterns:
        if pattern.lower() in lowered:
            column = lowered[pattern.lower()]
            logger.trace(f"  📍 Found {description} column: {column} (pattern: {pattern})")
            return column

    logger.debug(f"  ⚠️ No {description} column found for patterns: {patterns}")
    return None


def validate_required_columns(df: pd.DataFrame, required_cols: List[str], data_name: str = "data") -> None:
    """
    Validate that a DataFrame contains all required columns.

    Args:
        df: DataFrame to validate
        required_cols: List of required column names
        data_name: Name of the data for error messages

    Raises:
        MalformedPayloadError: If any required column is missing
    """
    missing_cols = [col for col in required_cols if col not in df.columns]

    if missing_cols:
        logger.error(f"❌ {data_name} missing required columns: {missing_cols}")
        logger.info(f"    Available columns: {list(df.columns)}")
        raise MalformedPayloadError(f"{data_name} missing required columns: {missing_cols}")

    logger.debug(f"✅ {data_name} has all required columns: {required_cols}")


def clean_numeric_columns(df: pd.DataFrame, columns: List[str], data_name: str = "data") -> pd.DataFrame:
    """
    Coerce columns to numbers, rejecting blanks and non-numeric values.

    Raises:
        MalformedPayloadError: If any value cannot be read as a number
    """
    df = df.copy()
    for col in columns:
        raw = df[col]
        if raw.dtype == object:
            raw = raw.astype(str).str.replace(",", "", regex=False).str.strip()
        converted = pd.to_numeric(raw, errors="coerce")
        bad = converted.isna()
        if bad.any():
            sample = df.loc[bad, col].head(3).tolist()
            logger.error(f"❌ {data_name} column '{col}' has {int(bad.sum())} non-numeric values: {sample}")
            raise MalformedPayloadError(f"{data_name} column '{col}' has non-numeric values: {sample}")
        df[col] = converted
    return df


def reject_negative_values(df: pd.DataFrame, columns: List[str], data_name: str = "data") -> None:
    """
    Validate that numeric columns hold no negative values.

    Raises:
        MalformedPayloadError: If any value is below zero
    """
    for col in columns:
        negative = df[col] < 0
        if negative.any():
            sample = df.loc[negative, col].head(3).tolist()
            logger.error(f"❌ {data_name} column '{col}' has {int(negative.sum())} negative values")
            raise MalformedPayloadError(f"{data_name} column '{col}' has negative values: {sample}")


def require_whole_numbers(df: pd.DataFrame, columns: List[str], data_name: str = "data") -> None:
    """
    Validate that count columns (people, providers) hold whole numbers.

    Raises:
        MalformedPayloadError: If any value has a fractional part
    """
    for col in columns:
        fractional = df[col] % 1 != 0
        if fractional.any():
            sample = df.loc[fractional, col].head(3).tolist()
            logger.error(f"❌ {data_name} column '{col}' has {int(fractional.sum())} fractional values")
            raise MalformedPayloadError(f"{data_name} column '{col}' must hold whole numbers: {sample}")


def clean_and_validate(gdf: gpd.GeoDataFrame, data_type: str = "geodata") -> gpd.GeoDataFrame:
    """Standardize CRS to WGS84 and repair invalid polygons.

    Args:
        gdf: GeoDataFrame to clean and validate
        data_type: Type of data for context ("county", "tract", "speed test")

    Returns:
        Cleaned GeoDataFrame

    Raises:
        MalformedPayloadError: If any feature has no geometry or a non-polygon geometry
    """
    logger.debug(f"🧹 Cleaning and validating {data_type} data...")

    if gdf.crs is None:
        gdf = gdf.set_crs("EPSG:4326")
        logger.debug("  🌍 Set CRS to WGS84 (was None)")
    elif gdf.crs.to_epsg() != 4326:
        logger.info(f"  🔄 Reprojecting from {gdf.crs} to WGS84")
        gdf = gdf.to_crs("EPSG:4326")

    missing = gdf.geometry.isna()
    if missing.any():
        raise MalformedPayloadError(f"{int(missing.sum())} {data_type} features have no geometry")

    invalid_geom = ~gdf.geometry.is_valid
    if invalid_geom.any():
        logger.warning(f"  ⚠️ Found {int(invalid_geom.sum())} invalid geometries, fixing...")
        gdf = gdf.copy()
        gdf.loc[invalid_geom, "geometry"] = gdf.loc[invalid_geom, "geometry"].buffer(0)

    wrong_type = ~gdf.geometry.apply(lambda geom: isinstance(geom, (Polygon, MultiPolygon)))
    if wrong_type.any():
        types = sorted(set(gdf.geometry[wrong_type].geom_type))
        raise MalformedPayloadError(f"{data_type} features must be polygons, found {types}")

    return gdf


def _optional(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def _as_code(value: Any) -> Optional[str]:
    """Render a FIPS/GEOID-like value as a string without a float suffix."""
    value = _optional(value)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


TRUE_STRINGS = ("true", "t", "yes", "y", "1")
FALSE_STRINGS = ("false", "f", "no", "n", "0")


def _as_bool(value: Any, field: str = "value") -> Optional[bool]:
    """Read a JSON boolean, 0/1 or a "true"/"false" style string."""
    value = _optional(value)
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, float, np.integer, np.floating)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise MalformedPayloadError(f"{field} must be a boolean, got {value!r}")


def geometry_features_from_geodataframe(gdf: gpd.GeoDataFrame, kind: str = "tract") -> List[GeometryFeature]:
    """
    Convert a county or tract GeoDataFrame into GeometryFeatures.

    Args:
        gdf: Boundaries with GEOID (or GEO_ID) and NAME properties
        kind: "county" or "tract"; controls how parent_region_id is derived

    Returns:
        GeometryFeatures in file order

    Raises:
        MalformedPayloadError: On missing identifiers, names or polygon geometry
    """
    if kind not in GEOMETRY_KINDS:
        raise ValueError(f"Unknown geometry kind: {kind} (expected one of {GEOMETRY_KINDS})")
    if gdf.empty:
        logger.warning(f"  ⚠️ {kind.title()} collection is empty")
        return []

    id_col = find_column_by_pattern(gdf, ["GEOID", "GEO_ID", "geoid"], f"{kind} identifier")
    name_col = find_column_by_pattern(gdf, ["NAME", "name"], f"{kind} name")
    if id_col is None or name_col is None:
        missing = [label for label, col in (("GEOID", id_col), ("NAME", name_col)) if col is None]
        raise MalformedPayloadError(f"{kind} collection missing required properties: {missing}")

    gdf = clean_and_validate(gdf, kind)

    state_col = find_column_by_pattern(gdf, ["STATEFP", "STATE"], "state code")
    county_col = find_column_by_pattern(gdf, ["COUNTYFP", "COUNTY"], "county code")
    county_name_col = find_column_by_pattern(gdf, ["NAMELSADCO"], "county name")
    area_col = find_column_by_pattern(gdf, ["ALAND"], "land area")

    features: List[GeometryFeature] = []
    for position, values in enumerate(gdf.to_dict(orient="records")):
        region_id = _as_code(values[id_col])
        if not region_id:
            raise MalformedPayloadError(f"{kind} feature #{position} has no identifier")

        state = _as_code(values[state_col]) if state_col else None
        if kind == "tract":
            county = _as_code(values[county_col]) if county_col else None
            if state and county:
                parent = f"{state.zfill(2)}{county.zfill(3)}"
            else:
                parent = region_id[:5]
        else:
            parent = state.zfill(2) if state else region_id[:2]

        area = _optional(values[area_col]) if area_col else None
        features.append(
            GeometryFeature(
                id=region_id,
                name=str(_optional(values[name_col]) or ""),
                boundary=values["geometry"],
                parent_region_id=parent,
                area_sq_meters=float(area) if area is not None else None,
                county_name=_optional(values[county_name_col]) if county_name_col else None,
            )
        )

    logger.debug(f"  ✅ Parsed {len(features):,} {kind} features")
    return features


def geometry_features_from_geojson(payload: Dict[str, Any], kind: str = "tract") -> List[GeometryFeature]:
    """Parse an already-decoded GeoJSON FeatureCollection into GeometryFeatures."""
    features = _feature_list(payload, f"{kind} collection")
    if not features:
        return []
    return geometry_features_from_geodataframe(_to_geodataframe(features, kind), kind)


def metric_records_from_payload(rows: Sequence[Dict[str, Any]]) -> List[MetricRecord]:
    """
    Convert broadband metric rows (one per tract) into MetricRecords.

    Args:
        rows: Decoded JSON array of metric objects

    Returns:
        MetricRecords in payload order (duplicates kept; the index resolves them)

    Raises:
        MalformedPayloadError: On missing fields, non-numeric values,
            negative values, fractional counts or unknown tiers
    """
    if not isinstance(rows, (list, tuple)):
        raise MalformedPayloadError(f"Broadband metrics must be a JSON array, got {type(rows).__name__}")
    if not rows:
        logger.warning("  ⚠️ Broadband metric payload is empty")
        return []
    if not all(isinstance(row, dict) for row in rows):
        raise MalformedPayloadError("Broadband metrics must be an array of objects")

    df = pd.DataFrame(list(rows))
    validate_required_columns(df, METRIC_REQUIRED_COLUMNS, "Broadband metrics")
    df = clean_numeric_columns(df, METRIC_NUMERIC_COLUMNS, "Broadband metrics")
    reject_negative_values(df, METRIC_NUMERIC_COLUMNS, "Broadband metrics")
    require_whole_numbers(df, METRIC_COUNT_COLUMNS, "Broadband metrics")

    if df["geoid"].isna().any():
        raise MalformedPayloadError("Broadband metrics contain records without a geoid")

    records: List[MetricRecord] = []
    for row in df.to_dict(orient="records"):
        records.append(
            MetricRecord(
                region_id=_as_code(row["geoid"]),
                max_down_mbps=float(row["max_down_mbps"]),
                max_up_mbps=float(row["max_up_mbps"]),
                tier=Tier.parse(row["tier"]),
                provider_count=int(row["provider_count"]),
                population_estimate=int(row["population_estimate"]),
                percent_covered=float(row["percent_covered"]),
                color_hint=_optional(row.get("color")),
                county_fips=_as_code(row.get("county_fips")),
                name=_optional(row.get("tract_name")),
            )
        )

    logger.debug(f"  ✅ Parsed {len(records):,} broadband metric records")
    return records


def speed_test_tiles_from_geojson(payload: Dict[str, Any]) -> List[SpeedTestTile]:
    """
    Parse speed-test tiles (crowdsourced download/upload/ping per tile).

    Raises:
        MalformedPayloadError: On missing speed properties or non-polygon tiles
    """
    features = _feature_list(payload, "Speed test collection")
    if not features:
        return []

    gdf = _to_geodataframe(features, "speed test")
    validate_required_columns(gdf, SPEED_TEST_REQUIRED_COLUMNS, "Speed test tiles")
    gdf = clean_numeric_columns(gdf, SPEED_TEST_REQUIRED_COLUMNS, "Speed test tiles")
    reject_negative_values(gdf, SPEED_TEST_REQUIRED_COLUMNS, "Speed test tiles")
    gdf = clean_and_validate(gdf, "speed test")

    id_col = find_column_by_pattern(gdf, ["quadkey", "tile_id", "id"], "tile identifier")
    tiles: List[SpeedTestTile] = []
    for position, row in enumerate(gdf.to_dict(orient="records")):
        tile_id = _as_code(row.get(id_col)) if id_col else None
        tests = _optional(row.get("tests"))
        population = _optional(row.get("population"))
        ping = _optional(row.get("ping_ms"))
        tiles.append(
            SpeedTestTile(
                tile_id=tile_id or str(position),
                boundary=row["geometry"],
                download_mbps=float(row["download_mbps"]),
                upload_mbps=float(row["upload_mbps"]),
                ping_ms=float(ping) if ping is not None else None,
                provider=_optional(row.get("provider")),
                county_name=_optional(row.get("NAMELSADCO")),
                color_hint=_optional(row.get("color")),
                tests=int(tests) if tests is not None else None,
                population=float(population) if population is not None else None,
                is_rural=_as_bool(row.get("is_rural"), f"Speed test tile #{position} is_rural"),
            )
        )

    logger.debug(f"  ✅ Parsed {len(tiles):,} speed test tiles")
    return tiles


def population_summary_from_payload(payload: Dict[str, Any]) -> PopulationWeightedSummary:
    """Parse the precomputed population-weighted summary."""
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Population statistics must be a JSON object")
    missing = [key for key in POPULATION_SUMMARY_KEYS if key not in payload]
    if missing:
        raise MalformedPayloadError(f"Population statistics missing keys: {missing}")

    breakdown = payload.get("geographic_breakdown") or {}
    if not isinstance(breakdown, dict):
        raise MalformedPayloadError("geographic_breakdown must be an object")

    try:
        return PopulationWeightedSummary(
            underserved_percent=float(payload["underserved_percent"]),
            underserved_population=int(payload["underserved_population"]),
            pop_weighted_median_speed=float(payload["pop_weighted_median_speed"]),
            high_speed_percent=float(payload["high_speed_percent"]),
            total_population=int(payload["total_population"]),
            geographic_breakdown=breakdown,
        )
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Population statistics have non-numeric values: {e}") from e


def speed_test_summary_from_payload(payload: Dict[str, Any]) -> SpeedTestSummary:
    """Parse the speed-test headline summary ({total_tests, median_download_mbps})."""
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Speed test summary must be a JSON object")
    try:
        return SpeedTestSummary(
            total_tests=int(payload["total_tests"]),
            median_download_mbps=float(payload["median_download_mbps"]),
        )
    except KeyError as e:
        raise MalformedPayloadError(f"Speed test summary missing key: {e}") from e
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Speed test summary has non-numeric values: {e}") from e


def load_json(file_path: PathLike) -> Any:
    """
    Load a standard JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        MalformedPayloadError: If the file is not valid JSON
    """
    file_path = Path(file_path)
    logger.info(f"📄 Loading JSON from {file_path}")

    if not file_path.exists():
        logger.error(f"❌ JSON file not found: {file_path}")
        raise FileNotFoundError(f"JSON file not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"❌ Error loading JSON: {e}")
        raise MalformedPayloadError(f"Invalid JSON in {file_path}: {e}") from e

    logger.success("  ✅ Loaded JSON data")
    return data


def load_geometry_features(file_path: PathLike, kind: str = "tract") -> List[GeometryFeature]:
    """Load county or tract boundaries from a GeoJSON file."""
    file_path = Path(file_path)
    logger.info(f"🗺️ Loading {kind} GeoJSON from {file_path}")

    if not file_path.exists():
        logger.error(f"❌ GeoJSON file not found: {file_path}")
        raise FileNotFoundError(f"GeoJSON file not found: {file_path}")

    try:
        gdf = gpd.read_file(file_path)
    except Exception as e:
        logger.error(f"❌ Error loading GeoJSON: {e}")
        raise MalformedPayloadError(f"Could not read {file_path}: {e}") from e

    features = geometry_features_from_geodataframe(gdf, kind)
    logger.success(f"  ✅ Loaded {len(features):,} {kind} features")
    return features


def load_metric_records(file_path: PathLike) -> List[MetricRecord]:
    """Load broadband metric records from a JSON array file."""
    records = metric_records_from_payload(load_json(file_path))
    logger.success(f"  ✅ Loaded {len(records):,} broadband records")
    return records


def load_speed_test_tiles(file_path: PathLike) -> List[SpeedTestTile]:
    """Load speed-test tiles from a GeoJSON file."""
    tiles = speed_test_tiles_from_geojson(load_json(file_path))
    logger.success(f"  ✅ Loaded {len(tiles):,} speed test tiles")
    return tiles


def load_population_summary(file_path: PathLike) -> PopulationWeightedSummary:
    """Load the precomputed population-weighted summary."""
    return population_summary_from_payload(load_json(file_path))


def load_speed_test_summary(file_path: PathLike) -> SpeedTestSummary:
    """Load the speed-test headline summary."""
    return speed_test_summary_from_payload(load_json(file_path))


def load_datasets(config) -> BroadbandDatasets:
    """
    Load every input named in the config's input_files section.

    counties_geojson, tracts_geojson and broadband_json are required. The speed-test
    tiles, speed-test summary and population statistics are optional and skipped
    when the key is absent or the file does not exist.

    Args:
        config: ops.Config instance

    Returns:
        BroadbandDatasets with everything that could be loaded

    Raises:
        FileNotFoundError: If a required input file is missing
        MalformedPayloadError: If any payload is invalid
    """
    counties = load_geometry_features(config.get_input_path("counties_geojson"), "county")
    tracts = load_geometry_features(config.get_input_path("tracts_geojson"), "tract")
    metrics = load_metric_records(config.get_input_path("broadband_json"))

    speed_tests_path = _optional_input(config, "speed_tests_geojson")
    summary_path = _optional_input(config, "speed_test_summary_json")
    population_path = _optional_input(config, "population_stats_json")

    datasets = BroadbandDatasets(
        counties=tuple(counties),
        tracts=tuple(tracts),
        metrics=tuple(metrics),
        speed_tests=tuple(load_speed_test_tiles(speed_tests_path)) if speed_tests_path else (),
        speed_test_summary=load_speed_test_summary(summary_path) if summary_path else None,
        population_summary=load_population_summary(population_path) if population_path else None,
    )
    logger.success(f"✅ Loaded {datasets.describe()}")
    return datasets


def _optional_input(config, key: str) -> Optional[Path]:
    if not config.get(f"input_files.{key}"):
        logger.debug(f"  ⏭️ No {key} configured")
        return None
    path = config.get_input_path(key)
    if not path.exists():
        logger.info(f"⏭️ Skipping {key} ({path.name} not found)")
        return None
    return path


def ensure_output_directory(output_path: Union[str, Path]) -> Path:
    """Ensure output directory exists and return Path object.

    Args:
        output_path: Output file path (string or Path)

    Returns:
        Path object with directory created
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path


def _feature_list(payload: Any, data_name: str) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        raise MalformedPayloadError(f"{data_name} must be a GeoJSON FeatureCollection")
    features = payload.get("features")
    if not isinstance(features, list):
        raise MalformedPayloadError(f"{data_name} has no 'features' array")
    return features


def _to_geodataframe(features: List[Dict[str, Any]], data_name: str) -> gpd.GeoDataFrame:
    try:
        return gpd.GeoDataFrame.from_features(features, crs="EPSG:4326")
    except Exception as e:
        raise MalformedPayloadError(f"Invalid {data_name} features: {e}") from e
