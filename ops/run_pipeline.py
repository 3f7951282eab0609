#!/usr/bin/env python3
"""
Broadband Data Pipeline with Click CLI

Loads county/tract boundaries and broadband metrics, joins them by GEOID,
computes the threshold statistics and writes the renderer, tabular and report
exports. Configuration values can be overridden from the command line without
editing config.yaml.

Usage:
    broadband-pipeline [OPTIONS] [COMMAND]

    # Full pipeline with the configured defaults:
    broadband-pipeline

    # Different threshold and a focus county:
    broadband-pipeline --threshold 50 --county Kanawha

    # Statistics only, or only the CSV export:
    broadband-pipeline stats
    broadband-pipeline export-csv --output data/tracts.csv

    # Config overrides and logging:
    broadband-pipeline --config analysis.high_speed_cutoff=250 --verbose
"""

import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from loguru import logger

from analysis.focus import county_options
from analysis.session import BroadbandSession
from processing.data_utils import load_datasets
from processing.export import (
    export_filename,
    write_enriched_geojson,
    write_json,
    write_metrics_csv,
    write_text,
)

from .config_loader import Config
from .processing_utils import (
    ProcessingContext,
    add_file_logging,
    handle_critical_error,
    log_level_for,
    setup_logging,
)


class ConfigContext:
    """Click context object holding dot-notation overrides applied on top of config.yaml."""

    def __init__(self):
        self.overrides: Dict[str, Any] = {}
        self.config: Optional[Config] = None
        self.kwargs: Dict[str, Any] = {}

    def add_override(self, key: str, value: Any):
        self.overrides[key] = value
        logger.debug(f"Added override: {key} = {value}")

    def get_config(self) -> Config:
        """Get config with overrides applied in memory."""
        config = Config()
        if self.overrides:
            config.apply_overrides(self.overrides)
        return config


class ConfigOverride(click.ParamType):
    """Custom parameter type for config overrides."""

    name = "config_override"

    def convert(self, value, param, ctx) -> Tuple[str, Any]:
        if "=" not in value:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        key, val = value.split("=", 1)
        if not key:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        # Auto-parse value type
        if val.lower() in ("true", "false"):
            parsed_val: Any = val.lower() == "true"
        elif val.isdigit():
            parsed_val = int(val)
        elif "." in val and val.replace(".", "", 1).isdigit():
            parsed_val = float(val)
        else:
            parsed_val = val

        return key, parsed_val


@click.group(invoke_without_command=True)
@click.option("--dry-run", is_flag=True, help="Show what would be run without executing")
@click.option("--threshold", type=float, help="Speed threshold in Mbps (clamped to the configured range)")
@click.option("--county", type=str, metavar="NAME", help="Focus county for the report (e.g. Kanawha)")
@click.option(
    "--config",
    "config_overrides",
    multiple=True,
    type=ConfigOverride(),
    help="Set config values using dot notation (e.g., analysis.high_speed_cutoff=250)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option(
    "--trace", is_flag=True, help="Enable TRACE level logging for deep debugging (maximum detail)"
)
@click.option("--log-file", type=str, help="Also log to specified file")
@click.pass_context
def cli(ctx, **kwargs):
    """
    Broadband Data Pipeline with Configuration Overrides

    \b
    Examples:
      broadband-pipeline                               # Full pipeline with config defaults
      broadband-pipeline --threshold 50                # Underserved below 50 Mbps
      broadband-pipeline --county Kanawha              # Report focused on one county
      broadband-pipeline stats                         # Log statistics only
      broadband-pipeline export-csv                    # Only the metric CSV
      broadband-pipeline --verbose --log-file run.log  # DEBUG logging, also to a file
    """
    setup_logging(verbose=kwargs["verbose"], enable_trace=kwargs["trace"])

    if kwargs["log_file"]:
        add_file_logging(kwargs["log_file"], log_level_for(kwargs["verbose"], kwargs["trace"]))

    logger.info("🗺️ Broadband Data Pipeline")
    logger.debug(f"🔧 CLI arguments received: {kwargs}")

    config_ctx = ConfigContext()
    ctx.obj = config_ctx

    for key, value in kwargs["config_overrides"]:
        config_ctx.add_override(key, value)

    try:
        config = config_ctx.get_config()
        logger.info(f"📋 Project: {config.get('project_name')}")
    except (FileNotFoundError, ValueError, OSError) as e:
        logger.critical(f"Configuration error: {e}")
        logger.info("💡 Make sure config.yaml exists and is valid")
        ctx.exit(1)

    config_ctx.config = config
    config_ctx.kwargs = kwargs

    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


def build_session(config: Config, kwargs: Dict[str, Any]) -> BroadbandSession:
    """Load every input and apply the CLI threshold and focus county."""
    missing = config.missing_required_inputs()
    if missing:
        for key in missing:
            logger.error(f"❌ Required input missing: {key}")
        logger.info("💡 Check the file paths in config.yaml under input_files section")
        raise FileNotFoundError(f"Required inputs missing: {missing}")

    session = BroadbandSession.from_config(config)
    session.load(load_datasets(config))

    if kwargs.get("threshold") is not None:
        session.set_threshold(kwargs["threshold"])

    county = kwargs.get("county")
    if county:
        if session.select_focus_region(county) is None:
            names = ", ".join(option.name for option in county_options(session.datasets.counties))
            logger.info(f"💡 Available counties: {names}")
    return session


def log_statistics(session: BroadbandSession) -> None:
    stats = session.statistics
    logger.info(f"📊 Statistics at {session.threshold} Mbps:")
    logger.info(f"   Census tracts: {stats.total_regions:,}")
    logger.info(f"   No service: {stats.no_service:,}")
    logger.info(f"   Below threshold: {stats.below_threshold:,}")
    logger.info(f"   High-speed (100+ Mbps): {stats.high_speed:,} ({stats.high_speed_percent}%)")
    logger.info(f"   Average speed: {stats.avg_speed} Mbps")
    logger.info(
        f"   Underserved population: {stats.underserved_population:,} of "
        f"{stats.total_population:,} ({stats.underserved_percent}%)"
    )

    view = session.display_statistics()
    if view.source == "population_weighted":
        logger.info("👥 Population-weighted summary:")
        logger.info(f"   Underserved: {view.underserved_percent}% ({view.underserved_population:,})")
        logger.info(f"   {view.headline_speed_label}: {view.headline_speed}")
        if view.rural_percent is not None:
            logger.info(f"   Rural population: {view.rural_percent}%")

    if session.datasets.speed_tests:
        logger.info(f"📶 Speed test tiles below 100 Mbps: {len(session.discrepancy_tiles()):,}")


def show_dry_run_info(config: Config, kwargs: Dict[str, Any]) -> None:
    logger.info("🔍 DRY RUN MODE - Nothing will be loaded or written")
    logger.info("=" * 60)
    logger.info(f"  📋 Project: {config.get('project_name')}")
    logger.info(f"  📋 Region: {config.get('region_name')}")
    threshold = kwargs.get("threshold")
    if threshold is None:
        threshold = config.get_analysis_setting("default_threshold")
    logger.info(f"  🎚️ Threshold: {threshold} Mbps")
    if kwargs.get("county"):
        logger.info(f"  🎯 Focus county: {kwargs['county']}")

    for file_key, exists in config.validate_input_files().items():
        logger.info(f"  📄 {file_key}: {'✅' if exists else '❌'}")
    logger.info(f"  📁 Output directory: {config.output_dir}")


def _csv_prefix(config: Config) -> str:
    return f"{config.get('region_abbreviation').lower()}-broadband-data"


@cli.command()
@click.pass_context
def run(ctx):
    """Run the full pipeline: load, join, compute statistics, export."""
    config = ctx.obj.config
    kwargs = ctx.obj.kwargs

    if kwargs["dry_run"]:
        show_dry_run_info(config, kwargs)
        return

    start = time.time()
    with ProcessingContext("Broadband Data Pipeline", config=config):
        session = build_session(config, kwargs)
        log_statistics(session)

        output_dir = config.get_output_dir("output")
        abbreviation = config.get("region_abbreviation")
        report = session.report()
        report_name = export_filename(f"{abbreviation}-Broadband-Report", "txt", report.generated_on)

        write_metrics_csv(
            session.engine.records,
            output_dir / export_filename(_csv_prefix(config), "csv", report.generated_on),
        )
        write_enriched_geojson(
            session.enriched,
            output_dir / f"{abbreviation.lower()}-broadband-tracts.geojson",
            missing_color=config.get_visualization_setting("missing_data_color"),
        )
        write_json(
            {
                **session.visibility().to_dict(),
                "filter": session.layers.filter_expression(),
                "renderer": session.layers.renderer_visibility(),
            },
            output_dir / "layer-state.json",
            "layer state",
        )
        write_text(report.narrative, output_dir / report_name, "report narrative")
        write_json(report.to_dict(), (output_dir / report_name).with_suffix(".json"), "report summary")

        logger.info(f"⏱️ Total time: {time.time() - start:.1f}s")
        logger.success(f"🗺️ Outputs ready in {output_dir}/")


@cli.command()
@click.pass_context
def stats(ctx):
    """Log the statistics without writing any files."""
    config = ctx.obj.config
    kwargs = ctx.obj.kwargs

    if kwargs["dry_run"]:
        show_dry_run_info(config, kwargs)
        return

    with ProcessingContext("Broadband Statistics", config=config):
        session = build_session(config, kwargs)
        log_statistics(session)


@cli.command("export-csv")
@click.option("--output", "output_path", type=click.Path(dir_okay=False), help="CSV destination")
@click.pass_context
def export_csv(ctx, output_path):
    """Export the raw broadband metric records as CSV."""
    config = ctx.obj.config
    kwargs = ctx.obj.kwargs

    if kwargs["dry_run"]:
        show_dry_run_info(config, kwargs)
        return

    with ProcessingContext("Broadband CSV Export", config=config):
        session = build_session(config, kwargs)
        if output_path is None:
            output_path = config.get_output_dir("output") / export_filename(_csv_prefix(config), "csv")
        write_metrics_csv(session.engine.records, Path(output_path))


def main() -> None:
    try:
        cli()
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        raise SystemExit(130)
    except Exception as e:
        handle_critical_error(e, "Pipeline execution")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
