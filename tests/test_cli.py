import json
import sys
from datetime import date

import pytest
from click.testing import CliRunner
from loguru import logger

from ops.run_pipeline import ConfigOverride, cli


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def runner(project_dir):
    return CliRunner(
        env={
            "BROADBAND_CONFIG_PATH": str(project_dir / "config.yaml"),
            "BROADBAND_PROJECT_ROOT": str(project_dir),
        }
    )


def test_stats_command(runner):
    result = runner.invoke(cli, ["--threshold", "50", "stats"])
    assert result.exit_code == 0, result.output


def test_run_writes_all_outputs(runner, project_dir):
    result = runner.invoke(cli, ["--threshold", "50", "--county", "Kanawha", "run"])
    assert result.exit_code == 0, result.output

    output = project_dir / "output"
    today = date.today().isoformat()
    assert (output / f"wv-broadband-data-{today}.csv").exists()
    assert (output / "wv-broadband-tracts.geojson").exists()

    report = json.loads((output / f"WV-Broadband-Report-{today}.json").read_text())
    assert report["threshold"] == 50
    assert report["focus_area"] == "Kanawha County"
    assert report["statistics"]["below_threshold"] == 2
    assert (output / f"WV-Broadband-Report-{today}.txt").read_text().startswith(
        "WEST VIRGINIA BROADBAND ANALYSIS REPORT"
    )

    state = json.loads((output / "layer-state.json").read_text())
    assert state["speedThreshold"] == 50
    assert state["filter"] == ["<", ["get", "broadband_down"], 50]
    assert state["layers"]["counties"] is True


def test_default_command_is_run(runner, project_dir):
    result = runner.invoke(cli, [])
    assert result.exit_code == 0, result.output
    assert (project_dir / "output" / "layer-state.json").exists()


def test_export_csv_to_explicit_path(runner, project_dir):
    target = project_dir / "tracts.csv"
    result = runner.invoke(cli, ["export-csv", "--output", str(target)])
    assert result.exit_code == 0, result.output
    assert target.read_text().startswith('"Tract ID"')


def test_dry_run_writes_nothing(runner, project_dir):
    result = runner.invoke(cli, ["--dry-run", "run"])
    assert result.exit_code == 0, result.output
    assert not (project_dir / "output").exists()


def test_missing_required_input_fails(runner, project_dir):
    (project_dir / "data" / "broadband.json").unlink()
    result = runner.invoke(cli, ["stats"])
    assert result.exit_code == 1


def test_config_override_changes_threshold(runner, project_dir):
    result = runner.invoke(cli, ["--config", "analysis.default_threshold=50", "run"])
    assert result.exit_code == 0, result.output
    report = json.loads((project_dir / "output" / f"WV-Broadband-Report-{date.today().isoformat()}.json").read_text())
    assert report["threshold"] == 50


def test_bad_config_override_is_rejected(runner):
    result = runner.invoke(cli, ["--config", "no-equals-sign", "stats"])
    assert result.exit_code == 2


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("analysis.default_threshold=50", ("analysis.default_threshold", 50)),
        ("analysis.high_speed_cutoff=99.5", ("analysis.high_speed_cutoff", 99.5)),
        ("debug=true", ("debug", True)),
        ("region_name=Ohio", ("region_name", "Ohio")),
    ],
)
def test_config_override_parsing(raw, expected):
    assert ConfigOverride().convert(raw, None, None) == expected
