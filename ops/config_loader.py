"""
Configuration Loader for the Broadband Maps Pipeline

This module provides a centralized way to load and access configuration
settings from the config.yaml file.

Usage:
    from ops.config_loader import Config

    config = Config()
    tracts_geojson = config.get_input_path('tracts_geojson')
    output_dir = config.get_output_dir('output')
    threshold = config.get_analysis_setting('default_threshold')
"""

import copy
import os
import pathlib
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger

CONFIG_ENV_VAR = "BROADBAND_CONFIG_PATH"
PROJECT_ROOT_ENV_VAR = "BROADBAND_PROJECT_ROOT"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

REQUIRED_INPUTS = ("counties_geojson", "tracts_geojson", "broadband_json")


class Config:
    """Configuration manager for the broadband maps pipeline."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "region_name": "West Virginia",
        "region_abbreviation": "WV",
        "directories": {"data": "data", "output": "output"},
        "analysis": {
            "default_threshold": 25,
            "min_threshold": 1,
            "max_threshold": 100,
            "high_speed_cutoff": 100,
        },
        "visualization": {"missing_data_color": "#cccccc"},
    }

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        project_root_override: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable BROADBAND_CONFIG_PATH
                        2. config.yaml in current directory
                        3. ops/config.yaml next to this module
            project_root_override: Override project root detection (useful for temp configs)
        """
        if config_file is None:
            env_config = os.environ.get(CONFIG_ENV_VAR)
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif DEFAULT_CONFIG_PATH.exists():
                config_file = DEFAULT_CONFIG_PATH
                logger.debug("Using bundled ops/config.yaml")
            else:
                raise FileNotFoundError(
                    f"No config.yaml found. Check current directory or set {CONFIG_ENV_VAR}"
                )

        self.config_path = Path(config_file).resolve()
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")
        self.config_dir = self.config_path.parent

        if project_root_override:
            self.project_root = Path(project_root_override).resolve()
            logger.debug(f"Using project root override: {self.project_root}")
        elif os.environ.get(PROJECT_ROOT_ENV_VAR):
            self.project_root = Path(os.environ[PROJECT_ROOT_ENV_VAR]).resolve()
            logger.debug(f"Using project root from environment: {self.project_root}")
        else:
            self.project_root = self._find_project_root()

        logger.debug(f"Loading config from: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            self.data: Dict[str, Any] = yaml.safe_load(f) or {}

        self._setup_paths()

    def _setup_paths(self) -> None:
        """Setup base directory paths relative to project root."""
        dirs = self.get("directories", {})
        self.data_dir = self.project_root / dirs.get("data", "data")
        self.output_dir = self.project_root / dirs.get("output", "output")

    def apply_overrides(self, overrides: Dict[str, Any]) -> None:
        """
        Apply dot-notation overrides in memory (e.g. {"analysis.default_threshold": 50}).

        Args:
            overrides: Mapping of dot paths to values
        """
        for key_path, value in overrides.items():
            keys = key_path.split(".")
            current = self.data
            for key in keys[:-1]:
                if not isinstance(current.get(key), dict):
                    current[key] = {}
                current = current[key]
            current[keys[-1]] = value
            logger.debug(f"Applied override: {key_path} = {value}")

        self._setup_paths()

    def get_input_path(self, filename_key: str) -> pathlib.Path:
        """
        Get full path to an input file. The path is taken directly from config.yaml
        and joined with the project root.

        Args:
            filename_key: Key for the filename in input_files

        Returns:
            Full absolute path to the input file
        """
        relative_path_str = self.data.get("input_files", {}).get(filename_key)
        if not relative_path_str:
            raise ValueError(
                f"Input filename key '{filename_key}' not found in config: input_files"
            )
        return self.project_root / relative_path_str

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        value: Any = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break

        if value is None:
            value = self.DEFAULTS
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default
            value = copy.deepcopy(value)

        return value

    def get_output_dir(self, dir_key: str = "output") -> pathlib.Path:
        """
        Get full path to an output directory, creating it if needed.

        Args:
            dir_key: Directory key ('output' or 'data')

        Returns:
            Full path to the directory
        """
        if dir_key == "output":
            directory = self.output_dir
        elif dir_key == "data":
            directory = self.data_dir
        else:
            raise ValueError(f"Unknown directory key: {dir_key}")

        directory.mkdir(parents=True, exist_ok=True)
        return pathlib.Path(directory)

    def get_analysis_setting(self, setting_key: str) -> Any:
        """Get analysis setting with intelligent defaults."""
        return self.get(f"analysis.{setting_key}")

    def get_visualization_setting(self, setting_key: str) -> Any:
        """Get visualization setting with intelligent defaults."""
        return self.get(f"visualization.{setting_key}")

    def validate_input_files(self) -> Dict[str, bool]:
        """Validate that input files exist."""
        results: Dict[str, bool] = {}
        input_files = self.data.get("input_files", {})

        for filename_key in input_files:
            try:
                results[filename_key] = self.get_input_path(filename_key).exists()
            except ValueError:
                results[filename_key] = False

        return results

    def missing_required_inputs(self) -> list:
        """Required input keys that are unconfigured or whose file does not exist."""
        validation = self.validate_input_files()
        return [key for key in REQUIRED_INPUTS if not validation.get(key, False)]

    def _find_project_root(self) -> Path:
        """Find the project root directory by looking for characteristic files/directories."""
        current = self.config_path.parent

        project_markers = ["analysis", "data", "ops", "processing", "pyproject.toml", ".git"]

        for _ in range(5):  # Limit to 5 levels up
            markers_found = sum(1 for marker in project_markers if (current / marker).exists())
            if markers_found >= 2:
                return current

            parent = current.parent
            if parent == current:
                break
            current = parent

        # Fallback: if config is in ops/, project root is parent
        if self.config_path.parent.name == "ops":
            return self.config_path.parent.parent

        logger.warning(
            f"Could not reliably detect project root, using config directory: {self.config_path.parent}"
        )
        return self.config_path.parent


def load_config(config_file: Optional[Union[str, Path]] = None) -> Config:
    """
    Load configuration from file.

    Args:
        config_file: Path to configuration file

    Returns:
        Config instance
    """
    return Config(config_file)
