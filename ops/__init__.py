"""
Operations package for the Broadband Maps Pipeline

This package centralizes the operational tooling:
- Configuration management
- Logging and processing context
- CLI pipeline

The Config class is exposed at the package level for convenient imports:
    from ops import Config
"""

from .config_loader import Config, load_config

__all__ = ["Config", "load_config"]
