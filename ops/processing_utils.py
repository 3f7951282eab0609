"""
Processing Utilities - Common Infrastructure

Logging setup, critical-error reporting and the ProcessingContext shared by the
pipeline commands.
"""

import os
import sys
import traceback
from typing import Optional

from loguru import logger

from .config_loader import Config

FILE_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
DETAILED_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
)
BRIEF_LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"


def log_level_for(verbose: bool = False, enable_trace: bool = False) -> str:
    if enable_trace:
        return "TRACE"
    return "DEBUG" if verbose else "INFO"


def setup_logging(verbose: bool = False, enable_trace: bool = False) -> str:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging

    Returns:
        The active log level name
    """
    logger.remove()

    log_level = log_level_for(verbose, enable_trace)
    log_format = BRIEF_LOG_FORMAT if log_level == "INFO" else DETAILED_LOG_FORMAT

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )
    os.environ["LOGURU_LEVEL"] = log_level

    if verbose:
        logger.debug("🔧 Verbose logging enabled (DEBUG level)")
    if enable_trace:
        logger.trace("🔍 Trace logging enabled - maximum detail mode")

    logger.debug("📋 Logging system initialized")
    return log_level


def add_file_logging(log_file: str, level: str = "INFO") -> int:
    """Also log to a rotating file. Returns the loguru sink id."""
    sink_id = logger.add(
        log_file,
        level=level,
        format=FILE_LOG_FORMAT,
        rotation="10 MB",
        retention="7 days",
    )
    logger.info(f"📄 Also logging to file: {log_file}")
    return sink_id


def handle_critical_error(error: BaseException, context: str = "") -> None:
    """
    Handle critical errors with optional trace logging.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
    """
    enable_trace = os.environ.get("LOGURU_LEVEL", "INFO") == "TRACE"

    if enable_trace:
        logger.trace("💥 TRACE MODE: Analyzing critical error with full context")
        logger.trace(f"Error context: {context}")
        logger.trace(f"Error type: {type(error).__name__}")
        logger.trace(f"Error args: {error.args}")
        logger.trace("Full traceback:")
        logger.trace("".join(traceback.format_exception(type(error), error, error.__traceback__)))

    logger.critical(f"💥 CRITICAL ERROR: {context}")
    logger.critical(f"Exception: {type(error).__name__}: {error}")

    if not enable_trace:
        logger.info("💡 For detailed debugging, run with --trace flag")


class ProcessingContext:
    """
    Context manager that handles the common processing infrastructure:
    configuration loading and failure logging.

    Usage:
        with ProcessingContext("Broadband Statistics") as ctx:
            datasets = load_datasets(ctx.config)
    """

    def __init__(self, process_name: str, config: Optional[Config] = None, exit_on_error: bool = True):
        """
        Initialize processing context.

        Args:
            process_name: Human-readable name for this processing task
            config: Already-loaded configuration; loaded from the default location when None
            exit_on_error: Whether to exit with status 1 on failure instead of re-raising
        """
        self.process_name = process_name
        self.exit_on_error = exit_on_error
        self.config = config

    def __enter__(self) -> "ProcessingContext":
        logger.info(f"🚀 {self.process_name}")
        logger.info("=" * (len(self.process_name) + 4))

        if self.config is None:
            try:
                self.config = Config()
            except (FileNotFoundError, ValueError) as e:
                logger.critical(f"❌ Configuration error: {e}")
                logger.info("💡 Make sure config.yaml exists in the ops directory")
                if self.exit_on_error:
                    sys.exit(1)
                raise

        logger.info(f"📋 Project: {self.config.get('project_name')}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.success(f"✅ {self.process_name} completed successfully!")
            return False

        if issubclass(exc_type, (SystemExit, KeyboardInterrupt)):
            return False

        handle_critical_error(exc_val, self.process_name)
        if self.exit_on_error:
            sys.exit(1)
        return False
