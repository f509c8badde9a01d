import logging
import os
import traceback
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(level: Optional[int] = None, fmt: Optional[str] = None) -> None:
	"""Configure root logging once. Subsequent calls are no-ops.
	The level defaults to LOG_LEVEL from the environment, then INFO.
	"""
	if logging.getLogger().handlers:
		return
	if level is None:
		level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
	logging.basicConfig(level=level, format=fmt or DEFAULT_FORMAT)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name, after ensuring logging is configured."""
	setup_logging()
	return logging.getLogger(name) if name else logging.getLogger(__name__)


def log_banner(logger: logging.Logger, title: str, width: int = 60) -> None:
	"""Log a title framed by rule lines, used between migration phases."""
	logger.info("=" * width)
	logger.info(f"   {title}")
	logger.info("=" * width)


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
	"""Centralized exception logging with full traceback.

	Args:
		logger: Logger instance to use
		message: Custom error message to log before the traceback
		exc_info: Exception instance (if None, uses current exception context)
	"""
	logger.error(message)
	if exc_info is not None:
		logger.error(f"Exception type: {type(exc_info).__name__}")
		logger.error(f"Exception message: {str(exc_info)}")
	logger.error("Full traceback:")
	logger.error(traceback.format_exc())
