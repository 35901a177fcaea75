# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Logging helpers for the oxbind logger hierarchy."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "oxbind"

# Library code never configures handlers on import; applications opt in via
# configure_logging().
logging.getLogger(_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str | None = None) -> logging.Logger:
	"""Return a module-scoped logger under the oxbind hierarchy."""
	full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
	return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False, log_file: Path | None = None) -> logging.Logger:
	"""Attach console (and optional file) handlers to the oxbind logger."""
	level = logging.DEBUG if verbose else logging.INFO
	logger = logging.getLogger(_LOGGER_NAME)
	logger.setLevel(level)
	logger.propagate = False

	# Reset handlers so repeated configuration does not duplicate output.
	for handler in list(logger.handlers):
		logger.removeHandler(handler)

	stream_handler = logging.StreamHandler()
	stream_handler.setLevel(level)
	stream_handler.setFormatter(logging.Formatter("[oxbind] %(levelname)s %(message)s"))
	logger.addHandler(stream_handler)

	if log_file is not None:
		file_handler = logging.FileHandler(log_file, encoding="utf-8")
		file_handler.setLevel(level)
		file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
		logger.addHandler(file_handler)

	return logger


__all__ = ["configure_logging", "get_logger"]
