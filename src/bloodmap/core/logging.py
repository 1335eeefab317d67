"""
Logging configuration.

We use a YAML logging config (`src/bloodmap/config/logging.yaml`) and then apply
runtime overrides from settings (e.g., `BLOODMAP_LOG_LEVEL`).
"""

from __future__ import annotations

import logging.config

from bloodmap.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    """Configure the Python logging system based on packaged YAML config + settings."""
    settings = get_settings()
    config = get_logging_config()

    level = settings.app.log_level.upper()
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level
    for name, logger_cfg in config.get("loggers", {}).items():
        # Only our own package follows the app level; third-party loggers keep theirs.
        if name.startswith("bloodmap") and isinstance(logger_cfg, dict):
            logger_cfg["level"] = level

    logging.config.dictConfig(config)
