"""Observability package for logging."""

from portraitdex_core.observability.logging import (
    JsonFormatter,
    configure_logging,
)

__all__ = [
    "JsonFormatter",
    "configure_logging",
]
