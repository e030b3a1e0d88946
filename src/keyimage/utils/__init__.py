"""Utility functions for keyimage."""

from .logging import configure_logging, get_logger
from .fonts import load_font, measure_text

__all__ = [
    "configure_logging",
    "get_logger",
    "load_font",
    "measure_text",
]
