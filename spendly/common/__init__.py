"""Common utilities for Spendly."""

from .logger import setup_logger

__all__ = ["setup_logger"]
