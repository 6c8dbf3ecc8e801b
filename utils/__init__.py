"""
Utility modules for the property marketplace engine.
"""

from .formatting import format_currency, truncate
from .config import Config

__all__ = ["format_currency", "truncate", "Config"]
