# crawler/factories/__init__.py
"""
Factory package for the Newswire pipeline.
Builds source records from configuration and holds the source registry.
"""

from .config_loader import SourceConfigLoader, validate_source_data
from .source_registry import SourceRegistry

__all__ = [
    'SourceConfigLoader',
    'validate_source_data',
    'SourceRegistry'
]
