"""
Utilities package for the Newswire pipeline.
"""

from .config.settings import Settings, get_settings
from .text_utils import (
    canonicalize_url,
    compute_content_hash,
    normalize_whitespace,
)

__all__ = [
    'Settings',
    'get_settings',
    'canonicalize_url',
    'compute_content_hash',
    'normalize_whitespace',
]
