"""
Configuration management for EdgeGrid Python SDK

This module loads signing credentials from ``.edgerc`` files.
"""

from .edgerc import (
    EdgeRcSection,
    DEFAULT_SECTION,
    EDGERC_ENV_VAR,
    default_edgerc_paths,
    find_edgerc,
    load_edgerc,
)

__all__ = [
    'EdgeRcSection',
    'DEFAULT_SECTION',
    'EDGERC_ENV_VAR',
    'default_edgerc_paths',
    'find_edgerc',
    'load_edgerc',
]
