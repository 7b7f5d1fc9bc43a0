"""
HTTP clients for EdgeGrid Python SDK

This module provides the signing HTTP client and the stage pipeline it sends
requests through.
"""

from .edgegrid_client import (
    EdgeGridClient,
    ClientConfig,
    DEFAULT_REQUEST_TIMEOUT,
    create_client,
    normalize_base_url,
)

from .pipeline import (
    StagePipeline,
    Placement,
    SessionTransport,
    RedirectHandler,
    allow_redirects,
    http_errors,
    history,
)

from .handlers import (
    AuthenticationHandler,
    DebugHandler,
    VerboseHandler,
    MessageFormatter,
    log_middleware,
)

__all__ = [
    # Client
    'EdgeGridClient',
    'ClientConfig',
    'DEFAULT_REQUEST_TIMEOUT',
    'create_client',
    'normalize_base_url',
    # Pipeline
    'StagePipeline',
    'Placement',
    'SessionTransport',
    'RedirectHandler',
    'allow_redirects',
    'http_errors',
    'history',
    # Stages
    'AuthenticationHandler',
    'DebugHandler',
    'VerboseHandler',
    'MessageFormatter',
    'log_middleware',
]
