"""
EdgeGrid Python SDK - Request Signing Module

EG1-HMAC-SHA256 request signing: canonical request construction, signing key
derivation and Authorization header assembly.
"""

from .types import (
    Credentials,
    CanonicalRequest,
    HttpMethod,
    AUTH_SCHEME,
    TIMESTAMP_FORMAT,
    DEFAULT_MAX_BODY_SIZE,
)

from .canonical_request import (
    canonicalize,
    canonicalize_headers,
    canonical_path,
    content_hash,
)

from .eg1_signer import (
    EdgeGridSigner,
    build_auth_header,
    canonical_request,
    create_from_credentials_file,
    create_signer,
    make_signature,
    make_signing_key,
    sign,
)

from .utils import (
    generate_nonce,
    generate_timestamp,
    format_timestamp,
    validate_timestamp,
    split_query,
    join_query,
)

# Public API exports
__all__ = [
    # Types
    'Credentials',
    'CanonicalRequest',
    'HttpMethod',
    'AUTH_SCHEME',
    'TIMESTAMP_FORMAT',
    'DEFAULT_MAX_BODY_SIZE',
    # Canonicalization
    'canonicalize',
    'canonicalize_headers',
    'canonical_path',
    'content_hash',
    # Signing
    'EdgeGridSigner',
    'build_auth_header',
    'canonical_request',
    'create_from_credentials_file',
    'create_signer',
    'make_signature',
    'make_signing_key',
    'sign',
    # Utilities
    'generate_nonce',
    'generate_timestamp',
    'format_timestamp',
    'validate_timestamp',
    'split_query',
    'join_query',
]
