"""
Canonical request construction for EG1-HMAC-SHA256 signatures

This module turns an outgoing HTTP request into the exact tab-separated
string that both client and server sign. Every function here is pure: the
timestamp and nonce arrive inside the ``auth_header`` argument and nothing is
read from shared state.
"""

import base64
import hashlib
import logging
from typing import Mapping, Optional, Sequence
from urllib.parse import urlsplit

from .types import (
    CanonicalRequest,
    HttpMethod,
    RequestBody,
    DEFAULT_MAX_BODY_SIZE,
    DEFAULT_SCHEME,
)
from .utils import collapse_whitespace, normalize_header_name

logger = logging.getLogger(__name__)


def canonical_scheme(url: str) -> str:
    """Return the lowercased URL scheme, ``https`` when the URL has none."""
    scheme = urlsplit(url).scheme
    return scheme.lower() if scheme else DEFAULT_SCHEME


def canonical_host(url: str) -> str:
    """
    Extract the host the request is sent to.

    Args:
        url: Absolute request URL

    Returns:
        str: ``host[:port]`` without user info or trailing slash
    """
    netloc = urlsplit(url).netloc
    return netloc.rpartition('@')[2].rstrip('/')


def canonical_path(url: str) -> str:
    """
    Extract path and query string without re-encoding either.

    Args:
        url: Absolute request URL

    Returns:
        str: Path (``/`` when empty) followed by ``?query`` when present
    """
    parts = urlsplit(url)
    path = parts.path or '/'
    if parts.query:
        path = f"{path}?{parts.query}"
    return path


def canonicalize_headers(
    headers: Optional[Mapping[str, str]],
    headers_to_sign: Sequence[str]
) -> str:
    """
    Build the canonical header block.

    Headers are emitted in ``headers_to_sign`` order as ``name:value`` with a
    lowercased name and whitespace-collapsed value. Names are matched
    case-insensitively; headers the request does not carry are skipped.

    Args:
        headers: Request headers
        headers_to_sign: Ordered header names that participate in the signature

    Returns:
        str: Tab-joined header block, empty when nothing is signed
    """
    if not headers or not headers_to_sign:
        return ""

    present = {normalize_header_name(name): value for name, value in headers.items()}

    lines = []
    for name in headers_to_sign:
        normalized = normalize_header_name(name)
        if normalized not in present:
            continue
        value = present[normalized]
        if isinstance(value, bytes):
            value = value.decode('latin-1')
        lines.append(f"{normalized}:{collapse_whitespace(str(value))}")

    return "\t".join(lines)


def read_body_prefix(body: RequestBody, limit: int) -> bytes:
    """
    Return at most ``limit`` bytes of a request body.

    File-like bodies are read from their current position, which is restored
    afterwards so the transport still sends the full body. Iterators cannot be
    peeked without being consumed and are treated as empty.

    Args:
        body: bytes, str, file-like object or None
        limit: Maximum number of bytes to return

    Returns:
        bytes: Body prefix
    """
    if body is None:
        return b""

    if isinstance(body, str):
        return body.encode('utf-8')[:limit]

    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body[:limit])

    if hasattr(body, 'read') and hasattr(body, 'seek') and hasattr(body, 'tell'):
        position = body.tell()
        try:
            chunk = body.read(limit)
        finally:
            body.seek(position)
        if isinstance(chunk, str):
            chunk = chunk.encode('utf-8')[:limit]
        return chunk or b""

    logger.warning(
        f"Cannot hash streamed request body of type {type(body).__name__}; "
        "signing with an empty content hash"
    )
    return b""


def content_hash(method: str, body: RequestBody, max_body_size: int = DEFAULT_MAX_BODY_SIZE) -> str:
    """
    Hash the request body for the canonical string.

    Only POST bodies are hashed; every other method yields an empty hash even
    when a body is present. Bodies longer than ``max_body_size`` are truncated.

    Args:
        method: HTTP method
        body: Request body
        max_body_size: Byte ceiling for hashing

    Returns:
        str: Base64 SHA-256 digest, or empty string
    """
    if method.upper() != HttpMethod.POST.value:
        return ""

    prefix = read_body_prefix(body, max_body_size)
    if not prefix:
        return ""

    digest = hashlib.sha256(prefix).digest()
    return base64.b64encode(digest).decode('ascii')


def canonicalize(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]],
    body: RequestBody,
    *,
    auth_header: str,
    headers_to_sign: Sequence[str] = (),
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
) -> CanonicalRequest:
    """
    Canonicalize a request.

    Args:
        method: HTTP method
        url: Absolute request URL as it will be sent
        headers: Request headers
        body: Request body
        auth_header: Authorization value without the signature field
        headers_to_sign: Ordered header names to include
        max_body_size: Byte ceiling for body hashing

    Returns:
        CanonicalRequest: Fields in signing order
    """
    return CanonicalRequest(
        method=method.upper(),
        scheme=canonical_scheme(url),
        host=canonical_host(url),
        path=canonical_path(url),
        headers=canonicalize_headers(headers, headers_to_sign),
        content_hash=content_hash(method, body, max_body_size),
        auth_header=auth_header,
    )
