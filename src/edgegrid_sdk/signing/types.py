"""
Type definitions for request signing functionality

This module provides the data classes shared by the canonicalizer and the
EG1-HMAC-SHA256 signer.
"""

from typing import Optional, Union, Any, IO
from dataclasses import dataclass
from enum import Enum

# Algorithm tag that prefixes every Authorization header value
AUTH_SCHEME = "EG1-HMAC-SHA256"

# Fixed-width UTC timestamp format used by the EG1 scheme
TIMESTAMP_FORMAT = "%Y%m%dT%H:%M:%S+0000"

DEFAULT_MAX_BODY_SIZE = 2048
DEFAULT_SCHEME = "https"


class HttpMethod(str, Enum):
    """HTTP methods known to the signer"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


@dataclass(frozen=True)
class Credentials:
    """
    Provider-issued signing credentials

    Attributes:
        client_token: Client token identifying the API client
        client_secret: Shared secret used to derive signing keys
        access_token: Access token identifying the grant
        host: Optional API host the credentials belong to
    """
    client_token: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    host: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """True when every field required for signing is present"""
        return bool(self.client_token and self.client_secret and self.access_token)

    def missing_fields(self):
        """Names of required fields that are empty"""
        return [
            name for name in ("client_token", "client_secret", "access_token")
            if not getattr(self, name)
        ]

    def with_host(self, host: Optional[str]) -> 'Credentials':
        """Return a copy bound to another host"""
        return Credentials(
            client_token=self.client_token,
            client_secret=self.client_secret,
            access_token=self.access_token,
            host=host,
        )

    def __repr__(self) -> str:
        secret = "***" if self.client_secret else None
        return (
            f"Credentials(client_token={self.client_token!r}, client_secret={secret!r}, "
            f"access_token={self.access_token!r}, host={self.host!r})"
        )


@dataclass(frozen=True)
class CanonicalRequest:
    """
    Canonical form of a request, computed per signing operation

    Attributes:
        method: Uppercased HTTP method
        scheme: URL scheme (https unless the URL says otherwise)
        host: Request host without trailing slash
        path: Path and query string exactly as sent
        headers: Canonicalized header block (tab separated)
        content_hash: Base64 SHA-256 of the (truncated) POST body, or empty
        auth_header: Authorization value prefix without the signature
    """
    method: str
    scheme: str
    host: str
    path: str
    headers: str
    content_hash: str
    auth_header: str

    def to_string(self) -> str:
        """Join all fields with tabs to form the string that gets signed"""
        return "\t".join((
            self.method,
            self.scheme,
            self.host,
            self.path,
            self.headers,
            self.content_hash,
            self.auth_header,
        ))

    def __str__(self) -> str:
        return self.to_string()


# Type aliases for convenience
RequestBody = Union[str, bytes, IO[bytes], Any, None]
