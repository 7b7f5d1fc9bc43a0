"""
EG1-HMAC-SHA256 request signer

This module derives the per-timestamp signing key, signs the canonical
request and assembles the Authorization header value. The module-level
functions are pure; ``EdgeGridSigner`` only holds static configuration
(credentials, headers to sign, max body size) and generates a fresh
timestamp and nonce inside each call that does not supply them.
"""

import base64
import logging
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence, Tuple, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import hmac as crypto_hmac

from ..exceptions import MissingCredentials, InvalidCredentialEncoding, ValidationError
from .types import (
    AUTH_SCHEME,
    DEFAULT_MAX_BODY_SIZE,
    CanonicalRequest,
    Credentials,
    RequestBody,
)
from .canonical_request import canonicalize
from .utils import (
    format_timestamp,
    generate_nonce,
    normalize_host,
    validate_header_token,
)

logger = logging.getLogger(__name__)

TimestampValue = Union[str, datetime, None]


def _hmac_sha256_b64(key: bytes, message: bytes) -> str:
    h = crypto_hmac.HMAC(key, hashes.SHA256())
    h.update(message)
    return base64.b64encode(h.finalize()).decode('ascii')


def _encode(name: str, value: str) -> bytes:
    try:
        return value.encode('utf-8')
    except (AttributeError, UnicodeEncodeError) as e:
        raise InvalidCredentialEncoding(
            f"Cannot encode {name}: {e}",
            details={"field": name}
        )


def make_signing_key(client_secret: str, timestamp: str) -> str:
    """
    Derive the signing key for one timestamp.

    Args:
        client_secret: Shared client secret
        timestamp: EG1 formatted timestamp

    Returns:
        str: Base64 HMAC-SHA256 of the timestamp keyed by the secret
    """
    return _hmac_sha256_b64(
        _encode("client_secret", client_secret),
        _encode("timestamp", timestamp),
    )


def make_signature(signing_key: str, canonical_string: str) -> str:
    """
    Sign a canonical string.

    The key is the base64 text produced by ``make_signing_key``, used as-is.

    Args:
        signing_key: Derived signing key
        canonical_string: Tab-separated canonical request

    Returns:
        str: Base64 HMAC-SHA256 signature
    """
    return _hmac_sha256_b64(
        _encode("signing_key", signing_key),
        _encode("canonical_string", canonical_string),
    )


def build_auth_header(
    credentials: Credentials,
    timestamp: str,
    nonce: str,
    signature: Optional[str] = None
) -> str:
    """
    Assemble the Authorization header value.

    Without a signature the result ends with the ``;`` that follows the
    nonce; this prefix is the last field of the canonical string.

    Args:
        credentials: Signing credentials
        timestamp: EG1 formatted timestamp
        nonce: Request nonce
        signature: Signature to append, if already computed

    Returns:
        str: Header value
    """
    header = (
        f"{AUTH_SCHEME} "
        f"client_token={credentials.client_token};"
        f"access_token={credentials.access_token};"
        f"timestamp={timestamp};"
        f"nonce={nonce};"
    )
    if signature is not None:
        header += f"signature={signature}"
    return header


def _check_credentials(credentials: Optional[Credentials]) -> Credentials:
    if credentials is None or not credentials.is_complete:
        missing = credentials.missing_fields() if credentials else ["client_token", "client_secret", "access_token"]
        raise MissingCredentials(
            "Credentials must be set before signing requests",
            details={"missing": missing}
        )
    validate_header_token("client_token", credentials.client_token)
    validate_header_token("access_token", credentials.access_token)
    if not isinstance(credentials.client_secret, str):
        raise InvalidCredentialEncoding(
            "client_secret must be a string",
            details={"field": "client_secret"}
        )
    return credentials


def canonical_request(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]],
    body: RequestBody,
    credentials: Credentials,
    *,
    timestamp: TimestampValue,
    nonce: str,
    headers_to_sign: Sequence[str] = (),
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
) -> CanonicalRequest:
    """
    Build the canonical request for explicit signing inputs.

    Raises:
        MissingCredentials: If credentials are incomplete
        InvalidTimestampFormat: If the timestamp cannot be formatted
        InvalidCredentialEncoding: If a token or the nonce cannot be encoded
    """
    credentials = _check_credentials(credentials)
    timestamp = format_timestamp(timestamp)
    nonce = validate_header_token("nonce", nonce)

    return canonicalize(
        method,
        url,
        headers,
        body,
        auth_header=build_auth_header(credentials, timestamp, nonce),
        headers_to_sign=headers_to_sign,
        max_body_size=max_body_size,
    )


def sign(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]],
    body: RequestBody,
    credentials: Credentials,
    *,
    timestamp: TimestampValue,
    nonce: str,
    headers_to_sign: Sequence[str] = (),
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
) -> str:
    """
    Compute the Authorization header value for a request.

    Identical inputs always produce an identical result.

    Args:
        method: HTTP method
        url: Absolute request URL as it will be sent
        headers: Request headers
        body: Request body
        credentials: Signing credentials
        timestamp: EG1 timestamp string or datetime
        nonce: Request nonce
        headers_to_sign: Ordered header names to include
        max_body_size: Byte ceiling for body hashing

    Returns:
        str: ``EG1-HMAC-SHA256 client_token=...;signature=...``

    Raises:
        MissingCredentials: If credentials are incomplete
        InvalidTimestampFormat: If the timestamp cannot be formatted
        InvalidCredentialEncoding: If a token, secret or nonce cannot be encoded
    """
    timestamp = format_timestamp(timestamp)
    canonical = canonical_request(
        method,
        url,
        headers,
        body,
        credentials,
        timestamp=timestamp,
        nonce=nonce,
        headers_to_sign=headers_to_sign,
        max_body_size=max_body_size,
    )

    signing_key = make_signing_key(credentials.client_secret, timestamp)
    signature = make_signature(signing_key, canonical.to_string())

    return canonical.auth_header + f"signature={signature}"


class EdgeGridSigner:
    """
    Credential store and signer for EG1-HMAC-SHA256

    The signer only keeps configuration that is fixed between requests.
    Timestamp and nonce are call arguments, so one instance can sign
    concurrent requests without them observing each other's values.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        headers_to_sign: Iterable[str] = (),
        max_body_size: int = DEFAULT_MAX_BODY_SIZE
    ):
        """
        Initialize the signer.

        Args:
            credentials: Optional credentials; ``set_auth`` can supply them later
            headers_to_sign: Ordered header names to include in signatures
            max_body_size: Byte ceiling for body hashing

        Raises:
            ValidationError: If max_body_size is invalid
        """
        self._credentials = credentials or Credentials()
        self._headers_to_sign: Tuple[str, ...] = tuple(headers_to_sign)
        self._max_body_size = DEFAULT_MAX_BODY_SIZE
        self.set_max_body_size(max_body_size)

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def headers_to_sign(self) -> Tuple[str, ...]:
        return self._headers_to_sign

    @property
    def max_body_size(self) -> int:
        return self._max_body_size

    @property
    def host(self) -> Optional[str]:
        return self._credentials.host

    def set_auth(self, client_token: str, client_secret: str, access_token: str) -> 'EdgeGridSigner':
        """
        Store signing credentials, replacing any previous ones.

        Args:
            client_token: Client token
            client_secret: Client secret
            access_token: Access token

        Returns:
            EdgeGridSigner: self, for chaining

        Raises:
            ValidationError: If any value is empty
        """
        values = {
            "client_token": client_token,
            "client_secret": client_secret,
            "access_token": access_token,
        }
        empty = [name for name, value in values.items() if not value]
        if empty:
            raise ValidationError(
                f"Credential values cannot be empty: {', '.join(empty)}",
                details={"empty": empty}
            )

        self._credentials = Credentials(
            client_token=client_token,
            client_secret=client_secret,
            access_token=access_token,
            host=self._credentials.host,
        )
        logger.info(f"Configured credentials for client token: {client_token}")
        return self

    def set_headers_to_sign(self, headers: Iterable[str]) -> 'EdgeGridSigner':
        """Replace the ordered list of header names included in signatures."""
        if isinstance(headers, str):
            headers = [headers]
        self._headers_to_sign = tuple(headers)
        return self

    def set_max_body_size(self, max_body_size: int) -> 'EdgeGridSigner':
        """
        Set the byte ceiling for body hashing.

        Raises:
            ValidationError: If the value is not a positive integer
        """
        if isinstance(max_body_size, bool) or not isinstance(max_body_size, int) or max_body_size <= 0:
            raise ValidationError(
                f"Max body size must be a positive integer, got {max_body_size!r}",
                details={"max_body_size": max_body_size}
            )
        self._max_body_size = max_body_size
        return self

    def set_host(self, host: Optional[str]) -> 'EdgeGridSigner':
        """Record the API host the credentials belong to."""
        self._credentials = self._credentials.with_host(normalize_host(host) if host else None)
        return self

    def canonical_request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: RequestBody = None,
        timestamp: TimestampValue = None,
        nonce: Optional[str] = None
    ) -> CanonicalRequest:
        """Build the canonical request this signer would sign."""
        return canonical_request(
            method,
            url,
            headers,
            body,
            self._credentials,
            timestamp=format_timestamp(timestamp),
            nonce=nonce or generate_nonce(),
            headers_to_sign=self._headers_to_sign,
            max_body_size=self._max_body_size,
        )

    def sign(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: RequestBody = None,
        timestamp: TimestampValue = None,
        nonce: Optional[str] = None
    ) -> str:
        """
        Sign a request described by its parts.

        Args:
            method: HTTP method
            url: Absolute request URL
            headers: Request headers
            body: Request body
            timestamp: Explicit timestamp, generated when omitted
            nonce: Explicit nonce, generated when omitted

        Returns:
            str: Authorization header value
        """
        # both generated here, per call, never stored on the instance
        timestamp = format_timestamp(timestamp)
        nonce = nonce or generate_nonce()
        credentials = self._credentials

        header = sign(
            method,
            url,
            headers,
            body,
            credentials,
            timestamp=timestamp,
            nonce=nonce,
            headers_to_sign=self._headers_to_sign,
            max_body_size=self._max_body_size,
        )
        logger.debug(f"Signed {method.upper()} {url} (timestamp={timestamp}, nonce={nonce})")
        return header

    def sign_request(
        self,
        request,
        timestamp: TimestampValue = None,
        nonce: Optional[str] = None
    ) -> str:
        """
        Sign a prepared request.

        Args:
            request: ``requests.PreparedRequest`` (or any object with
                method, url, headers and body attributes)
            timestamp: Explicit timestamp, generated when omitted
            nonce: Explicit nonce, generated when omitted

        Returns:
            str: Authorization header value
        """
        return self.sign(
            request.method,
            request.url,
            request.headers,
            request.body,
            timestamp=timestamp,
            nonce=nonce,
        )

    @classmethod
    def create_from_edgerc(
        cls,
        section: str = "default",
        path: Optional[str] = None
    ) -> 'EdgeGridSigner':
        """
        Create a signer from a ``.edgerc`` credential file.

        Args:
            section: Section name
            path: Explicit file path; the default locations are searched otherwise

        Returns:
            EdgeGridSigner: Configured signer, ``host`` set from the section

        Raises:
            MissingCredentials: If the file, section or a required key is missing
        """
        from ..config.edgerc import load_edgerc

        entry = load_edgerc(section, path)
        signer = cls(
            credentials=entry.credentials,
            headers_to_sign=entry.headers_to_sign,
            max_body_size=entry.max_body_size,
        )
        logger.info(f"Loaded credentials from section [{section}] of {entry.path}")
        return signer

    def __repr__(self) -> str:
        return (
            f"EdgeGridSigner(credentials={self._credentials!r}, "
            f"headers_to_sign={list(self._headers_to_sign)!r}, max_body_size={self._max_body_size})"
        )


def create_signer(
    client_token: Optional[str] = None,
    client_secret: Optional[str] = None,
    access_token: Optional[str] = None,
    **kwargs
) -> EdgeGridSigner:
    """
    Create a new signer, optionally with credentials.

    Args:
        client_token: Client token
        client_secret: Client secret
        access_token: Access token
        **kwargs: ``headers_to_sign`` / ``max_body_size``

    Returns:
        EdgeGridSigner: Configured signer
    """
    signer = EdgeGridSigner(**kwargs)
    if client_token or client_secret or access_token:
        signer.set_auth(client_token, client_secret, access_token)
    return signer


def create_from_credentials_file(
    section: str = "default",
    path: Optional[str] = None
) -> Tuple[EdgeGridSigner, Optional[str]]:
    """
    Create a signer from a credential file.

    Returns:
        tuple: Signer and the API host named in the section (may be None)
    """
    signer = EdgeGridSigner.create_from_edgerc(section, path)
    return signer, signer.host
