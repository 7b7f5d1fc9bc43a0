"""
Utility functions for request signing

This module provides helpers for EG1 request signing, including nonce
generation, timestamp formatting and validation, header normalization and
query string handling.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union
from urllib.parse import urlsplit, urlunsplit

from ..exceptions import InvalidTimestampFormat, InvalidCredentialEncoding
from .types import TIMESTAMP_FORMAT

_TIMESTAMP_PATTERN = re.compile(r'^\d{8}T\d{2}:\d{2}:\d{2}\+0000$')
_WHITESPACE = re.compile(r'\s+')
# Characters that would break the `name=value;` layout of the auth header
_UNSAFE_HEADER_VALUE = re.compile(r'[\s;]')

QueryPairs = List[Tuple[str, Optional[str]]]


def generate_nonce() -> str:
    """
    Generate a UUID v4 nonce for replay protection.

    Returns:
        str: UUID v4 string for use as nonce
    """
    return str(uuid.uuid4())


def generate_timestamp() -> str:
    """
    Generate the current UTC time in EG1 format.

    Returns:
        str: Timestamp such as ``20140321T19:34:21+0000``
    """
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def format_timestamp(value: Union[str, datetime, None] = None) -> str:
    """
    Render a timestamp in the fixed-width EG1 format.

    Args:
        value: Preformatted string, datetime (naive values are taken as UTC)
            or None for the current time

    Returns:
        str: Formatted timestamp

    Raises:
        InvalidTimestampFormat: If the value cannot be represented
    """
    if value is None:
        return generate_timestamp()

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
        except (ValueError, OverflowError) as e:
            raise InvalidTimestampFormat(
                f"Cannot format timestamp: {e}",
                details={"timestamp": repr(value)}
            )

    if isinstance(value, str):
        if not validate_timestamp(value):
            raise InvalidTimestampFormat(
                f"Timestamp must match YYYYMMDDTHH:MM:SS+0000, got {value!r}",
                details={"timestamp": value}
            )
        return value

    raise InvalidTimestampFormat(
        f"Unsupported timestamp type: {type(value).__name__}",
        details={"timestamp_type": type(value).__name__}
    )


def validate_timestamp(timestamp: str) -> bool:
    """
    Validate an EG1 timestamp string.

    Args:
        timestamp: Timestamp string to validate

    Returns:
        bool: True if the string is fixed-width and names a real UTC instant
    """
    if not isinstance(timestamp, str) or not _TIMESTAMP_PATTERN.match(timestamp):
        return False

    try:
        datetime.strptime(timestamp[:-5], TIMESTAMP_FORMAT[:-5])
    except ValueError:
        return False
    return True


def validate_header_token(name: str, value: Optional[str]) -> str:
    """
    Check that a credential or nonce can be written into the auth header.

    Args:
        name: Field name, used in the error message
        value: Field value

    Returns:
        str: The unchanged value

    Raises:
        InvalidCredentialEncoding: If the value is not ASCII or contains
            whitespace or ``;``
    """
    if not isinstance(value, str):
        raise InvalidCredentialEncoding(
            f"{name} must be a string, got {type(value).__name__}",
            details={"field": name}
        )

    try:
        value.encode('ascii')
    except UnicodeEncodeError:
        raise InvalidCredentialEncoding(
            f"{name} must be ASCII",
            details={"field": name}
        )

    if _UNSAFE_HEADER_VALUE.search(value):
        raise InvalidCredentialEncoding(
            f"{name} must not contain whitespace or ';'",
            details={"field": name}
        )

    return value


def normalize_header_name(name: str) -> str:
    """
    Normalize header name to lowercase for consistent processing.

    Args:
        name: Header name to normalize

    Returns:
        str: Lowercase header name
    """
    return name.strip().lower()


def collapse_whitespace(value: str) -> str:
    """Trim a header value and collapse internal whitespace runs to one space."""
    return _WHITESPACE.sub(' ', value.strip())


def normalize_host(host: str) -> str:
    """
    Strip scheme and trailing slashes from a configured host.

    Args:
        host: Host such as ``akab-xxx.luna.akamaiapis.net/`` or a full URL

    Returns:
        str: Bare host (with port, if any)
    """
    host = host.strip()
    if '://' in host:
        host = urlsplit(host).netloc
    return host.rstrip('/')


def split_query(url: str) -> Tuple[str, QueryPairs]:
    """
    Split the query string off a URL.

    The pairs keep the caller's percent-encoding untouched so the query can be
    handed back to the transport byte-for-byte.

    Args:
        url: URL or path, possibly with a query string

    Returns:
        tuple: URL without query (fragment dropped) and ordered raw
            ``(name, value)`` pairs; ``value`` is None for bare names
    """
    parts = urlsplit(url)
    if not parts.query:
        return url, []

    pairs: QueryPairs = []
    for item in parts.query.split('&'):
        if not item:
            continue
        name, sep, value = item.partition('=')
        pairs.append((name, value if sep else None))

    base = urlunsplit((parts.scheme, parts.netloc, parts.path, '', ''))
    return base, pairs


def join_query(pairs: QueryPairs) -> str:
    """Rebuild a raw query string from ``split_query`` pairs."""
    return '&'.join(
        name if value is None else f"{name}={value}"
        for name, value in pairs
    )
