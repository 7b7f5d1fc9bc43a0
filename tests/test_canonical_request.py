"""
Unit tests for canonical request construction
"""

import base64
import hashlib
import io
import logging

import pytest

from edgegrid_sdk.signing import canonicalize, canonicalize_headers, canonical_path, content_hash
from edgegrid_sdk.signing.canonical_request import canonical_host, canonical_scheme, read_body_prefix
from edgegrid_sdk.signing.utils import (
    collapse_whitespace,
    join_query,
    normalize_host,
    split_query,
    validate_header_token,
)
from edgegrid_sdk.exceptions import InvalidCredentialEncoding


def b64_sha256(data: bytes) -> str:
    return base64.b64encode(hashlib.sha256(data).digest()).decode()


class TestUrlParts:
    """Test scheme, host and path extraction"""

    def test_scheme(self):
        """Test scheme is lowercased"""
        assert canonical_scheme("HTTPS://example.com/") == "https"
        assert canonical_scheme("http://example.com/") == "http"

    def test_host(self):
        """Test host keeps the port and drops user info"""
        assert canonical_host("https://example.com/v1") == "example.com"
        assert canonical_host("https://user:pw@example.com:8443/v1") == "example.com:8443"

    def test_path_defaults_to_root(self):
        """Test an empty path becomes /"""
        assert canonical_path("https://example.com") == "/"

    def test_path_keeps_query_encoding(self):
        """Test the query is kept exactly as given"""
        url = "https://example.com/v1/x?b=2&a=%2F&flag&c=a%20b"
        assert canonical_path(url) == "/v1/x?b=2&a=%2F&flag&c=a%20b"

    def test_path_drops_fragment(self):
        """Test fragments are never signed"""
        assert canonical_path("https://example.com/v1?a=1#frag") == "/v1?a=1"


class TestCanonicalizeHeaders:
    """Test header block construction"""

    def test_order_follows_headers_to_sign(self):
        """Test header order follows the configured list"""
        headers = {"X-B": "2", "X-A": "1"}
        assert canonicalize_headers(headers, ["X-A", "X-B"]) == "x-a:1\tx-b:2"
        assert canonicalize_headers(headers, ["x-b", "x-a"]) == "x-b:2\tx-a:1"

    def test_values_are_collapsed(self):
        """Test whitespace in values is trimmed and collapsed"""
        headers = {"X-A": "  a \t  b  c "}
        assert canonicalize_headers(headers, ["X-A"]) == "x-a:a b c"

    def test_absent_headers_skipped(self):
        """Test listed headers missing from the request"""
        assert canonicalize_headers({"X-A": "1"}, ["X-Missing", "X-A"]) == "x-a:1"

    def test_empty(self):
        """Test nothing to sign yields an empty block"""
        assert canonicalize_headers({"X-A": "1"}, []) == ""
        assert canonicalize_headers(None, ["X-A"]) == ""


class TestContentHash:
    """Test body hashing"""

    def test_post_only(self):
        """Test only POST bodies are hashed"""
        assert content_hash("POST", b"hello") == b64_sha256(b"hello")
        assert content_hash("post", "hello") == b64_sha256(b"hello")
        assert content_hash("PUT", b"hello") == ""

    def test_empty_body(self):
        """Test empty POST bodies produce no hash"""
        assert content_hash("POST", b"") == ""
        assert content_hash("POST", None) == ""

    def test_truncation(self):
        """Test bodies are truncated to the limit"""
        body = b"a" * 5000
        assert content_hash("POST", body) == b64_sha256(body[:2048])
        assert content_hash("POST", body, max_body_size=100) == b64_sha256(body[:100])

    def test_file_body_position_restored(self):
        """Test file-like bodies can still be sent after hashing"""
        body = io.BytesIO(b"abcdef")
        assert content_hash("POST", body, max_body_size=3) == b64_sha256(b"abc")
        assert body.tell() == 0
        assert body.read() == b"abcdef"

    def test_iterator_body(self, caplog):
        """Test generators hash as empty and are not consumed"""
        chunks = iter([b"a", b"b"])
        with caplog.at_level(logging.WARNING):
            assert read_body_prefix(chunks, 10) == b""
        assert next(chunks) == b"a"
        assert "Cannot hash streamed request body" in caplog.text


class TestCanonicalize:
    """Test the full canonical request"""

    def test_fields(self):
        """Test all seven fields in order"""
        canonical = canonicalize(
            "post",
            "https://example.com/v1/x?a=1",
            {"X-A": "1"},
            b"body",
            auth_header="EG1-HMAC-SHA256 client_token=a;",
            headers_to_sign=["X-A"],
        )
        assert canonical.to_string() == "\t".join([
            "POST",
            "https",
            "example.com",
            "/v1/x?a=1",
            "x-a:1",
            b64_sha256(b"body"),
            "EG1-HMAC-SHA256 client_token=a;",
        ])


class TestQueryHelpers:
    """Test raw query splitting"""

    def test_split_and_join(self):
        """Test pairs keep their encoding"""
        base, pairs = split_query("https://example.com/v1/x?b=2&a=%2F&flag&empty=")
        assert base == "https://example.com/v1/x"
        assert pairs == [("b", "2"), ("a", "%2F"), ("flag", None), ("empty", "")]
        assert join_query(pairs) == "b=2&a=%2F&flag&empty="

    def test_no_query(self):
        """Test URLs without query are returned unchanged"""
        assert split_query("/v1/x") == ("/v1/x", [])

    def test_relative(self):
        """Test relative URLs"""
        assert split_query("/v1/x?a=1") == ("/v1/x", [("a", "1")])


class TestHelpers:
    """Test small normalization helpers"""

    def test_collapse_whitespace(self):
        assert collapse_whitespace("  a   b\t\tc ") == "a b c"

    def test_normalize_host(self):
        """Test scheme and trailing slash are stripped"""
        assert normalize_host("akab-x.luna.akamaiapis.net/") == "akab-x.luna.akamaiapis.net"
        assert normalize_host("https://akab-x.luna.akamaiapis.net/") == "akab-x.luna.akamaiapis.net"

    def test_validate_header_token(self):
        assert validate_header_token("nonce", "abc-123") == "abc-123"
        with pytest.raises(InvalidCredentialEncoding):
            validate_header_token("nonce", None)
