"""
Shared fixtures for EdgeGrid SDK tests
"""

import io
import threading

import pytest
import requests

from edgegrid_sdk.signing import Credentials, EdgeGridSigner

TEST_TIMESTAMP = "20140321T19:34:21+0000"
TEST_NONCE = "nonce123"

REASONS = {
    200: "OK",
    201: "Created",
    301: "Moved Permanently",
    302: "Found",
    303: "See Other",
    307: "Temporary Redirect",
    308: "Permanent Redirect",
    400: "Bad Request",
    404: "Not Found",
    500: "Internal Server Error",
}


def build_response(status=200, body=b"", headers=None, url="https://example.com/", request=None):
    """Create a requests.Response without touching the network."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    response = requests.Response()
    response.status_code = status
    response.reason = REASONS.get(status, "")
    response._content = body
    response._content_consumed = True
    response.raw = io.BytesIO(body)
    response.headers.update(headers or {})
    response.url = url
    response.request = request
    response.encoding = "utf-8"
    return response


class FakeTransport:
    """Innermost handler returning queued responses and recording calls"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, request, options):
        with self._lock:
            self.calls.append((request, dict(options)))
            if self.responses:
                queued = self.responses.pop(0)
            else:
                queued = 200
        if isinstance(queued, Exception):
            raise queued
        if isinstance(queued, requests.Response):
            return queued
        if isinstance(queued, tuple):
            status, headers = queued
            return build_response(status, headers=headers, url=request.url, request=request)
        return build_response(queued, url=request.url, request=request)

    @property
    def requests(self):
        return [request for request, _ in self.calls]


@pytest.fixture
def make_response():
    return build_response


@pytest.fixture
def credentials():
    return Credentials(client_token="a", client_secret="b", access_token="c")


@pytest.fixture
def signer(credentials):
    return EdgeGridSigner(credentials=credentials)


@pytest.fixture
def edgerc_file(tmp_path):
    path = tmp_path / ".edgerc"
    path.write_text(
        "[default]\n"
        "client_secret = secret-default\n"
        "host = akab-default.luna.akamaiapis.net/\n"
        "access_token = akab-access-default\n"
        "client_token = akab-client-default\n"
        "max-body = 131072\n"
        "\n"
        "[papi]\n"
        "client_secret = secret-papi\n"
        "host = https://akab-papi.luna.akamaiapis.net\n"
        "access_token = akab-access-papi\n"
        "client_token = akab-client-papi\n"
        "headers_to_sign = X-Test-One, X-Test-Two\n"
        "\n"
        "[broken]\n"
        "client_secret = secret-broken\n"
        "host = akab-broken.luna.akamaiapis.net\n"
        "client_token = akab-client-broken\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def fake_transport():
    return FakeTransport
