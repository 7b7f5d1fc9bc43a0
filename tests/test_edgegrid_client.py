"""
Unit tests for the EdgeGrid HTTP client
"""

import io
import logging
import re
from unittest.mock import Mock

import pytest
import requests

from edgegrid_sdk.exceptions import MissingCredentials, ValidationError
from edgegrid_sdk.http_clients import (
    ClientConfig,
    EdgeGridClient,
    StagePipeline,
    create_client,
    history,
)
from edgegrid_sdk.signing import sign

TIMESTAMP = "20140321T19:34:21+0000"
NONCE = "nonce123"


def nonce_of(request):
    return re.search(r"nonce=([^;]+);", request.headers["Authorization"]).group(1)


@pytest.fixture
def transport(fake_transport):
    return fake_transport()


@pytest.fixture
def client(signer, transport):
    client = EdgeGridClient(ClientConfig(base_url="example.com"), signer=signer, transport=transport)
    yield client
    client.close()


class TestClientConfig:
    """Test client configuration"""

    def test_defaults(self):
        config = ClientConfig()
        assert config.base_url is None
        assert config.timeout == 10
        assert config.verify_ssl is True
        assert config.http_errors is False

    def test_base_url_normalization(self):
        """Test bare hosts get a scheme and trailing slash"""
        assert ClientConfig(base_url="akab-x.luna.akamaiapis.net").base_url == "https://akab-x.luna.akamaiapis.net/"
        assert ClientConfig(base_url="http://localhost:8080").base_url == "http://localhost:8080/"

    def test_validation(self):
        with pytest.raises(ValidationError, match="Timeout must be positive"):
            ClientConfig(timeout=0)
        with pytest.raises(ValidationError, match="Max redirects must be non-negative"):
            ClientConfig(max_redirects=-1)

    def test_timeout_pair(self):
        """Test (connect, read) timeouts are accepted and each part is checked"""
        assert ClientConfig(timeout=(3.05, 27)).timeout == (3.05, 27)
        assert ClientConfig(timeout=(None, 5)).timeout == (None, 5)
        with pytest.raises(ValidationError, match="Timeout must be positive"):
            ClientConfig(timeout=(3, 0))
        with pytest.raises(ValidationError, match="Timeout pair"):
            ClientConfig(timeout=(1, 2, 3))


class TestPipelineWiring:
    """Test stage installation"""

    def test_authentication_appended_without_history(self, client):
        assert client.pipeline.names() == ["http_errors", "allow_redirects", "authentication"]

    def test_authentication_before_history(self, signer, transport):
        """Test a pipeline with history gets authentication just outside it"""
        pipeline = StagePipeline.create(transport)
        pipeline.push(history([]), "history")
        client = EdgeGridClient(signer=signer, pipeline=pipeline)
        assert pipeline.names() == ["http_errors", "allow_redirects", "authentication", "history"]
        client.close()

    def test_per_request_pipeline(self, client, transport):
        """Test a per-request pipeline receives authentication once"""
        transactions = []
        pipeline = StagePipeline.create()
        pipeline.push(history(transactions), "history")

        client.get("/v1/x", pipeline=pipeline)
        client.get("/v1/x", pipeline=pipeline)

        assert pipeline.names().count("authentication") == 1
        assert pipeline.position_of("authentication") == pipeline.position_of("history") - 1
        assert "Authorization" in transactions[0]["request"].headers
        assert len(transport.calls) == 2

    def test_debug_inserted_once(self, signer, transport):
        stream = io.StringIO()
        client = EdgeGridClient(ClientConfig(base_url="example.com", debug=stream), signer=signer, transport=transport)
        client.get("/a")
        client.get("/b")
        assert client.pipeline.names().count("debug") == 1
        assert client.pipeline.names() == ["http_errors", "allow_redirects", "debug", "authentication"]

    def test_verbose_inserted_once(self, signer, transport):
        output = io.StringIO()
        client = EdgeGridClient(
            ClientConfig(base_url="example.com", verbose=(output, output)),
            signer=signer,
            transport=transport,
        )
        client.get("/a")
        client.get("/b", verbose=True)
        assert client.pipeline.names().count("verbose") == 1
        assert output.getvalue().count("[VERBOSE] Request:") == 2


class TestRequests:
    """Test request dispatch"""

    def test_request_is_signed(self, client, transport, credentials):
        """Test the Authorization header is computed over the sent request"""
        client.post("/v1/x", data=b"payload", timestamp=TIMESTAMP, nonce=NONCE)

        sent = transport.requests[0]
        assert sent.url == "https://example.com/v1/x"
        assert sent.headers["Authorization"] == sign(
            "POST", sent.url, sent.headers, b"payload", credentials,
            timestamp=TIMESTAMP, nonce=NONCE,
        )

    def test_query_preserved(self, client, transport):
        """Test raw query strings reach the transport unchanged"""
        client.get("/v1/x?b=2&a=%2F&flag")
        sent, options = transport.calls[0]
        assert sent.url == "https://example.com/v1/x?b=2&a=%2F&flag"
        assert sent.path_url == "/v1/x?b=2&a=%2F&flag"
        assert "query" not in options

    def test_params_merged(self, client, transport):
        client.get("/v1/x?a=1", params={"b": "2"})
        assert transport.requests[0].url == "https://example.com/v1/x?a=1&b=2"

    def test_absolute_url(self, client, transport):
        client.get("https://other.example.net/v1")
        assert transport.requests[0].url == "https://other.example.net/v1"

    def test_relative_url_without_base(self, signer, transport):
        with pytest.raises(ValidationError):
            EdgeGridClient(signer=signer, transport=transport).get("/v1/x")

    def test_default_options(self, client, transport):
        """Test configuration defaults reach the transport"""
        client.get("/v1/x")
        client.get("/v1/x", timeout=2.5)
        assert transport.calls[0][1]["timeout"] == 10
        assert transport.calls[0][1]["verify"] is True
        assert transport.calls[1][1]["timeout"] == 2.5

    def test_missing_credentials(self, transport):
        client = EdgeGridClient(ClientConfig(base_url="example.com"), transport=transport)
        with pytest.raises(MissingCredentials):
            client.get("/v1/x")
        assert transport.calls == []

    def test_http_errors_option(self, signer, fake_transport):
        client = EdgeGridClient(
            ClientConfig(base_url="example.com", http_errors=True),
            signer=signer,
            transport=fake_transport(404, 404),
        )
        with pytest.raises(requests.HTTPError):
            client.get("/v1/x")
        assert client.get("/v1/x", http_errors=False).status_code == 404

    def test_redirect_resigned(self, signer, fake_transport):
        transport = fake_transport((302, {"Location": "/v2/y"}), 200)
        client = EdgeGridClient(ClientConfig(base_url="example.com"), signer=signer, transport=transport)
        response = client.get("/v1/x")

        assert response.status_code == 200
        assert transport.requests[1].url == "https://example.com/v2/y"
        assert nonce_of(transport.requests[0]) != nonce_of(transport.requests[1])

    def test_verb_helpers(self, client, transport):
        for name in ("get", "post", "put", "delete", "patch", "head", "options"):
            getattr(client, name)("/v1/x")
        assert [r.method for r in transport.requests] == ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

    def test_request_async(self, client, transport):
        """Test concurrent requests carry distinct nonces"""
        futures = [client.request_async("GET", f"/v1/{i}") for i in range(10)]
        responses = [future.result(timeout=10) for future in futures]

        assert all(response.status_code == 200 for response in responses)
        nonces = {nonce_of(request) for request in transport.requests}
        assert len(nonces) == 10


class TestObservers:
    """Test debug, verbose and logging options"""

    def test_per_request_debug(self, client):
        client.transport.responses.extend([500, 500])
        stream = io.StringIO()
        client.get("/v1/x", debug=stream)
        assert "[ERROR]" in stream.getvalue()

        before = stream.getvalue()
        client.get("/v1/x")
        assert stream.getvalue() == before

    def test_debug_disabled_per_request(self, signer, fake_transport):
        stream = io.StringIO()
        client = EdgeGridClient(
            ClientConfig(base_url="example.com", debug=stream),
            signer=signer,
            transport=fake_transport(500),
        )
        client.get("/v1/x", debug=False)
        assert stream.getvalue() == ""

    def test_set_logger_replaces(self, client):
        log = Mock(spec=logging.Logger)
        log.name = "custom"
        client.set_logger(log, "{method} {code}")
        client.set_logger(log, "{code}")
        assert client.pipeline.names() == ["http_errors", "logger", "allow_redirects", "authentication"]

        client.get("/v1/x")
        log.log.assert_called_once_with(logging.INFO, "200")

    def test_logger_after_history(self, signer, transport):
        pipeline = StagePipeline.create(transport)
        pipeline.push(history([]), "history")
        client = EdgeGridClient(signer=signer, pipeline=pipeline)
        log = Mock(spec=logging.Logger)
        log.name = "custom"
        client.set_logger(log)
        assert pipeline.names()[-1] == "logger"

    def test_simple_log(self, client, tmp_path):
        path = tmp_path / "http.log"
        assert client.set_simple_log(str(path)) is True
        client.get("/v1/x")
        client.close()
        assert path.read_text().strip() == "200"

    def test_simple_log_refused_with_custom_logger(self, client, tmp_path):
        log = Mock(spec=logging.Logger)
        log.name = "custom"
        client.set_logger(log)
        assert client.set_simple_log(str(tmp_path / "http.log")) is False


class TestConfiguration:
    """Test setters and factories"""

    def test_setters_delegate(self, client):
        client.set_auth("x", "y", "z").set_headers_to_sign(["X-A"]).set_max_body_size(512)
        assert client.signer.credentials.client_token == "x"
        assert client.signer.headers_to_sign == ("X-A",)
        assert client.signer.max_body_size == 512

    def test_set_host(self, client):
        client.set_host("akab-x.luna.akamaiapis.net/")
        assert client.config.base_url == "https://akab-x.luna.akamaiapis.net/"
        assert client.signer.host == "akab-x.luna.akamaiapis.net"

    def test_set_timeout(self, client):
        assert client.set_timeout(3).config.timeout == 3
        with pytest.raises(ValidationError):
            client.set_timeout(0)

    def test_set_timeout_pair(self, client, transport):
        """Test a (connect, read) timeout reaches the transport"""
        client.set_timeout((2, 10)).get("/v1/x")
        assert transport.calls[0][1]["timeout"] == (2, 10)
        with pytest.raises(ValidationError):
            client.set_timeout((0, 5))
        with pytest.raises(ValidationError):
            client.set_timeout("10")
        assert client.config.timeout == (2, 10)

    def test_from_edgerc(self, edgerc_file):
        client = EdgeGridClient.from_edgerc("default", str(edgerc_file), timeout=5)
        assert client.config.base_url == "https://akab-default.luna.akamaiapis.net/"
        assert client.config.timeout == 5
        assert client.signer.max_body_size == 131072
        client.close()

    def test_create_client(self):
        client = create_client("a", "b", "c", host="example.com")
        assert client.config.base_url == "https://example.com/"
        assert client.signer.credentials.is_complete
        client.close()

    def test_context_manager(self, signer):
        session = Mock(spec=requests.Session)
        session.headers = {}
        with EdgeGridClient(signer=signer, session=session) as client:
            assert client.session is session
        session.close.assert_called_once()

    def test_user_agent(self, client):
        assert client.session.headers["User-Agent"].startswith("EdgeGrid-Python-SDK/")
