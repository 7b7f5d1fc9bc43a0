"""
Pipeline stages for signing, debug/verbose echo and request logging

Each stage leaves the request and response untouched apart from its own side
effect: the authentication stage attaches the Authorization header, the debug
and verbose stages write summaries to their streams and the log stage emits
one formatted line per request.
"""

import io
import json
import logging
import re
import socket
import sys
from datetime import datetime, timezone
from typing import Any, Dict, IO, Optional, Tuple, Union
from urllib.parse import urlsplit

from requests.models import PreparedRequest, Response

from ..signing.eg1_signer import EdgeGridSigner
from .pipeline import Handler, Stage

logger = logging.getLogger(__name__)

StreamSetting = Union[bool, IO, None]
VerboseSetting = Union[bool, IO, Tuple[Optional[IO], Optional[IO]], None]


def write_to_stream(stream: IO, text: str) -> None:
    """Write text to a text or binary stream and flush it."""
    if isinstance(stream, (io.RawIOBase, io.BufferedIOBase)) or 'b' in getattr(stream, 'mode', ''):
        stream.write(text.encode('utf-8'))
    else:
        stream.write(text)
    if hasattr(stream, 'flush'):
        stream.flush()


def format_body(body: Any) -> str:
    """
    Render a request or response body for humans.

    JSON is pretty-printed with four-space indentation; other text is returned
    as-is and binary or streamed content is summarized.
    """
    if body is None:
        return ""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode('utf-8')
        except UnicodeDecodeError:
            return f"<{len(body)} bytes of binary data>"
    if not isinstance(body, str):
        return f"<streamed body: {type(body).__name__}>"

    text = body.strip()
    if not text:
        return ""
    try:
        return json.dumps(json.loads(text), indent=4, ensure_ascii=False)
    except ValueError:
        return text


class AuthenticationHandler:
    """
    Stage that signs each outgoing request

    Per-request ``timestamp`` and ``nonce`` options are passed straight to the
    signer; when absent the signer generates fresh values for that call only.
    """

    def __init__(self, signer: EdgeGridSigner):
        self.signer = signer

    def __call__(self, handler: Handler) -> Handler:
        def sign_then_send(request: PreparedRequest, options: Dict[str, Any]) -> Response:
            signed = request.copy()
            signed.headers['Authorization'] = self.signer.sign_request(
                signed,
                timestamp=options.get('timestamp'),
                nonce=options.get('nonce'),
            )
            return handler(signed, options)
        return sign_then_send


class DebugHandler:
    """
    Stage that reports failed requests to a stream

    Writes a summary of every 4xx/5xx response and every transport error.
    The per-request ``debug`` option may disable the echo (False), use the
    default stream (True) or name another stream.
    """

    def __init__(self, stream: Optional[IO] = None):
        """
        Args:
            stream: Destination; ``sys.stderr`` (looked up at write time) when None
        """
        self.stream = stream

    def resolve_stream(self, options: Dict[str, Any]) -> Optional[IO]:
        setting = options.get('debug', True)
        if setting is False or setting is None:
            return None
        if setting is True:
            return self.stream or sys.stderr
        return setting

    def __call__(self, handler: Handler) -> Handler:
        def echo_errors(request: PreparedRequest, options: Dict[str, Any]) -> Response:
            stream = self.resolve_stream(options)
            try:
                response = handler(request, options)
            except Exception as e:
                if stream is not None:
                    write_to_stream(stream, f"===> [ERROR] An error occurred: {e}\n")
                raise

            if stream is not None and response.status_code >= 400:
                body = format_body(response.content) or "No response body returned"
                write_to_stream(
                    stream,
                    f"===> [ERROR] Call to {request.method} {request.url} failed with a "
                    f"{response.status_code} {response.reason} response\n"
                    f"<=== [ERROR] Response Status: {response.status_code}\n"
                    f"<=== [ERROR] Response Body:\n{body}\n"
                )
            return response
        return echo_errors


class VerboseHandler:
    """
    Stage that echoes requests and responses

    Request summaries and successful responses go to the output stream;
    error responses and transport errors go to the error stream. The
    per-request ``verbose`` option may disable the echo (False), use the
    defaults (True), name one stream for both, or give an ``(output, error)``
    pair.
    """

    def __init__(self, output_stream: Optional[IO] = None, error_stream: Optional[IO] = None):
        self.output_stream = output_stream
        self.error_stream = error_stream

    def resolve_streams(self, options: Dict[str, Any]) -> Optional[Tuple[IO, IO]]:
        setting = options.get('verbose', True)
        if setting is False or setting is None:
            return None
        if setting is True:
            return (self.output_stream or sys.stdout, self.error_stream or sys.stderr)
        if isinstance(setting, (tuple, list)):
            output, error = setting
            return (output or sys.stdout, error or sys.stderr)
        return (setting, setting)

    def __call__(self, handler: Handler) -> Handler:
        def echo(request: PreparedRequest, options: Dict[str, Any]) -> Response:
            streams = self.resolve_streams(options)
            if streams is None:
                return handler(request, options)
            output, error = streams

            write_to_stream(output, f"===> [VERBOSE] Request: {request.method} {request.url}\n")
            request_body = format_body(request.body)
            if request_body:
                write_to_stream(output, f"===> [VERBOSE] Request Body:\n{request_body}\n")

            try:
                response = handler(request, options)
            except Exception as e:
                write_to_stream(error, f"<=== [ERROR] An error occurred: {e}\n")
                raise

            body = format_body(response.content) or "No response body returned"
            if response.status_code >= 400:
                write_to_stream(
                    error,
                    f"<=== [ERROR] Response: {response.status_code} {response.reason}\n{body}\n"
                )
            else:
                write_to_stream(
                    output,
                    f"<=== [VERBOSE] Response: {response.status_code} {response.reason}\n{body}\n"
                )
            return response
        return echo


class MessageFormatter:
    """
    Formats a request/response pair from a template

    Placeholders are written as ``{name}``; unknown placeholders render as an
    empty string. ``{req_header_<Name>}`` and ``{res_header_<Name>}`` expand
    to a single header value.
    """

    CLF = '{hostname} {req_header_User-Agent} - [{date_common_log}] "{method} {target} HTTP/{version}" {code} {res_header_Content-Length}'
    DEBUG = ">>>>>>>>\n{request}\n<<<<<<<<\n{response}\n--------\n{error}"
    SHORT = '[{ts}] "{method} {target} HTTP/{version}" {code}'

    _PLACEHOLDER = re.compile(r'\{\s*([A-Za-z0-9_\-./]+)\s*\}')

    def __init__(self, template: str = CLF):
        self.template = template

    def format(
        self,
        request: PreparedRequest,
        response: Optional[Response] = None,
        error: Optional[BaseException] = None
    ) -> str:
        """
        Render the template.

        Args:
            request: Sent request
            response: Received response, if any
            error: Error raised while sending, if any

        Returns:
            str: Formatted message
        """
        now = datetime.now(timezone.utc)

        def replace(match: 're.Match') -> str:
            return self._value(match.group(1), request, response, error, now)

        return self._PLACEHOLDER.sub(replace, self.template)

    def _value(
        self,
        name: str,
        request: PreparedRequest,
        response: Optional[Response],
        error: Optional[BaseException],
        now: datetime
    ) -> str:
        if name.startswith('req_header_'):
            return request.headers.get(name[len('req_header_'):], '')
        if name.startswith('res_header_'):
            return response.headers.get(name[len('res_header_'):], '') if response is not None else ''

        if name == 'request':
            return _request_text(request)
        if name == 'response':
            return _response_text(response) if response is not None else ''
        if name == 'req_headers':
            return _headers_text(request.headers)
        if name == 'res_headers':
            return _headers_text(response.headers) if response is not None else ''
        if name == 'req_body':
            return format_body(request.body)
        if name == 'res_body':
            return response.text if response is not None else ''
        if name in ('ts', 'date_iso_8601'):
            return now.strftime('%Y-%m-%dT%H:%M:%S+00:00')
        if name == 'date_common_log':
            return now.strftime('%d/%b/%Y:%H:%M:%S +0000')
        if name == 'method':
            return request.method or ''
        if name in ('version', 'req_version', 'res_version'):
            return '1.1'
        if name in ('uri', 'url'):
            return request.url or ''
        if name == 'target':
            return request.path_url
        if name == 'host':
            return request.headers.get('Host') or _netloc(request.url)
        if name == 'hostname':
            return socket.gethostname()
        if name == 'code':
            return str(response.status_code) if response is not None else 'NULL'
        if name == 'phrase':
            return (response.reason or '') if response is not None else ''
        if name == 'error':
            return str(error) if error is not None else 'NULL'
        return ''


def _netloc(url: Optional[str]) -> str:
    return urlsplit(url or '').netloc


def _headers_text(headers) -> str:
    return "\r\n".join(f"{name}: {value}" for name, value in headers.items())


def _request_text(request: PreparedRequest) -> str:
    head = f"{request.method} {request.path_url} HTTP/1.1\r\n{_headers_text(request.headers)}"
    return f"{head}\r\n\r\n{format_body(request.body)}"


def _response_text(response: Response) -> str:
    head = f"HTTP/1.1 {response.status_code} {response.reason or ''}\r\n{_headers_text(response.headers)}"
    return f"{head}\r\n\r\n{response.text}"


def log_middleware(
    log: logging.Logger,
    formatter: Optional[MessageFormatter] = None,
    level: int = logging.INFO
) -> Stage:
    """
    Create a stage logging one formatted line per request.

    Transport errors are logged at ERROR level and re-raised.

    Args:
        log: Destination logger
        formatter: Message formatter (CLF when None)
        level: Level used for completed requests

    Returns:
        Stage: Logging stage
    """
    formatter = formatter or MessageFormatter()

    def stage(handler: Handler) -> Handler:
        def log_request(request: PreparedRequest, options: Dict[str, Any]) -> Response:
            try:
                response = handler(request, options)
            except Exception as e:
                log.error(formatter.format(request, getattr(e, 'response', None), e))
                raise
            log.log(level, formatter.format(request, response))
            return response
        return log_request
    return stage
