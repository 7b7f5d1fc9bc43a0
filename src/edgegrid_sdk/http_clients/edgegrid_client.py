"""
EdgeGrid HTTP client with automatic request signing

This module provides the request dispatcher: it wraps a ``requests.Session``,
threads every request through a named stage pipeline and makes sure the
authentication stage (plus optional debug, verbose and log stages) sits at
the right place in that pipeline.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, IO, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlencode, urljoin, urlsplit

import requests
from requests.models import DEFAULT_REDIRECT_LIMIT, PreparedRequest, Response

from ..exceptions import ValidationError
from ..signing.eg1_signer import EdgeGridSigner
from ..signing.utils import join_query, split_query
from ..version import __version__
from .handlers import (
    AuthenticationHandler,
    DebugHandler,
    MessageFormatter,
    StreamSetting,
    VerboseHandler,
    VerboseSetting,
    log_middleware,
)
from .pipeline import Handler, Placement, SessionTransport, Stage, StagePipeline

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10

AUTHENTICATION_STAGE = 'authentication'
DEBUG_STAGE = 'debug'
VERBOSE_STAGE = 'verbose'
LOGGER_STAGE = 'logger'

AUTHENTICATION_PLACEMENTS = (Placement.before('history'), Placement.end())
ECHO_PLACEMENTS = (Placement.after('allow_redirects'), Placement.end())
LOGGER_PLACEMENTS = (Placement.after('history'), Placement.before('allow_redirects'), Placement.end())

# Request keywords consumed while building the PreparedRequest
REQUEST_BUILD_OPTIONS = ('headers', 'data', 'json', 'files', 'params', 'cookies', 'auth')

# Seconds, or a (connect, read) pair as accepted by requests
Timeout = Union[float, Tuple[Optional[float], Optional[float]]]


def validate_timeout(timeout: Timeout) -> None:
    """
    Check a request timeout.

    Raises:
        ValidationError: If the timeout, or either part of a
            ``(connect, read)`` pair, is not positive
    """
    if isinstance(timeout, (tuple, list)):
        if len(timeout) != 2:
            raise ValidationError(
                "Timeout pair must be (connect, read)",
                details={"timeout": timeout}
            )
        parts = [part for part in timeout if part is not None]
    else:
        parts = [timeout]

    for part in parts:
        if part is None or isinstance(part, bool) or not isinstance(part, (int, float)) or part <= 0:
            raise ValidationError("Timeout must be positive", details={"timeout": timeout})


@dataclass
class ClientConfig:
    """EdgeGrid client configuration"""
    base_url: Optional[str] = None
    timeout: Timeout = DEFAULT_REQUEST_TIMEOUT
    verify_ssl: bool = True
    headers: Dict[str, str] = field(default_factory=dict)
    debug: StreamSetting = False
    verbose: VerboseSetting = False
    http_errors: bool = False
    max_redirects: int = DEFAULT_REDIRECT_LIMIT
    max_workers: Optional[int] = None
    user_agent: str = f"EdgeGrid-Python-SDK/{__version__}"

    def __post_init__(self):
        """Validate configuration"""
        if self.base_url:
            self.base_url = normalize_base_url(self.base_url)

        validate_timeout(self.timeout)

        if self.max_redirects < 0:
            raise ValidationError("Max redirects must be non-negative")

        if self.max_workers is not None and self.max_workers <= 0:
            raise ValidationError("Max workers must be positive")


def normalize_base_url(base_url: str) -> str:
    """
    Normalize a base URL or bare host.

    Hosts without a scheme get ``https://``; the result always ends with ``/``.

    Raises:
        ValidationError: If no host can be found
    """
    base_url = base_url.strip()
    if not base_url.startswith(('http://', 'https://')):
        base_url = f"https://{base_url}"
    if not urlsplit(base_url).netloc:
        raise ValidationError(f"Invalid base URL format: {base_url}")
    if not base_url.endswith('/'):
        base_url += '/'
    return base_url


def _resolve_debug(setting: StreamSetting) -> Tuple[bool, Optional[IO]]:
    if setting is None or setting is False:
        return False, None
    if setting is True:
        return True, None
    return True, setting


def _resolve_verbose(setting: VerboseSetting) -> Tuple[bool, Tuple[Optional[IO], Optional[IO]]]:
    if setting is None or setting is False:
        return False, (None, None)
    if setting is True:
        return True, (None, None)
    if isinstance(setting, (tuple, list)):
        output, error = setting
        return True, (output, error)
    return True, (setting, setting)


class EdgeGridClient:
    """
    HTTP client that signs every request with EG1-HMAC-SHA256

    The client composes a ``requests.Session`` rather than extending it.
    Requests travel through a ``StagePipeline``; the authentication stage is
    installed once per pipeline, before ``history`` when that stage exists
    and innermost otherwise.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        signer: Optional[EdgeGridSigner] = None,
        session: Optional[requests.Session] = None,
        pipeline: Optional[StagePipeline] = None,
        transport: Optional[Handler] = None
    ):
        """
        Initialize the client.

        Args:
            config: Client configuration
            signer: Signer holding the credentials; an empty one is created
                when omitted and must be configured with ``set_auth``
            session: Optional existing requests session to wrap
            pipeline: Optional stage pipeline; defaults to
                ``StagePipeline.create()``
            transport: Optional innermost handler; defaults to sending
                through the session
        """
        self.config = config or ClientConfig()
        self.signer = signer or EdgeGridSigner()
        self.session = session or requests.Session()
        self.session.headers['User-Agent'] = self.config.user_agent
        self.session.headers.update(self.config.headers)

        if self.signer.host and not self.config.base_url:
            self.config.base_url = normalize_base_url(self.signer.host)

        self.transport = transport or SessionTransport(self.session)
        self.pipeline = pipeline or StagePipeline.create(self.transport)
        if not self.pipeline.has_handler():
            self.pipeline.set_handler(self.transport)

        # resolved once; per-request options may still override
        self._debug_enabled, self._debug_stream = _resolve_debug(self.config.debug)
        self._verbose_enabled, self._verbose_streams = _resolve_verbose(self.config.verbose)

        self._authentication_handler = AuthenticationHandler(self.signer)
        self._debug_handler: Optional[DebugHandler] = None
        self._verbose_handler: Optional[VerboseHandler] = None
        self._log_stage: Optional[Stage] = None
        self._simple_log_handlers: List[logging.Handler] = []
        self._custom_logger = False

        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None

        self._install_authentication(self.pipeline)
        logger.debug(f"EdgeGrid client initialized for: {self.config.base_url}")

    # Credential configuration

    def set_auth(self, client_token: str, client_secret: str, access_token: str) -> 'EdgeGridClient':
        """Set signing credentials."""
        self.signer.set_auth(client_token, client_secret, access_token)
        return self

    def set_headers_to_sign(self, headers: Iterable[str]) -> 'EdgeGridClient':
        """Specify the headers included in the signature (most APIs use none)."""
        self.signer.set_headers_to_sign(headers)
        return self

    def set_max_body_size(self, max_body_size: int) -> 'EdgeGridClient':
        """Set the byte ceiling for body hashing."""
        self.signer.set_max_body_size(max_body_size)
        return self

    def set_host(self, host: str) -> 'EdgeGridClient':
        """
        Point the client at an API host.

        Args:
            host: Bare host (``akab-xxx.luna.akamaiapis.net``) or URL
        """
        self.signer.set_host(host)
        self.config.base_url = normalize_base_url(host.rstrip('/'))
        logger.info(f"Using API host: {self.config.base_url}")
        return self

    def set_timeout(self, timeout_in_seconds: Timeout) -> 'EdgeGridClient':
        """
        Set the HTTP request timeout.

        Raises:
            ValidationError: If the timeout is not positive
        """
        validate_timeout(timeout_in_seconds)
        self.config.timeout = timeout_in_seconds
        return self

    # Logging

    def set_logger(
        self,
        log: Optional[logging.Logger] = None,
        message_format: str = MessageFormatter.CLF,
        level: int = logging.INFO
    ) -> 'EdgeGridClient':
        """
        Log one line per request.

        Calling this again replaces the previous log stage.

        Args:
            log: Destination logger; a logger writing bare messages to stderr
                is used when None
            message_format: ``MessageFormatter`` template
            level: Level used for completed requests

        Returns:
            EdgeGridClient: self, for chaining
        """
        self._custom_logger = log is not None
        if log is None:
            log = logging.getLogger('edgegrid_sdk.http')
            if not log.handlers:
                handler = logging.StreamHandler()
                handler.setFormatter(logging.Formatter('%(message)s'))
                log.addHandler(handler)
                log.setLevel(logging.INFO)
                log.propagate = False

        with self._lock:
            self._log_stage = log_middleware(log, MessageFormatter(message_format), level)
            self._install_logger(self.pipeline)
        return self

    def set_simple_log(self, filename: str, message_format: str = "{code}") -> bool:
        """
        Log one line per request to a file.

        Args:
            filename: Log file path
            message_format: ``MessageFormatter`` template

        Returns:
            bool: False when a caller-supplied logger is already installed
                through ``set_logger``, True otherwise
        """
        if self._log_stage is not None and self._custom_logger:
            return False

        handler = logging.FileHandler(filename)
        handler.setFormatter(logging.Formatter('%(message)s'))
        log = logging.Logger('HTTP Log')
        log.setLevel(logging.INFO)
        log.addHandler(handler)

        self._close_simple_log()
        self._simple_log_handlers.append(handler)
        self.set_logger(log, message_format)
        self._custom_logger = False
        return True

    # Pipeline wiring

    def _install_authentication(self, pipeline: StagePipeline) -> None:
        with self._lock:
            if pipeline.has(AUTHENTICATION_STAGE):
                return
            pipeline.insert(self._authentication_handler, AUTHENTICATION_STAGE, AUTHENTICATION_PLACEMENTS)

    def _install_debug(self, pipeline: StagePipeline) -> None:
        with self._lock:
            if self._debug_handler is None:
                self._debug_handler = DebugHandler(self._debug_stream)
            if pipeline.has(DEBUG_STAGE):
                return
            pipeline.insert(self._debug_handler, DEBUG_STAGE, ECHO_PLACEMENTS)

    def _install_verbose(self, pipeline: StagePipeline) -> None:
        with self._lock:
            if self._verbose_handler is None:
                self._verbose_handler = VerboseHandler(*self._verbose_streams)
            if pipeline.has(VERBOSE_STAGE):
                return
            pipeline.insert(self._verbose_handler, VERBOSE_STAGE, ECHO_PLACEMENTS)

    def _install_logger(self, pipeline: StagePipeline) -> None:
        with self._lock:
            if self._log_stage is None:
                return
            pipeline.remove(LOGGER_STAGE)
            pipeline.insert(self._log_stage, LOGGER_STAGE, LOGGER_PLACEMENTS)

    def _pipeline_for(self, options: Dict[str, Any]) -> StagePipeline:
        pipeline = options.pop('pipeline', None)
        if pipeline is None:
            pipeline = self.pipeline
        else:
            if not pipeline.has_handler():
                pipeline.set_handler(self.transport)
            self._install_authentication(pipeline)
            if self._log_stage is not None and pipeline.get(LOGGER_STAGE) is not self._log_stage:
                self._install_logger(pipeline)

        if self._verbose_enabled or options.get('verbose'):
            self._install_verbose(pipeline)
        if self._debug_enabled or options.get('debug'):
            self._install_debug(pipeline)
        return pipeline

    # Requests

    def _merge_options(self, options: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(options)
        merged.setdefault('timeout', self.config.timeout)
        merged.setdefault('verify', self.config.verify_ssl)
        merged.setdefault('http_errors', self.config.http_errors)
        merged.setdefault('max_redirects', self.config.max_redirects)
        merged.setdefault('debug', self._debug_enabled)
        merged.setdefault('verbose', self._verbose_enabled)
        return merged

    def _build_url(self, url: str) -> str:
        if self.config.base_url and not urlsplit(url).netloc:
            return urljoin(self.config.base_url, url)
        if not urlsplit(url).scheme:
            raise ValidationError(
                f"Relative URL {url!r} requires a base URL or host",
                details={"url": url}
            )
        return url

    def prepare_request(self, method: str, url: str, options: Dict[str, Any]) -> PreparedRequest:
        """
        Build the prepared request for a call.

        The query string of ``url`` is split into raw ``(name, value)`` pairs
        and handed to the transport as parameters without re-encoding, so the path that is signed is the path sent.

        Args:
            method: HTTP method
            url: Absolute URL, or path relative to the base URL
            options: Request options; request-building keys are consumed

        Returns:
            PreparedRequest: Request ready for the pipeline
        """
        build = {key: options.pop(key) for key in REQUEST_BUILD_OPTIONS if key in options}

        url, query = split_query(self._build_url(url))
        raw_query = join_query(query)

        params = build.pop('params', None)
        if params:
            if isinstance(params, bytes):
                params = params.decode('utf-8')
            encoded = params if isinstance(params, str) else urlencode(params, doseq=True)
            raw_query = '&'.join(part for part in (raw_query, encoded) if part)

        request = requests.Request(
            method=method.upper(),
            url=url,
            params=raw_query or None,
            **build
        )
        return self.session.prepare_request(request)

    def request(self, method: str, url: str, **options) -> Response:
        """
        Send a signed request.

        Args:
            method: HTTP method
            url: Absolute URL, or path relative to the base URL
            **options: ``requests`` keywords (headers, params, data, json,
                files, cookies, timeout, verify, proxies, stream, cert,
                allow_redirects) plus ``timestamp``, ``nonce``, ``debug``,
                ``verbose``, ``http_errors``, ``max_redirects`` and
                ``pipeline``

        Returns:
            requests.Response: HTTP response

        Raises:
            MissingCredentials: If credentials were never set
            InvalidTimestampFormat: If an explicit timestamp is malformed
            InvalidCredentialEncoding: If a credential or nonce cannot be encoded
            requests.RequestException: On transport failures
        """
        options = self._merge_options(options)
        pipeline = self._pipeline_for(options)
        prepared = self.prepare_request(method, url, options)

        logger.debug(f"Dispatching {prepared.method} {prepared.url}")
        return pipeline.resolve()(prepared, options)

    def request_async(self, method: str, url: str, **options) -> 'Future[Response]':
        """
        Send a signed request on a worker thread.

        Each call is signed with its own timestamp and nonce.

        Returns:
            concurrent.futures.Future: Resolves to the response
        """
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.max_workers,
                    thread_name_prefix='edgegrid'
                )
            executor = self._executor
        return executor.submit(self.request, method, url, **options)

    def get(self, url: str, **kwargs) -> Response:
        """Make GET request."""
        return self.request('GET', url, **kwargs)

    def post(self, url: str, **kwargs) -> Response:
        """Make POST request."""
        return self.request('POST', url, **kwargs)

    def put(self, url: str, **kwargs) -> Response:
        """Make PUT request."""
        return self.request('PUT', url, **kwargs)

    def delete(self, url: str, **kwargs) -> Response:
        """Make DELETE request."""
        return self.request('DELETE', url, **kwargs)

    def patch(self, url: str, **kwargs) -> Response:
        """Make PATCH request."""
        return self.request('PATCH', url, **kwargs)

    def head(self, url: str, **kwargs) -> Response:
        """Make HEAD request."""
        kwargs.setdefault('allow_redirects', False)
        return self.request('HEAD', url, **kwargs)

    def options(self, url: str, **kwargs) -> Response:
        """Make OPTIONS request."""
        return self.request('OPTIONS', url, **kwargs)

    # Factories and lifecycle

    @classmethod
    def from_edgerc(
        cls,
        section: str = "default",
        path: Optional[str] = None,
        **config_kwargs
    ) -> 'EdgeGridClient':
        """
        Create a client from a ``.edgerc`` credential file.

        The section's host becomes the base URL.

        Args:
            section: Credential section to use
            path: Path to the credential file; ``$EDGERC``, the home
                directory and the working directory are searched when None
            **config_kwargs: Additional ``ClientConfig`` options

        Returns:
            EdgeGridClient: Configured client
        """
        signer = EdgeGridSigner.create_from_edgerc(section, path)
        if signer.host:
            config_kwargs['base_url'] = signer.host
        return cls(ClientConfig(**config_kwargs), signer=signer)

    def _close_simple_log(self) -> None:
        for handler in self._simple_log_handlers:
            handler.close()
        self._simple_log_handlers = []

    def close(self) -> None:
        """Close the session, worker threads and log files."""
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
        self._close_simple_log()
        self.session.close()
        logger.debug("EdgeGrid client closed")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()


def create_client(
    client_token: Optional[str] = None,
    client_secret: Optional[str] = None,
    access_token: Optional[str] = None,
    host: Optional[str] = None,
    **config_kwargs
) -> EdgeGridClient:
    """
    Create a client with credentials.

    Args:
        client_token: Client token
        client_secret: Client secret
        access_token: Access token
        host: API host
        **config_kwargs: Additional ``ClientConfig`` options

    Returns:
        EdgeGridClient: Configured client
    """
    if host:
        config_kwargs.setdefault('base_url', host)
    client = EdgeGridClient(ClientConfig(**config_kwargs))
    if client_token or client_secret or access_token:
        client.set_auth(client_token, client_secret, access_token)
    if host:
        client.signer.set_host(host)
    return client
