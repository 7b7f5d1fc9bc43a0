"""
Named, ordered request pipeline

A stage wraps the next handler and returns a new handler. Stages are kept in
a list ordered outermost first: the first stage sees the request first and
the response last, the last stage sits directly on top of the transport.

    pipeline = StagePipeline.create(SessionTransport(session))
    pipeline.push(history(transactions), 'history')
    pipeline.before('history', AuthenticationHandler(signer), 'authentication')
    response = pipeline.resolve()(prepared_request, {'timeout': 10})
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlsplit

import requests
from requests.exceptions import ChunkedEncodingError, ContentDecodingError
from requests.models import DEFAULT_REDIRECT_LIMIT, PreparedRequest, Response
from requests.utils import requote_uri

from ..exceptions import StageAnchorNotFound, ValidationError

logger = logging.getLogger(__name__)

Handler = Callable[[PreparedRequest, Dict[str, Any]], Response]
Stage = Callable[[Handler], Handler]

REDIRECT_CODES = (301, 302, 303, 307, 308)

# Options forwarded to requests.Session.send
TRANSPORT_OPTIONS = ('timeout', 'verify', 'proxies', 'stream', 'cert')


@dataclass(frozen=True)
class Placement:
    """
    Where to insert a stage relative to a named anchor

    ``StagePipeline.insert`` takes a priority list of placements and uses the
    first one whose anchor exists.
    """
    relation: str
    anchor: Optional[str] = None

    @classmethod
    def before(cls, anchor: str) -> 'Placement':
        return cls('before', anchor)

    @classmethod
    def after(cls, anchor: str) -> 'Placement':
        return cls('after', anchor)

    @classmethod
    def end(cls) -> 'Placement':
        return cls('end')

    @classmethod
    def start(cls) -> 'Placement':
        return cls('start')


class StagePipeline:
    """Thread-safe ordered collection of named stages around a transport handler"""

    def __init__(self, handler: Optional[Handler] = None):
        """
        Initialize an empty pipeline.

        Args:
            handler: Innermost handler that actually sends requests
        """
        self._handler = handler
        self._stages: List[Tuple[str, Stage]] = []
        self._lock = threading.RLock()

    @classmethod
    def create(cls, handler: Optional[Handler] = None) -> 'StagePipeline':
        """
        Create a pipeline with the default stages.

        Args:
            handler: Innermost transport handler

        Returns:
            StagePipeline: Pipeline holding ``http_errors`` and ``allow_redirects``
        """
        pipeline = cls(handler)
        pipeline.push(http_errors, 'http_errors')
        pipeline.push(allow_redirects, 'allow_redirects')
        return pipeline

    def set_handler(self, handler: Handler) -> None:
        """Replace the innermost transport handler."""
        with self._lock:
            self._handler = handler

    def has_handler(self) -> bool:
        return self._handler is not None

    def push(self, stage: Stage, name: str = '') -> None:
        """Add a stage directly above the transport (innermost)."""
        with self._lock:
            self._stages.append((name, stage))

    def unshift(self, stage: Stage, name: str = '') -> None:
        """Add a stage as the outermost stage."""
        with self._lock:
            self._stages.insert(0, (name, stage))

    def position_of(self, name: str) -> Optional[int]:
        """
        Find a stage by name.

        Returns:
            int or None: Index of the first stage with that name
        """
        with self._lock:
            for index, (stage_name, _) in enumerate(self._stages):
                if stage_name == name:
                    return index
        return None

    def has(self, name: str) -> bool:
        return self.position_of(name) is not None

    def names(self) -> List[str]:
        """Stage names, outermost first."""
        with self._lock:
            return [name for name, _ in self._stages]

    def get(self, name: str) -> Optional[Stage]:
        with self._lock:
            for stage_name, stage in self._stages:
                if stage_name == name:
                    return stage
        return None

    def before(self, anchor: str, stage: Stage, name: str = '') -> None:
        """
        Insert a stage just outside the anchor stage.

        Raises:
            StageAnchorNotFound: If no stage is named ``anchor``
        """
        with self._lock:
            index = self.position_of(anchor)
            if index is None:
                raise StageAnchorNotFound(anchor, {"stages": self.names()})
            self._stages.insert(index, (name, stage))

    def after(self, anchor: str, stage: Stage, name: str = '') -> None:
        """
        Insert a stage just inside the anchor stage.

        Raises:
            StageAnchorNotFound: If no stage is named ``anchor``
        """
        with self._lock:
            index = self.position_of(anchor)
            if index is None:
                raise StageAnchorNotFound(anchor, {"stages": self.names()})
            self._stages.insert(index + 1, (name, stage))

    def insert(self, stage: Stage, name: str, placements: Sequence[Placement]) -> int:
        """
        Insert a stage at the first placement whose anchor exists.

        Falls back to appending when no placement applies.

        Args:
            stage: Stage to insert
            name: Stage name
            placements: Placements in priority order

        Returns:
            int: Index the stage was inserted at
        """
        with self._lock:
            index = self._resolve_placement(placements)
            self._stages.insert(index, (name, stage))
            return index

    def _resolve_placement(self, placements: Sequence[Placement]) -> int:
        for placement in placements:
            if placement.relation == 'end':
                return len(self._stages)
            if placement.relation == 'start':
                return 0
            anchor_index = self.position_of(placement.anchor)
            if anchor_index is None:
                continue
            if placement.relation == 'before':
                return anchor_index
            if placement.relation == 'after':
                return anchor_index + 1
            raise ValidationError(f"Unknown placement relation: {placement.relation}")
        return len(self._stages)

    def remove(self, name: str) -> bool:
        """
        Remove every stage with the given name.

        Returns:
            bool: True if something was removed
        """
        with self._lock:
            before = len(self._stages)
            self._stages = [(n, s) for n, s in self._stages if n != name]
            return len(self._stages) != before

    def replace(self, name: str, stage: Stage) -> bool:
        """
        Swap the stage registered under ``name`` in place.

        Returns:
            bool: False if no stage has that name
        """
        with self._lock:
            index = self.position_of(name)
            if index is None:
                return False
            self._stages[index] = (name, stage)
            return True

    def resolve(self) -> Handler:
        """
        Compose the stages around the transport handler.

        Returns:
            Handler: Callable taking (request, options)

        Raises:
            ValidationError: If no transport handler is configured
        """
        with self._lock:
            if self._handler is None:
                raise ValidationError("No transport handler configured for pipeline")
            handler = self._handler
            for _, stage in reversed(self._stages):
                handler = stage(handler)
            return handler

    def __call__(self, request: PreparedRequest, options: Dict[str, Any]) -> Response:
        return self.resolve()(request, options)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._stages)

    def __repr__(self) -> str:
        return f"StagePipeline(stages={self.names()!r})"


class SessionTransport:
    """Innermost handler sending prepared requests through a requests.Session"""

    def __init__(self, session: requests.Session):
        self.session = session

    def __call__(self, request: PreparedRequest, options: Dict[str, Any]) -> Response:
        kwargs = {
            key: options[key]
            for key in TRANSPORT_OPTIONS
            if options.get(key) is not None
        }
        # redirects are followed by the allow_redirects stage
        return self.session.send(request, allow_redirects=False, **kwargs)


def http_errors(handler: Handler) -> Handler:
    """Raise ``requests.HTTPError`` for 4xx/5xx responses when the ``http_errors`` option is set."""
    def check_status(request: PreparedRequest, options: Dict[str, Any]) -> Response:
        response = handler(request, options)
        if options.get('http_errors'):
            response.raise_for_status()
        return response
    return check_status


class RedirectHandler:
    """
    Follow redirects by re-entering the inner handler

    Every hop runs through the stages inside ``allow_redirects`` again, so
    each redirected request is signed afresh.
    """

    def __init__(self, handler: Handler):
        self._handler = handler

    def __call__(self, request: PreparedRequest, options: Dict[str, Any]) -> Response:
        response = self._handler(request, options)
        if not options.get('allow_redirects', True):
            return response

        max_redirects = options.get('max_redirects', DEFAULT_REDIRECT_LIMIT)
        history: List[Response] = []

        while response.is_redirect:
            if len(history) >= max_redirects:
                raise requests.TooManyRedirects(
                    f"Exceeded {max_redirects} redirects.", response=response
                )

            next_request = self.redirect_request(request, response)
            self._release(response)
            history.append(response)

            logger.debug(f"Following {response.status_code} redirect to {next_request.url}")
            request = next_request
            response = self._handler(request, options)

        if history:
            response.history = history
        return response

    @staticmethod
    def _release(response: Response) -> None:
        try:
            response.content
        except (ChunkedEncodingError, ContentDecodingError, RuntimeError):
            response.raw.read(decode_content=False)
        response.close()

    @staticmethod
    def redirect_request(request: PreparedRequest, response: Response) -> PreparedRequest:
        """
        Build the request for the next hop.

        Args:
            request: Request that produced the redirect
            response: Redirect response

        Returns:
            PreparedRequest: Request to the ``Location`` target
        """
        location = response.headers['location']
        previous = urlsplit(request.url)
        if location.startswith('//'):
            location = f"{previous.scheme}:{location}"
        url = requote_uri(urljoin(request.url, location))

        next_request = request.copy()
        next_request.prepare_url(url, None)

        method = request.method.upper()
        if response.status_code == 303 and method != 'HEAD':
            method = 'GET'
        elif response.status_code in (301, 302) and method == 'POST':
            method = 'GET'
        next_request.method = method

        if response.status_code not in (307, 308):
            for header in ('Content-Length', 'Content-Type', 'Transfer-Encoding'):
                next_request.headers.pop(header, None)
            next_request.body = None

        # signatures belong to one hop only
        next_request.headers.pop('Authorization', None)
        if urlsplit(url).netloc != previous.netloc:
            next_request.headers.pop('Host', None)
            next_request.headers.pop('Cookie', None)

        return next_request


def allow_redirects(handler: Handler) -> Handler:
    """Stage following 3xx responses unless ``allow_redirects`` is false."""
    return RedirectHandler(handler)


def history(container: List[Dict[str, Any]]) -> Stage:
    """
    Create a stage that records every transaction passing through it.

    Args:
        container: List receiving ``{'request', 'response', 'error', 'options'}`` dicts

    Returns:
        Stage: History stage
    """
    def stage(handler: Handler) -> Handler:
        def record(request: PreparedRequest, options: Dict[str, Any]) -> Response:
            try:
                response = handler(request, options)
            except Exception as e:
                container.append({'request': request, 'response': None, 'error': e, 'options': options})
                raise
            container.append({'request': request, 'response': response, 'error': None, 'options': options})
            return response
        return record
    return stage
