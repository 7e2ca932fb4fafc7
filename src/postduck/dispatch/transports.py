"""
Postduck Transports

The two ways a request leaves the dispatcher:

- DirectTransport sends it with a requests Session under a hard deadline.
- LocalAgentTransport hands it to the companion agent on localhost, which
  can reach loopback targets a hosted server cannot.

Both run the blocking exchange on a worker thread (InFlightCall) so the
caller returns as soon as the deadline passes or the cancel event is set,
and the in-flight response is closed at that moment.
"""

import logging
import threading
import time
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from http.cookiejar import DefaultCookiePolicy
from typing import Any, Callable, List, Optional, Tuple

import requests

from ..request.models import ExecuteRequestParams, ExecuteResponse
from .failures import DeadlineExceeded, RequestCancelled

logger = logging.getLogger("postduck.dispatch")

CHUNK_SIZE = 16 * 1024
POLL_INTERVAL = 0.05  # seconds between deadline/cancel checks while waiting
AGENT_HEADROOM = 5.0  # agent enforces its own deadline upstream


@dataclass
class RawResponse:
    """Upstream response as read off the wire, before normalization."""

    status_code: int
    header_items: List[Tuple[str, str]] = field(default_factory=list)
    body: str = ""


def create_session() -> requests.Session:
    """
    Create the HTTP session shared by a dispatcher's transports.

    The cookie jar refuses every cookie: responses never feed later
    requests, and cookie auth travels only in the request's Cookie header.
    """
    session = requests.Session()
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return session


def _header_items(response: requests.Response) -> List[Tuple[str, str]]:
    """
    Return response headers as raw (name, value) pairs.

    urllib3 keeps repeated headers such as Set-Cookie as separate lines;
    requests' own header dict folds them together.
    """
    raw_headers = getattr(response.raw, 'headers', None)
    if raw_headers is not None and hasattr(raw_headers, 'iteritems'):
        return list(raw_headers.iteritems())
    return list(response.headers.items())


class InFlightCall:
    """
    One blocking HTTP exchange running on a worker thread.

    The exchange receives the call and registers its streamed response with
    attach(). abort() closes that response, tearing down the connection the
    worker is reading from; a response attached after abort() is closed on
    arrival.

    Example:
        call = InFlightCall(lambda call: fetch(call)).start()
        raw = call.wait(deadline, cancel_event)
    """

    def __init__(self, exchange: Callable[['InFlightCall'], Any]):
        self._exchange = exchange
        self._future: Future = Future()
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None
        self._aborted = False
        self._thread = threading.Thread(target=self._run, name='postduck-exchange', daemon=True)

    def start(self) -> 'InFlightCall':
        self._thread.start()
        return self

    def _run(self):
        try:
            result = self._exchange(self)
        except Exception as e:
            # Re-raised in the waiting thread by wait()
            self._future.set_exception(e)
        else:
            self._future.set_result(result)

    def attach(self, response: requests.Response):
        with self._lock:
            if not self._aborted:
                self._response = response
                return
        response.close()
        raise RequestCancelled()

    def abort(self):
        with self._lock:
            self._aborted = True
            response = self._response
        if response is not None:
            response.close()

    def wait(self, deadline: float, cancel_event: Optional[threading.Event] = None) -> Any:
        """
        Block until the exchange finishes, the deadline passes or the caller cancels.

        Raises:
            DeadlineExceeded: when the deadline passes first
            RequestCancelled: when cancel_event is set first
            Exception: whatever the exchange raised
        """
        while True:
            if cancel_event is not None and cancel_event.is_set():
                self.abort()
                raise RequestCancelled()

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.abort()
                raise DeadlineExceeded()

            done, _ = wait([self._future], timeout=min(POLL_INTERVAL, remaining))
            if done:
                return self._future.result()


class DirectTransport:
    """
    Send requests straight to the target with requests.

    The whole exchange, connect through the last body byte, runs under one
    wall-clock deadline. On expiry or cancellation the caller gets control
    back immediately and the response is closed, releasing its connection.

    Example:
        transport = DirectTransport(timeout=30)
        raw = transport.send('GET', 'https://api.example.com/users', {})
        print(raw.status_code)
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True
    ):
        """
        Initialize direct transport.

        Args:
            session: Shared HTTP session (create_session() if omitted)
            timeout: Hard timeout in seconds
            verify_ssl: Whether to verify TLS certificates
        """
        self.session = session or create_session()
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    @staticmethod
    def _check(deadline: float, cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelled()
        if time.monotonic() >= deadline:
            raise DeadlineExceeded()

    def send(
        self,
        method: str,
        url: str,
        headers: dict,
        data: Optional[Any] = None,
        files: Optional[list] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> RawResponse:
        """
        Send one request and read the full response body.

        Args:
            method: HTTP method
            url: Absolute target URL
            headers: Header map to send
            data: Encoded body (str or bytes), or None
            files: Multipart fields, or None
            cancel_event: Set by the caller to abort the request

        Returns:
            RawResponse with the decoded body

        Raises:
            requests.RequestException: on transport failures
            DeadlineExceeded: when the hard timeout passes
            RequestCancelled: when cancel_event is set
        """
        deadline = time.monotonic() + self.timeout
        self._check(deadline, cancel_event)

        if isinstance(data, str):
            data = data.encode('utf-8')

        def exchange(call: InFlightCall) -> RawResponse:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                data=data,
                files=files,
                timeout=self.timeout,
                verify=self.verify_ssl,
                allow_redirects=True,
                stream=True
            )
            call.attach(response)

            try:
                chunks = []
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    self._check(deadline, cancel_event)
                    chunks.append(chunk)

                return RawResponse(
                    status_code=response.status_code,
                    header_items=_header_items(response),
                    body=b''.join(chunks).decode('utf-8', errors='replace')
                )
            finally:
                response.close()

        return InFlightCall(exchange).start().wait(deadline, cancel_event)


class LocalAgentTransport:
    """
    Forward requests to the local companion agent.

    Example:
        agent = LocalAgentTransport('http://localhost:19199')
        if agent.is_available():
            response = agent.send(params)
    """

    def __init__(
        self,
        agent_url: str,
        session: Optional[requests.Session] = None,
        health_timeout: float = 1.0,
        timeout: float = 30.0
    ):
        """
        Initialize agent transport.

        Args:
            agent_url: Agent base URL, e.g. http://localhost:19199
            session: Shared HTTP session (create_session() if omitted)
            health_timeout: Timeout for the health probe, in seconds
            timeout: Upstream timeout the agent applies; the call to the
                     agent gets AGENT_HEADROOM seconds on top
        """
        self.agent_url = agent_url.rstrip('/')
        self.session = session or create_session()
        self.health_timeout = health_timeout
        self.timeout = timeout

    def is_available(self) -> bool:
        """Probe GET /health; any failure or non-2xx status means unavailable."""
        try:
            response = self.session.get(f"{self.agent_url}/health", timeout=self.health_timeout)
            return response.ok
        except requests.RequestException as e:
            logger.debug(f"Agent health check failed: {e}")
            return False

    def send(
        self,
        params: ExecuteRequestParams,
        cancel_event: Optional[threading.Event] = None
    ) -> ExecuteResponse:
        """
        POST the request to the agent's /proxy route.

        The agent answers with an ExecuteResponse body for success, upstream
        errors and its own validation failures alike. Setting cancel_event
        closes the connection to the agent and raises RequestCancelled.
        """
        timeout = self.timeout + AGENT_HEADROOM
        deadline = time.monotonic() + timeout

        def exchange(call: InFlightCall) -> ExecuteResponse:
            response = self.session.post(
                f"{self.agent_url}/proxy",
                json=params.to_dict(),
                timeout=timeout,
                stream=True
            )
            call.attach(response)
            try:
                return ExecuteResponse.from_dict(response.json())
            finally:
                response.close()

        return InFlightCall(exchange).start().wait(deadline, cancel_event)
