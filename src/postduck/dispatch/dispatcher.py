"""
Postduck Request Dispatcher

Validates wire requests, picks a transport by target hostname, executes the
call under a hard timeout and normalizes the result into an ExecuteResponse.

Transport failures never escape dispatch(): they come back as zero-status
responses whose body explains what went wrong. Only validation problems are
raised, before any network I/O.
"""

import logging
import threading
import time
from dataclasses import replace
from typing import Optional

import requests

from ..common.config import PostduckConfig
from ..common.errors import ValidationError
from ..common.url_utils import (
    collapse_duplicate_slashes,
    get_hostname,
    is_absolute_url,
    is_loopback_url,
)
from ..common.utils import redact_headers
from ..request.models import ExecuteRequestParams, ExecuteResponse
from ..request.resolution import apply_query_auth, materialize_body
from ..request.variables import find_unresolved
from .cookies import parse_cookies
from .failures import DeadlineExceeded, RequestCancelled, classify_transport_error
from .transports import DirectTransport, LocalAgentTransport, RawResponse, create_session

logger = logging.getLogger("postduck.dispatch")

TRANSPORT_ERRORS = (requests.RequestException, DeadlineExceeded, RequestCancelled, OSError)


def normalize_response(raw: RawResponse, duration_ms: int) -> ExecuteResponse:
    """
    Build an ExecuteResponse from a raw upstream response.

    Headers keep the last value per name as returned; cookies come from every
    Set-Cookie line and are omitted when there are none.
    """
    headers = {}
    for name, value in raw.header_items:
        headers[name] = value

    cookies = parse_cookies(raw.header_items)

    return ExecuteResponse(
        status_code=raw.status_code,
        headers=headers,
        body=raw.body,
        duration=duration_ms,
        size=len(raw.body.encode('utf-8')),
        cookies=cookies or None
    )


def agent_unavailable_response(url: str, agent_url: str) -> ExecuteResponse:
    """Zero-status response returned when a loopback target has no agent to reach it."""
    return ExecuteResponse.failure(
        f"Error: Local agent is not running.\n\n"
        f"URL: {url}\n\n"
        f"{get_hostname(url)} is only reachable from your own machine, so this request "
        f"has to go through the Postduck agent.\n\n"
        f"Start it with:\n"
        f"  postduck agent\n\n"
        f"then send the request again. The agent listens on {agent_url}."
    )


class RequestDispatcher:
    """
    Execute wire requests through the direct or local agent transport.

    Example:
        dispatcher = RequestDispatcher(PostduckConfig())
        response = dispatcher.dispatch(ExecuteRequestParams(method='GET', url='https://api.example.com'))
        print(response.status_code, response.duration)
    """

    def __init__(
        self,
        config: Optional[PostduckConfig] = None,
        direct: Optional[DirectTransport] = None,
        agent: Optional[LocalAgentTransport] = None,
        prefer_direct: bool = False
    ):
        """
        Initialize dispatcher.

        Args:
            config: Timeouts, TLS and agent settings
            direct: Direct transport (built from config if omitted)
            agent: Local agent transport (built from config if omitted)
            prefer_direct: Never route through the agent; set by the agent itself
        """
        self.config = config or PostduckConfig()
        session = create_session()
        self.direct = direct or DirectTransport(
            session=session,
            timeout=self.config.request_timeout,
            verify_ssl=self.config.verify_ssl
        )
        self.agent = agent or LocalAgentTransport(
            self.config.agent_url,
            session=session,
            health_timeout=self.config.health_timeout,
            timeout=self.config.request_timeout
        )
        self.prefer_direct = prefer_direct

    def validate(self, params: ExecuteRequestParams) -> str:
        """
        Check a request before any network I/O.

        Returns:
            The trimmed URL

        Raises:
            ValidationError: missing URL, unresolved {{variables}} or a URL
                             that is not absolute http(s)
        """
        url = params.url.strip() if isinstance(params.url, str) else ''
        if not url:
            raise ValidationError("URL is required")

        unresolved = find_unresolved(url)
        if unresolved:
            raise ValidationError(
                f"Unresolved variables in URL: {', '.join(unresolved)}. "
                f"Please set these variables in your active environment.",
                url=url,
                unresolved=unresolved
            )

        if not is_absolute_url(url):
            raise ValidationError(
                f"Invalid URL format: {url}. "
                f"URL must be a valid absolute URL (e.g., https://example.com/api)",
                url=url
            )

        return url

    def dispatch(
        self,
        params: ExecuteRequestParams,
        cancel_event: Optional[threading.Event] = None
    ) -> ExecuteResponse:
        """
        Validate and execute one request.

        Loopback targets go through the local agent unless prefer_direct is
        set; everything else is sent directly.

        Args:
            params: Fully resolved wire request
            cancel_event: Set to abort the request; reported as aborted

        Returns:
            ExecuteResponse (statusCode 0 for transport failures)

        Raises:
            ValidationError: if the request is rejected before dispatch
        """
        url = self.validate(params)

        if not self.prefer_direct and is_loopback_url(url):
            return self._dispatch_via_agent(replace(params, url=url), cancel_event)

        return self._dispatch_direct(params, url, cancel_event)

    def _dispatch_via_agent(
        self,
        params: ExecuteRequestParams,
        cancel_event: Optional[threading.Event]
    ) -> ExecuteResponse:
        logger.debug(f"{params.method} {params.url} targets loopback, routing via agent {self.agent.agent_url}")

        if not self.agent.is_available():
            logger.warning(f"Local agent not reachable at {self.agent.agent_url}")
            return agent_unavailable_response(params.url, self.agent.agent_url)

        try:
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelled()
            return self.agent.send(params, cancel_event=cancel_event)
        except (TRANSPORT_ERRORS + (ValueError,)) as e:
            logger.warning(f"Agent dispatch failed for {params.method} {params.url}: {e}")
            return classify_transport_error(e, params.url, params.method, self.config.request_timeout)

    def _dispatch_direct(
        self,
        params: ExecuteRequestParams,
        url: str,
        cancel_event: Optional[threading.Event]
    ) -> ExecuteResponse:
        final_url = collapse_duplicate_slashes(url)
        final_url = apply_query_auth(final_url, params.auth_type, params.auth_config)
        if not is_absolute_url(final_url):
            raise ValidationError(
                f"Invalid URL after adding query parameters: {final_url}. "
                f"URL must be a valid absolute URL",
                url=final_url
            )

        body = materialize_body(
            params.body,
            params.headers,
            multipart=self.config.form_encoding == 'multipart'
        )

        logger.debug(f"{params.method} {final_url} direct, headers={redact_headers(body.headers)}")

        start = time.monotonic()
        try:
            raw = self.direct.send(
                params.method,
                final_url,
                body.headers,
                data=body.data,
                files=body.files,
                cancel_event=cancel_event
            )
        except TRANSPORT_ERRORS as e:
            logger.warning(f"{params.method} {final_url} failed: {type(e).__name__}: {e}")
            return classify_transport_error(e, final_url, params.method, self.config.request_timeout)

        duration_ms = int((time.monotonic() - start) * 1000)
        response = normalize_response(raw, duration_ms)
        logger.debug(f"{params.method} {final_url} → {response.status_code} ({duration_ms}ms, {response.size} bytes)")
        return response
