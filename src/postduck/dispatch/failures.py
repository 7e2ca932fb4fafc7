"""
Postduck Transport Failure Classification

Converts exceptions raised while talking to the upstream server into
zero-status ExecuteResponse records with a human-readable diagnosis.
"""

import socket
import ssl
from typing import Iterator

import requests

from ..request.models import ExecuteResponse


class DeadlineExceeded(Exception):
    """The wall-clock deadline passed while the response was being read."""


class RequestCancelled(Exception):
    """The caller cancelled the request."""


DNS_MARKERS = ('Name or service not known', 'getaddrinfo', 'nodename nor servname', 'Failed to resolve', 'ENOTFOUND')
REFUSED_MARKERS = ('Connection refused', 'ECONNREFUSED')
TLS_MARKERS = ('certificate', 'SSL', 'TLS')


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    """
    Yield exc and every exception it wraps.

    requests wraps urllib3 errors in args, urllib3 keeps the socket error on
    .reason, and the socket error itself is chained via __cause__/__context__.
    """
    seen = set()
    queue = [exc]
    while queue:
        current = queue.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        queue.append(current.__cause__)
        queue.append(current.__context__)
        reason = getattr(current, 'reason', None)
        if isinstance(reason, BaseException):
            queue.append(reason)
        queue.extend(arg for arg in current.args if isinstance(arg, BaseException))


def _matches(exc: BaseException, types: tuple, markers: tuple) -> bool:
    for error in _error_chain(exc):
        if isinstance(error, types):
            return True
        message = str(error)
        if any(marker in message for marker in markers):
            return True
    return False


def _failure(message: str) -> ExecuteResponse:
    return ExecuteResponse.failure(message)


def classify_transport_error(
    exc: BaseException,
    url: str,
    method: str,
    timeout: float = 30
) -> ExecuteResponse:
    """
    Build the failure response for a transport exception.

    Categories are checked in order: cancellation, timeout, DNS resolution,
    connection refused, TLS, then a generic network failure carrying the raw
    error text.

    Args:
        exc: Exception raised by the transport
        url: Final URL that was being requested
        method: HTTP method
        timeout: Hard timeout in seconds, quoted in the timeout message

    Returns:
        ExecuteResponse with statusCode 0 and the diagnosis as body
    """
    details = f"URL: {url}\nMethod: {method}"

    if any(isinstance(error, RequestCancelled) for error in _error_chain(exc)):
        return _failure(
            f"Error: Request aborted.\n\n{details}\n\n"
            f"The request was cancelled before the response was fully received."
        )

    if _matches(exc, (requests.exceptions.Timeout, DeadlineExceeded, socket.timeout), ('timed out', 'timeout')):
        return _failure(
            f"Error: Request timeout after {int(timeout)} seconds.\n\n{details}\n\n"
            f"The server did not respond in time. This could indicate:\n"
            f"- The server is slow or overloaded\n"
            f"- Network connectivity issues\n"
            f"- The endpoint is not responding"
        )

    if _matches(exc, (socket.gaierror,), DNS_MARKERS):
        return _failure(
            f"Error: DNS resolution failed - could not resolve hostname.\n\n{details}\n\n"
            f"This means the domain name could not be resolved. Check:\n"
            f"- Is the URL correct?\n"
            f"- Is the domain name spelled correctly?\n"
            f"- Do you have internet connectivity?"
        )

    if _matches(exc, (ConnectionRefusedError,), REFUSED_MARKERS):
        return _failure(
            f"Error: Connection refused.\n\n{details}\n\n"
            f"The server refused the connection. This could mean:\n"
            f"- The server is not running\n"
            f"- The port is incorrect\n"
            f"- A firewall is blocking the connection"
        )

    if _matches(exc, (requests.exceptions.SSLError, ssl.SSLError), TLS_MARKERS):
        return _failure(
            f"Error: SSL/TLS certificate error.\n\n{details}\n\n"
            f"There was a problem with the SSL certificate. This could be:\n"
            f"- Self-signed certificate\n"
            f"- Expired certificate\n"
            f"- Certificate mismatch\n\n"
            f"Original error: {exc}"
        )

    return _failure(
        f"Error: Network request failed.\n\n{details}\n\n"
        f"Error details: {exc}\n\n"
        f"Possible causes:\n"
        f"- Invalid URL or unreachable server\n"
        f"- Network connectivity issues\n"
        f"- SSL/TLS certificate problems\n"
        f"- Server is down or unreachable"
    )
