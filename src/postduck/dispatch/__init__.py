"""
Postduck Dispatch Module

Sends resolved requests and normalizes what comes back.

This module provides:
- Set-Cookie parsing
- Direct and local agent transports
- Transport failure classification
- The request dispatcher and the end-to-end executor
"""

from .cookies import parse_set_cookie, parse_cookies
from .failures import classify_transport_error, DeadlineExceeded, RequestCancelled
from .transports import DirectTransport, LocalAgentTransport, RawResponse, create_session
from .dispatcher import RequestDispatcher, normalize_response
from .executor import RequestExecutor, ExecutionResult

__all__ = [
    'parse_set_cookie',
    'parse_cookies',
    'classify_transport_error',
    'DeadlineExceeded',
    'RequestCancelled',
    'DirectTransport',
    'LocalAgentTransport',
    'RawResponse',
    'create_session',
    'RequestDispatcher',
    'normalize_response',
    'RequestExecutor',
    'ExecutionResult',
]
