"""
Postduck Errors

Exception hierarchy shared across Postduck modules.
"""

from typing import List, Optional


class PostduckError(Exception):
    """Base class for all Postduck errors."""


class ValidationError(PostduckError):
    """
    Request rejected before any network I/O.

    Raised for a missing or malformed URL and for unresolved {{variables}}.
    Dispatch surfaces map this to HTTP 400.
    """

    def __init__(self, message: str, url: Optional[str] = None, unresolved: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.url = url
        self.unresolved = unresolved or []


class PermissionDeniedError(PostduckError):
    """The caller's team role may not execute requests."""

    def __init__(self, role: Optional[str]):
        super().__init__(f"Role {role!r} is not permitted to execute requests")
        self.role = role


class CurlParseError(PostduckError):
    """A curl command could not be parsed."""


class PostmanParseError(PostduckError):
    """A Postman collection document is malformed."""


class NotFoundError(PostduckError):
    """A store lookup did not find the requested record."""
