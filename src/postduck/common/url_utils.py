"""
Postduck URL Utilities

Shared URL parsing, encoding and normalization helpers.
"""

import re
from typing import Optional
from urllib.parse import quote, urlparse

LOOPBACK_HOSTS = ('localhost', '127.0.0.1', '::1')

# Characters JavaScript's encodeURIComponent leaves untouched
_URI_COMPONENT_SAFE = "-_.!~*'()"

_DUPLICATE_SLASHES = re.compile(r'([^:]/)/+')


def encode_uri_component(value: str) -> str:
    """Percent-encode a value the way encodeURIComponent does."""
    return quote(str(value), safe=_URI_COMPONENT_SAFE)


def is_absolute_url(url: str) -> bool:
    """
    Check that a URL is absolute and dispatchable.

    Args:
        url: URL to check

    Returns:
        True if the URL has an http(s) scheme and a host
    """
    try:
        parsed = urlparse(url)
        # Accessing port validates it (raises ValueError when out of range)
        parsed.port
    except ValueError:
        return False

    return parsed.scheme in ('http', 'https') and bool(parsed.hostname)


def get_hostname(url: str) -> Optional[str]:
    """Return the lowercased hostname of a URL, or None if it has none."""
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def is_loopback_url(url: str) -> bool:
    """
    Check whether a URL targets the local machine.

    Example:
        is_loopback_url('http://[::1]:3000/api')  # True
    """
    return get_hostname(url) in LOOPBACK_HOSTS


def collapse_duplicate_slashes(url: str) -> str:
    """
    Collapse repeated slashes in a URL, leaving the scheme separator alone.

    Example:
        collapse_duplicate_slashes('https://api.test//v1///users')
        # 'https://api.test/v1/users'
    """
    return _DUPLICATE_SLASHES.sub(r'\1', url)


def append_query_param(url: str, key: str, value: str) -> str:
    """
    Append an encoded key=value pair to a URL's query string.

    Args:
        url: Base URL
        key: Parameter name
        value: Parameter value

    Returns:
        URL with the parameter appended using '?' or '&'
    """
    separator = '&' if '?' in url else '?'
    return f"{url}{separator}{encode_uri_component(key)}={encode_uri_component(value)}"
