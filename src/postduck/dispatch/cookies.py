"""
Postduck Cookie Parsing

Turns Set-Cookie header values into ParsedCookie records.
"""

from typing import Iterable, List, Optional, Tuple

from ..request.models import ParsedCookie

COOKIE_ATTRIBUTES = ('domain', 'path', 'expires')


def parse_set_cookie(header_value: str) -> Optional[ParsedCookie]:
    """
    Parse a single Set-Cookie header value.

    The first ';'-separated segment is name=value, split on the first '='.
    A segment with no '=' (or starting with '=') becomes the name with an
    empty value. Domain, Path and Expires attributes are kept; everything
    else (HttpOnly, Secure, SameSite, Max-Age) is ignored.

    Args:
        header_value: Raw Set-Cookie value

    Returns:
        ParsedCookie, or None when the cookie has no name

    Example:
        parse_set_cookie('sid=abc123; Domain=example.com; Path=/; HttpOnly')
        # ParsedCookie(name='sid', value='abc123', domain='example.com', path='/')
    """
    parts = [part.strip() for part in header_value.split(';')]
    first = parts[0]

    equals = first.find('=')
    if equals > 0:
        name = first[:equals].strip()
        value = first[equals + 1:].strip()
    else:
        name = first.strip()
        value = ''

    if not name:
        return None

    cookie = ParsedCookie(name=name, value=value)
    for part in parts[1:]:
        lowered = part.lower()
        for attribute in COOKIE_ATTRIBUTES:
            if lowered.startswith(f"{attribute}="):
                setattr(cookie, attribute, part.split('=', 1)[1])
                break

    return cookie


def parse_cookies(header_items: Iterable[Tuple[str, str]]) -> List[ParsedCookie]:
    """
    Collect cookies from every Set-Cookie header, in header order.

    Args:
        header_items: Raw (name, value) header pairs, duplicates included

    Returns:
        Parsed cookies (possibly empty)
    """
    cookies = []
    for name, value in header_items:
        if name.lower() != 'set-cookie':
            continue
        cookie = parse_set_cookie(value)
        if cookie is not None:
            cookies.append(cookie)
    return cookies
