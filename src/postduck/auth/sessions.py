"""
Postduck Auth Sessions

Resolves the globally active auth session from a snapshot of stored sessions.

The active session is recomputed from an explicitly passed snapshot on every
call; nothing is cached, since sessions expire or get superseded between
dispatches.
"""

import time
from typing import TYPE_CHECKING, Dict, Iterable, Optional

if TYPE_CHECKING:
    from ..request.models import AuthSession


def _now_ms(now: Optional[float]) -> float:
    return now if now is not None else time.time() * 1000


def is_expired(session: 'AuthSession', now: Optional[float] = None) -> bool:
    """
    Check whether a session has expired.

    Args:
        session: Session to check
        now: Current time in epoch ms (defaults to the wall clock)

    Returns:
        False when expires_at is unset, else now >= expires_at
    """
    if not session.expires_at:
        return False
    return _now_ms(now) >= session.expires_at


def get_active_session(
    sessions: Iterable['AuthSession'],
    now: Optional[float] = None
) -> Optional['AuthSession']:
    """
    Return the most recently updated unexpired session, or None.

    Args:
        sessions: Snapshot of stored sessions
        now: Current time in epoch ms (defaults to the wall clock)
    """
    current = _now_ms(now)
    active = [s for s in sessions or [] if not is_expired(s, current)]
    if not active:
        return None

    active.sort(key=lambda s: s.updated_at, reverse=True)
    return active[0]


def apply_session_auth(headers: Dict[str, str], session: 'AuthSession') -> Dict[str, str]:
    """
    Write a session's credential into a header map.

    bearer sessions set Authorization: Bearer <token>; cookie sessions set
    Cookie to the raw token value.

    Returns:
        The same header map, for chaining
    """
    if session.token_type == 'bearer':
        headers['Authorization'] = f"Bearer {session.token_value}"
    elif session.token_type == 'cookie':
        headers['Cookie'] = session.token_value
    return headers


def format_time_ago(timestamp: int, now: Optional[float] = None) -> str:
    """
    Render an epoch-ms timestamp relative to now.

    Example:
        format_time_ago(now_ms() - 90_000)  # '1m ago'
    """
    seconds = int((_now_ms(now) - timestamp) // 1000)
    if seconds < 60:
        return f"{seconds}s ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"
