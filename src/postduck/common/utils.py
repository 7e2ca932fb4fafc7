"""
Postduck Common Utilities

Shared helpers for JSON classification, record ids, timestamps and header
redaction.
"""

import json
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class JsonBody:
    """Text that parsed as JSON."""

    value: Any
    raw: str


@dataclass(frozen=True)
class NotJson:
    """Text that did not parse as JSON."""

    raw: str


JsonClassification = Union[JsonBody, NotJson]


def classify_json(text: Optional[str]) -> JsonClassification:
    """
    Classify text as JSON or not.

    Both outcomes are returned as values so callers branch on the type
    instead of catching decode errors.

    Args:
        text: Candidate JSON text

    Returns:
        JsonBody with the decoded value, or NotJson with the raw text

    Example:
        result = classify_json('{"a": 1}')
        if isinstance(result, JsonBody):
            print(result.value['a'])
    """
    if text is None:
        return NotJson(raw='')

    try:
        return JsonBody(value=json.loads(text), raw=text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return NotJson(raw=text)


def safe_json_parse(json_string: Optional[str], default: Any = None) -> Any:
    """
    Parse a JSON string, returning default when it is empty or invalid.

    Args:
        json_string: JSON string to parse
        default: Value returned if parsing fails

    Returns:
        Parsed JSON object, or default
    """
    if not json_string:
        return default

    result = classify_json(json_string)
    if isinstance(result, JsonBody):
        return result.value
    return default


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_id(prefix: str) -> str:
    """
    Generate a record id of the form ``<prefix>_<epoch ms>_<9 random chars>``.

    Example:
        generate_id('req')  # 'req_1718000000000_k3j9x0a2b'
    """
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{now_ms()}_{suffix}"


SENSITIVE_HEADERS = [
    'authorization',
    'cookie',
    'set-cookie',
    'x-api-key',
    'x-auth-token',
    'x-session-id',
    'x-csrf-token',
    'proxy-authorization',
]


def redact_headers(headers: Dict[str, str], extra_sensitive: Optional[list] = None) -> Dict[str, str]:
    """
    Mask credential-bearing header values for logging.

    Args:
        headers: Header map to redact
        extra_sensitive: Additional header names (case-insensitive) to mask

    Returns:
        Copy of headers with sensitive values replaced by '***'
    """
    sensitive = list(SENSITIVE_HEADERS)
    if extra_sensitive:
        sensitive.extend(h.lower() for h in extra_sensitive)

    return {k: ('***' if k.lower() in sensitive else v) for k, v in headers.items()}
