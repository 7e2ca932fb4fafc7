"""
Postduck Common Utilities

Shared utilities and helpers used across Postduck modules.
"""

from .errors import (
    PostduckError,
    ValidationError,
    PermissionDeniedError,
    CurlParseError,
    PostmanParseError,
    NotFoundError,
)
from .utils import (
    JsonBody,
    NotJson,
    classify_json,
    safe_json_parse,
    now_ms,
    generate_id,
    redact_headers,
)
from .url_utils import (
    encode_uri_component,
    is_absolute_url,
    is_loopback_url,
    collapse_duplicate_slashes,
    append_query_param,
)
from .config import PostduckConfig, load_config

__all__ = [
    'PostduckError',
    'ValidationError',
    'PermissionDeniedError',
    'CurlParseError',
    'PostmanParseError',
    'NotFoundError',
    'JsonBody',
    'NotJson',
    'classify_json',
    'safe_json_parse',
    'now_ms',
    'generate_id',
    'redact_headers',
    'encode_uri_component',
    'is_absolute_url',
    'is_loopback_url',
    'collapse_duplicate_slashes',
    'append_query_param',
    'PostduckConfig',
    'load_config',
]
