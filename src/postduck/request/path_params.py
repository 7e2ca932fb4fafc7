"""
Postduck Path Parameters

Detects and substitutes :name path parameters in URL templates.
"""

import re
from typing import Dict, List

from ..common.url_utils import encode_uri_component

PATH_PARAM_PATTERN = re.compile(r':([a-zA-Z_][a-zA-Z0-9_]*)')


def extract_path_params(url: str) -> List[str]:
    """
    Find path parameter names in a URL template.

    Args:
        url: URL template, e.g. 'https://api.test/users/:id/posts/:post_id'

    Returns:
        Distinct parameter names in first-occurrence order
    """
    if not url:
        return []

    params: List[str] = []
    for match in PATH_PARAM_PATTERN.finditer(url):
        name = match.group(1)
        if name not in params:
            params.append(name)
    return params


def replace_path_params(url: str, params: Dict[str, str]) -> str:
    """
    Replace every :name occurrence with its percent-encoded value.

    Names without a supplied value are left untouched, and a longer name
    sharing a prefix (:idx for id) is not matched.

    Args:
        url: URL template
        params: Mapping of parameter name to value

    Returns:
        URL with parameters substituted
    """
    result = url
    for name, value in params.items():
        encoded = encode_uri_component(value)
        result = re.sub(f':{re.escape(name)}(?![a-zA-Z0-9_])', lambda _m: encoded, result)
    return result
