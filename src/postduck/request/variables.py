"""
Postduck Variable Interpolation

Resolves {{name}} tokens against the active environment's variables.
"""

import re
from typing import Dict, List, Optional, Tuple

from .models import Environment

VARIABLE_PATTERN = re.compile(r'\{\{([^}]+)\}\}')


def interpolate(text: Optional[str], environment: Optional[Environment]) -> Optional[str]:
    """
    Substitute {{name}} tokens with environment variable values.

    Token names are trimmed before lookup. Tokens without a matching variable
    are left verbatim.

    Args:
        text: String possibly containing {{name}} tokens
        environment: Active environment, or None

    Returns:
        Interpolated string (unchanged when there is no environment)

    Example:
        env = Environment(id='e1', name='dev', variables=[EnvironmentVariable('host', 'api.dev')])
        interpolate('https://{{ host }}/v1', env)  # 'https://api.dev/v1'
    """
    if environment is None or not text:
        return text

    def replacer(match):
        variable = environment.get_variable(match.group(1).strip())
        return variable.value if variable is not None else match.group(0)

    return VARIABLE_PATTERN.sub(replacer, text)


def interpolate_request(
    url: str,
    headers: Dict[str, str],
    body: Optional[str],
    environment: Optional[Environment]
) -> Tuple[str, Dict[str, str], Optional[str]]:
    """
    Interpolate a request's URL, header keys and values, and body content.

    Args:
        url: URL template
        headers: Header map
        body: Body content (pass None for bodies that are not interpolated)
        environment: Active environment, or None

    Returns:
        Tuple of (url, headers, body)
    """
    return (
        interpolate(url, environment),
        {
            interpolate(key, environment): interpolate(value, environment)
            for key, value in headers.items()
        },
        interpolate(body, environment) if body else None
    )


def find_unresolved(text: Optional[str]) -> List[str]:
    """Return every remaining {{...}} token in text, verbatim and in order."""
    if not text:
        return []
    return [match.group(0) for match in VARIABLE_PATTERN.finditer(text)]
