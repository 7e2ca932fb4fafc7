"""
Postduck Code Generation Module

Snippets for curl, Node.js, Python and PHP, resolved the same way the
dispatcher resolves requests.
"""

from .generators import (
    generate_curl_code,
    generate_node_code,
    generate_python_code,
    generate_php_code,
    generate_code,
    resolve_for_snippet,
    LANGUAGES,
)

__all__ = [
    'generate_curl_code',
    'generate_node_code',
    'generate_python_code',
    'generate_php_code',
    'generate_code',
    'resolve_for_snippet',
    'LANGUAGES',
]
