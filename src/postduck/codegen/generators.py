"""
Postduck Code Generators

Render a request as a ready-to-run snippet in curl, Node.js, Python or PHP.

Every generator resolves the request through prepare_request and
apply_query_auth, the same path the dispatcher takes, so a snippet carries
exactly the URL and headers that would be sent (including a global auth
session overriding the request's own auth).
"""

import json
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from ..common.utils import JsonBody, classify_json
from ..importers.curl import CONTINUATION, shell_double_quote, shell_single_quote
from ..request.models import AuthSession, Environment, RequestBody, RequestDescriptor
from ..request.resolution import apply_query_auth, enabled_form_entries, has_header, prepare_request


@dataclass
class ResolvedSnippetRequest:
    """What a snippet sends: method, final URL, non-empty headers and body."""

    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[RequestBody]


def resolve_for_snippet(
    request: RequestDescriptor,
    environment: Optional[Environment] = None,
    sessions: Iterable[AuthSession] = (),
    path_params: Optional[Dict[str, str]] = None,
    method: Optional[str] = None,
    url: Optional[str] = None,
    now: Optional[float] = None
) -> ResolvedSnippetRequest:
    """
    Resolve a request exactly as dispatch would.

    Headers with an empty name or value are dropped, since a snippet cannot
    express them meaningfully.
    """
    params = prepare_request(
        request,
        environment=environment,
        sessions=sessions,
        path_params=path_params,
        method=method,
        url=url,
        now=now
    )
    return ResolvedSnippetRequest(
        method=params.method,
        url=apply_query_auth(params.url, params.auth_type, params.auth_config),
        headers={k: v for k, v in params.headers.items() if k and v},
        body=params.body
    )


def _json_value(body: Optional[RequestBody]):
    """JsonBody for a json body whose content parses, else None."""
    if body is None or body.type != 'json' or not body.content:
        return None
    parsed = classify_json(body.content)
    return parsed if isinstance(parsed, JsonBody) else None


def _text_body(body: Optional[RequestBody]) -> Optional[str]:
    if body is not None and body.type in ('json', 'raw') and body.content:
        return body.content
    return None


def js_string(value: str) -> str:
    escaped = (
        value.replace('\\', '\\\\')
        .replace("'", "\\'")
        .replace('\n', '\\n')
        .replace('\r', '\\r')
    )
    return f"'{escaped}'"


def php_string(value: str) -> str:
    escaped = value.replace('\\', '\\\\').replace("'", "\\'")
    return f"'{escaped}'"


def generate_curl_code(request: RequestDescriptor, **resolve_args) -> str:
    """
    Render a curl command.

    Valid JSON bodies are compacted; a Content-Type: application/json header
    is added ahead of the body unless one is already set.

    Example:
        print(generate_curl_code(request, environment=env, sessions=store.list_auth_sessions()))
    """
    resolved = resolve_for_snippet(request, **resolve_args)
    parts = ['curl']

    if resolved.method != 'GET':
        parts.append(f"-X {resolved.method}")

    for key, value in resolved.headers.items():
        parts.append(f"-H {shell_double_quote(f'{key}: {value}')}")

    body = resolved.body
    parsed = _json_value(body)
    if parsed is not None:
        if not has_header(resolved.headers, 'Content-Type'):
            parts.append(f"-H {shell_double_quote('Content-Type: application/json')}")
        compact = json.dumps(parsed.value, separators=(',', ':'), ensure_ascii=False)
        parts.append(f"--data-raw {shell_single_quote(compact)}")
    elif _text_body(body) is not None:
        parts.append(f"--data-raw {shell_single_quote(body.content)}")
    else:
        for entry in enabled_form_entries(body):
            parts.append(f"-F {shell_double_quote(f'{entry.key}={entry.value}')}")

    parts.append(shell_double_quote(resolved.url))
    return CONTINUATION.join(parts)


def generate_node_code(request: RequestDescriptor, **resolve_args) -> str:
    """Render a Node.js 18+ snippet using the built-in fetch."""
    resolved = resolve_for_snippet(request, **resolve_args)
    lines = ['// Node.js 18+ (built-in fetch)', '']

    if resolved.headers:
        lines.append('const headers = {')
        for key, value in resolved.headers.items():
            lines.append(f"  {js_string(key)}: {js_string(value)},")
        lines.extend(['};', ''])

    body_code = None
    body = resolved.body
    parsed = _json_value(body)
    if parsed is not None:
        lines.append(f"const body = {json.dumps(parsed.value, indent=2, ensure_ascii=False)};")
        lines.append('')
        body_code = 'JSON.stringify(body)'
    elif _text_body(body) is not None:
        lines.extend([f"const body = {js_string(body.content)};", ''])
        body_code = 'body'
    else:
        entries = enabled_form_entries(body)
        if entries:
            lines.append('const formData = new FormData();')
            for entry in entries:
                lines.append(f"formData.append({js_string(entry.key)}, {js_string(entry.value)});")
            lines.append('')
            body_code = 'formData'

    lines.append('const options = {')
    if resolved.method != 'GET':
        lines.append(f"  method: {js_string(resolved.method)},")
    if resolved.headers:
        lines.append('  headers,')
    if body_code:
        lines.append(f"  body: {body_code},")
    lines.extend(['};', ''])

    lines.append(f"fetch({js_string(resolved.url)}, options)")
    lines.append('  .then(response => response.text())')
    lines.append('  .then(data => console.log(data))')
    lines.append("  .catch(error => console.error('Error:', error));")

    return '\n'.join(lines)


def generate_python_code(request: RequestDescriptor, **resolve_args) -> str:
    """Render a Python snippet using requests."""
    resolved = resolve_for_snippet(request, **resolve_args)
    lines = ['import requests', '']

    if resolved.headers:
        lines.append('headers = {')
        for key, value in resolved.headers.items():
            lines.append(f"    {key!r}: {value!r},")
        lines.extend(['}', ''])

    body_arg = None
    body = resolved.body
    parsed = _json_value(body)
    if parsed is not None:
        lines.extend([f"json_data = {parsed.value!r}", ''])
        body_arg = 'json=json_data'
    elif _text_body(body) is not None:
        lines.extend([f"data = {body.content!r}", ''])
        body_arg = 'data=data'
    else:
        entries = enabled_form_entries(body)
        if entries:
            lines.append('data = {')
            for entry in entries:
                lines.append(f"    {entry.key!r}: {entry.value!r},")
            lines.extend(['}', ''])
            body_arg = 'data=data'

    args = [repr(resolved.url)]
    if resolved.headers:
        args.append('headers=headers')
    if body_arg:
        args.append(body_arg)

    lines.append(f"response = requests.{resolved.method.lower()}({', '.join(args)})")
    lines.append('print(response.text)')

    return '\n'.join(lines)


def generate_php_code(request: RequestDescriptor, **resolve_args) -> str:
    """Render a PHP snippet using the curl extension."""
    resolved = resolve_for_snippet(request, **resolve_args)
    lines = ['<?php', '']

    body_code = None
    body = resolved.body
    parsed = _json_value(body)
    if parsed is not None:
        lines.extend([f"$jsonData = {php_string(body.content)};", ''])
        body_code = '$jsonData'
    elif _text_body(body) is not None:
        lines.extend([f"$data = {php_string(body.content)};", ''])
        body_code = '$data'
    else:
        entries = enabled_form_entries(body)
        if entries:
            lines.append('$data = [')
            for entry in entries:
                lines.append(f"    {php_string(entry.key)} => {php_string(entry.value)},")
            lines.extend(['];', ''])
            body_code = 'http_build_query($data)'

    lines.append('$ch = curl_init();')
    lines.append('')
    lines.append(f"curl_setopt($ch, CURLOPT_URL, {php_string(resolved.url)});")
    lines.append('curl_setopt($ch, CURLOPT_RETURNTRANSFER, true);')

    if resolved.method != 'GET':
        lines.append(f"curl_setopt($ch, CURLOPT_CUSTOMREQUEST, {php_string(resolved.method)});")

    if resolved.headers:
        lines.append('curl_setopt($ch, CURLOPT_HTTPHEADER, [')
        for key, value in resolved.headers.items():
            lines.append(f"    {php_string(f'{key}: {value}')},")
        lines.append(']);')

    if body_code:
        lines.append(f"curl_setopt($ch, CURLOPT_POSTFIELDS, {body_code});")

    lines.extend(['', '$response = curl_exec($ch);', 'curl_close($ch);', '', 'echo $response;'])

    return '\n'.join(lines)


GENERATORS: Dict[str, Callable[..., str]] = {
    'curl': generate_curl_code,
    'node': generate_node_code,
    'python': generate_python_code,
    'php': generate_php_code,
}

LANGUAGES: List[str] = list(GENERATORS)


def generate_code(language: str, request: RequestDescriptor, **resolve_args) -> str:
    """
    Render a request in the given language.

    Args:
        language: One of 'curl', 'node', 'python', 'php'
        request: Request to render
        **resolve_args: environment, sessions, path_params, method, url, now

    Raises:
        ValueError: For an unknown language
    """
    generator = GENERATORS.get(language.lower())
    if generator is None:
        raise ValueError(f"Unsupported language: {language} (expected one of {', '.join(LANGUAGES)})")
    return generator(request, **resolve_args)
