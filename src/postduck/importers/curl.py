"""
Postduck cURL Codec

Parses curl command lines into request descriptors and renders descriptors
back into curl commands.

Round-tripping preserves method, URL, body and auth for none/bearer/basic
auth with json, raw or empty bodies. Two differences in headers are
expected:

- header names come back lowercased, since parse_curl lowercases them;
- a json body without a Content-Type header comes back with
  'content-type: application/json', which request_to_curl adds.

Form-data bodies, API keys placed in the query string and bodies containing
backslashes do not survive a round trip.
"""

import re
from typing import Dict, List, Optional

from ..common.errors import CurlParseError
from ..common.url_utils import encode_uri_component
from ..common.utils import JsonBody, classify_json
from ..request.models import (
    AuthConfig,
    BasicAuth,
    BearerAuth,
    FormDataEntry,
    RequestBody,
    RequestDescriptor,
)
from ..request.resolution import apply_query_auth, has_header

LINE_CONTINUATION = re.compile(r'\\\s*\n')

METHOD_FLAGS = ('-X', '--request')
HEADER_FLAGS = ('-H', '--header')
DATA_FLAGS = ('-d', '--data', '--data-raw', '--data-binary', '--data-ascii')
FORM_FLAGS = ('-F', '--form')
USER_FLAGS = ('-u', '--user')

# Flags without a value
SKIPPED_FLAGS = (
    '-k', '--insecure',
    '-v', '--verbose',
    '-s', '--silent',
    '-S', '--show-error',
    '-L', '--location',
    '-i', '--include',
    '--compressed',
)

# Flags whose value is consumed and ignored
SKIPPED_VALUE_FLAGS = (
    '-o', '--output',
    '-A', '--user-agent',
    '-e', '--referer',
    '--connect-timeout',
    '-m', '--max-time',
    '--retry',
    '-w', '--write-out',
)

CONTINUATION = ' \\\n  '


def tokenize(command: str) -> List[str]:
    """
    Split a shell command line into words.

    Single and double quotes group words; a backslash keeps the next
    character literally, inside quotes too. Unquoted whitespace separates
    tokens.

    Example:
        tokenize('curl -H "Accept: */*" https://api.test')
        # ['curl', '-H', 'Accept: */*', 'https://api.test']
    """
    tokens = []
    current = []
    has_token = False
    in_single = False
    in_double = False
    escape = False

    for char in command:
        if escape:
            current.append(char)
            escape = False
            continue

        if char == '\\':
            escape = True
            has_token = True
            continue

        if char == "'" and not in_double:
            in_single = not in_single
            has_token = True
            continue

        if char == '"' and not in_single:
            in_double = not in_double
            has_token = True
            continue

        if char.isspace() and not in_single and not in_double:
            if has_token:
                tokens.append(''.join(current))
                current = []
                has_token = False
            continue

        current.append(char)
        has_token = True

    if has_token:
        tokens.append(''.join(current))

    return tokens


def _classify_data(data: str) -> RequestBody:
    if isinstance(classify_json(data), JsonBody):
        return RequestBody(type='json', content=data)
    return RequestBody(type='raw', content=data)


def parse_curl(command: str) -> RequestDescriptor:
    """
    Parse a curl command into a request descriptor.

    Supported options: -X, -H, -d/--data*, --json, -F, --data-urlencode and
    -u. Common switches (-k, -L, -s, ...) and their valued counterparts (-o,
    -A, -m, ...) are skipped. A bare word containing '://' or '.' is taken as
    the URL; when several appear, the last one wins.

    An 'authorization: Bearer <token>' header becomes bearer auth unless -u
    already set basic auth.

    Args:
        command: curl command line, possibly spanning lines with '\\'

    Returns:
        RequestDescriptor with method, url, headers, body and auth set

    Raises:
        CurlParseError: If the input is empty or not a string
    """
    if not isinstance(command, str) or not command.strip():
        raise CurlParseError("Invalid curl command")

    tokens = tokenize(LINE_CONTINUATION.sub(' ', command).strip())

    method = 'GET'
    url = ''
    headers: Dict[str, str] = {}
    body = RequestBody()
    auth_type = 'none'
    auth_config = AuthConfig()
    form_data: List[FormDataEntry] = []

    def upgrade_method():
        nonlocal method
        if method == 'GET':
            method = 'POST'

    i = 0
    while i < len(tokens):
        token = tokens[i]
        value: Optional[str] = tokens[i + 1] if i + 1 < len(tokens) else None

        if token == 'curl':
            i += 1
            continue

        if token in METHOD_FLAGS:
            if value is not None:
                method = value.upper()
            i += 2
            continue

        if token in HEADER_FLAGS:
            if value is not None:
                colon = value.find(':')
                if colon > 0:
                    headers[value[:colon].strip().lower()] = value[colon + 1:].strip()
            i += 2
            continue

        if token in DATA_FLAGS:
            if value is not None:
                body = _classify_data(value)
                upgrade_method()
            i += 2
            continue

        if token == '--json':
            if value is not None:
                body = RequestBody(type='json', content=value)
                upgrade_method()
            i += 2
            continue

        if token in FORM_FLAGS or token == '--data-urlencode':
            if value is not None:
                equals = value.find('=')
                if equals > 0:
                    field_value = value[equals + 1:]
                    if token == '--data-urlencode':
                        field_value = encode_uri_component(field_value)
                    form_data.append(FormDataEntry(key=value[:equals], value=field_value, enabled=True))
                upgrade_method()
            i += 2
            continue

        if token in USER_FLAGS:
            if value is not None:
                username, _, password = value.partition(':')
                if value.startswith(':'):
                    username, password = value, ''
                auth_type = 'basic'
                auth_config.basic = BasicAuth(username=username, password=password)
            i += 2
            continue

        if token in SKIPPED_FLAGS:
            i += 1
            continue

        if token in SKIPPED_VALUE_FLAGS:
            i += 2
            continue

        if not token.startswith('-') and ('://' in token or '.' in token):
            url = token

        i += 1

    if form_data and body.type == 'none':
        body = RequestBody(type='form-data', form_data=form_data)

    authorization = headers.get('authorization')
    if authorization and auth_type == 'none' and authorization.lower().startswith('bearer '):
        auth_type = 'bearer'
        auth_config.bearer = BearerAuth(token=authorization[7:].strip())
        del headers['authorization']

    return RequestDescriptor(
        method=method,
        url=url,
        headers=headers,
        body=body,
        auth_type=auth_type,
        auth_config=auth_config
    )


def shell_double_quote(value: str) -> str:
    """Double-quote a word, escaping the characters special inside double quotes."""
    escaped = re.sub(r'([\\"$`])', r'\\\1', value)
    return f'"{escaped}"'


def shell_single_quote(value: str) -> str:
    """Single-quote a word; embedded single quotes use the '\\'' idiom."""
    return "'" + value.replace("'", "'\\''") + "'"


def request_to_curl(request) -> str:
    """
    Render a request as a multi-line curl command.

    Accepts a RequestDescriptor or ExecuteRequestParams; no variables are
    interpolated and no auth session is applied.

    Example:
        print(request_to_curl(parse_curl('curl -X POST https://api.test -d "{}"')))
        # curl \\
        #   -X POST \\
        #   -d '{}' \\
        #   -H "Content-Type: application/json" \\
        #   "https://api.test"
    """
    parts = ['curl']

    if request.method != 'GET':
        parts.append(f"-X {request.method}")

    for key, value in request.headers.items():
        parts.append(f"-H {shell_double_quote(f'{key}: {value}')}")

    auth = request.auth_config
    if request.auth_type == 'bearer' and auth.bearer:
        parts.append(f"-H {shell_double_quote(f'Authorization: Bearer {auth.bearer.token}')}")
    elif request.auth_type == 'basic' and auth.basic:
        parts.append(f"-u {shell_double_quote(f'{auth.basic.username}:{auth.basic.password}')}")
    elif request.auth_type == 'apikey' and auth.apikey and auth.apikey.add_to == 'header':
        parts.append(f"-H {shell_double_quote(f'{auth.apikey.key}: {auth.apikey.value}')}")

    body = request.body
    if body is not None:
        if body.type == 'json' and body.content:
            parts.append(f"-d {shell_single_quote(body.content)}")
            if not has_header(request.headers, 'Content-Type'):
                parts.append(f"-H {shell_double_quote('Content-Type: application/json')}")
        elif body.type == 'raw' and body.content:
            parts.append(f"--data-raw {shell_single_quote(body.content)}")
        elif body.type == 'form-data' and body.form_data:
            for entry in body.form_data:
                if entry.enabled:
                    parts.append(f"-F {shell_double_quote(f'{entry.key}={entry.value}')}")

    url = apply_query_auth(request.url, request.auth_type, auth)
    parts.append(shell_double_quote(url))

    return CONTINUATION.join(parts)
