"""
Postduck Request Resolution

Turns a stored request descriptor into wire-ready request parameters:
path parameters, {{variable}} interpolation, auth materialization, API-key
query placement and body encoding.

This is the single implementation of the auth-to-wire mapping. The
dispatcher, both HTTP surfaces and every code generator go through it.
"""

import base64
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from ..auth.sessions import apply_session_auth, get_active_session
from ..common.url_utils import append_query_param
from .models import (
    ApiKeyAuth,
    AuthConfig,
    AuthSession,
    BasicAuth,
    BearerAuth,
    Environment,
    ExecuteRequestParams,
    FormDataEntry,
    RequestBody,
    RequestDescriptor,
)
from .path_params import replace_path_params
from .variables import interpolate, interpolate_request

INTERPOLATED_BODY_TYPES = ('json', 'raw')


def has_header(headers: Dict[str, str], name: str) -> bool:
    """Case-insensitive header presence check."""
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def interpolate_auth_config(auth_config: AuthConfig, environment: Optional[Environment]) -> AuthConfig:
    """Return a copy of auth_config with every credential field interpolated."""
    bearer = auth_config.bearer
    basic = auth_config.basic
    apikey = auth_config.apikey
    return AuthConfig(
        bearer=BearerAuth(token=interpolate(bearer.token, environment)) if bearer else None,
        basic=BasicAuth(
            username=interpolate(basic.username, environment),
            password=interpolate(basic.password, environment)
        ) if basic else None,
        apikey=ApiKeyAuth(
            key=interpolate(apikey.key, environment),
            value=interpolate(apikey.value, environment),
            add_to=apikey.add_to
        ) if apikey else None
    )


def materialize_auth(
    headers: Dict[str, str],
    auth_type: str,
    auth_config: AuthConfig,
    sessions: Iterable[AuthSession] = (),
    use_auth_session: Optional[str] = None,
    now: Optional[float] = None
) -> Dict[str, str]:
    """
    Apply credentials to a header map.

    An active global session always wins over the request's own auth
    settings. Without one, the request's auth type applies:

    - saved-session: the referenced session (no-op if the id is stale)
    - bearer: Authorization: Bearer <token>
    - basic: Authorization: Basic base64(username:password)
    - apikey with add_to=header: <key>: <value>

    API keys placed in the query string are handled by apply_query_auth.

    Args:
        headers: Interpolated header map (not modified)
        auth_type: Request auth type
        auth_config: Request auth config, already interpolated
        sessions: Snapshot of stored auth sessions
        use_auth_session: Session id referenced by a saved-session request
        now: Current time in epoch ms, for expiry checks

    Returns:
        New header map with credentials applied
    """
    result = dict(headers)
    sessions = list(sessions or [])

    global_session = get_active_session(sessions, now)
    if global_session is not None:
        return apply_session_auth(result, global_session)

    if auth_type == 'saved-session':
        if use_auth_session:
            session = next((s for s in sessions if s.id == use_auth_session), None)
            if session is not None:
                apply_session_auth(result, session)
    elif auth_type == 'bearer' and auth_config.bearer:
        result['Authorization'] = f"Bearer {auth_config.bearer.token}"
    elif auth_type == 'basic' and auth_config.basic:
        credentials = f"{auth_config.basic.username}:{auth_config.basic.password}"
        encoded = base64.b64encode(credentials.encode('utf-8')).decode('ascii')
        result['Authorization'] = f"Basic {encoded}"
    elif auth_type == 'apikey' and auth_config.apikey:
        if auth_config.apikey.add_to == 'header':
            result[auth_config.apikey.key] = auth_config.apikey.value

    return result


def apply_query_auth(url: str, auth_type: str, auth_config: AuthConfig) -> str:
    """Append an API key to the URL when it is configured for the query string."""
    apikey = auth_config.apikey
    if auth_type == 'apikey' and apikey and apikey.add_to == 'query':
        return append_query_param(url, apikey.key, apikey.value)
    return url


def prepare_request(
    descriptor: RequestDescriptor,
    environment: Optional[Environment] = None,
    sessions: Iterable[AuthSession] = (),
    path_params: Optional[Dict[str, str]] = None,
    method: Optional[str] = None,
    url: Optional[str] = None,
    now: Optional[float] = None
) -> ExecuteRequestParams:
    """
    Resolve a descriptor into dispatchable request parameters.

    Path parameters are replaced first, then {{variables}} are interpolated
    in the URL, headers and json/raw body content, then auth is materialized
    into headers. The environment and sessions passed in are the snapshot
    for this one request.

    Args:
        descriptor: Stored request definition
        environment: Active environment snapshot, or None
        sessions: Auth session snapshot
        path_params: Values for :name tokens in the URL
        method: Method override (e.g. unsaved edits), defaults to descriptor's
        url: URL override, defaults to descriptor's
        now: Current time in epoch ms, for session expiry

    Returns:
        ExecuteRequestParams ready for RequestDispatcher.dispatch
    """
    target_url = descriptor.url if url is None else url
    if path_params:
        target_url = replace_path_params(target_url, path_params)

    body = descriptor.body
    content = body.content if body.type in INTERPOLATED_BODY_TYPES else None
    target_url, headers, content = interpolate_request(
        target_url, descriptor.headers, content, environment
    )

    if body.type in INTERPOLATED_BODY_TYPES:
        resolved_body = RequestBody(type=body.type, content=content)
    else:
        resolved_body = RequestBody(
            type=body.type,
            content=body.content,
            form_data=[FormDataEntry(e.key, e.value, e.enabled) for e in body.form_data]
            if body.form_data is not None else None
        )

    auth_config = interpolate_auth_config(descriptor.auth_config, environment)
    headers = materialize_auth(
        headers,
        descriptor.auth_type,
        auth_config,
        sessions=sessions,
        use_auth_session=descriptor.use_auth_session,
        now=now
    )

    return ExecuteRequestParams(
        method=(method or descriptor.method).upper(),
        url=target_url,
        headers=headers,
        body=resolved_body,
        auth_type=descriptor.auth_type,
        auth_config=auth_config
    )


@dataclass
class MaterializedBody:
    """Wire body plus the headers it implies."""

    headers: Dict[str, str]
    data: Optional[str] = None
    files: Optional[List[Tuple[str, Tuple[None, str]]]] = None


def enabled_form_entries(body: Optional[RequestBody]) -> List[FormDataEntry]:
    """Form-data entries that are enabled and have a key."""
    if body is None or body.type != 'form-data' or not body.form_data:
        return []
    return [entry for entry in body.form_data if entry.enabled and entry.key]


def materialize_body(
    body: Optional[RequestBody],
    headers: Dict[str, str],
    multipart: bool = False
) -> MaterializedBody:
    """
    Encode a request body for the wire.

    json and raw pass content through; json defaults Content-Type to
    application/json unless the caller set one. form-data keeps enabled
    entries and encodes them as application/x-www-form-urlencoded, or as
    multipart fields with any caller Content-Type removed so the transport
    can set the boundary.

    Args:
        body: Request body, or None
        headers: Request headers (not modified)
        multipart: Encode form-data as multipart instead of urlencoded

    Returns:
        MaterializedBody with the headers to send
    """
    result_headers = dict(headers)
    if body is None:
        return MaterializedBody(headers=result_headers)

    if body.type == 'json' and body.content:
        if not has_header(result_headers, 'Content-Type'):
            result_headers['Content-Type'] = 'application/json'
        return MaterializedBody(headers=result_headers, data=body.content)

    if body.type == 'raw' and body.content:
        return MaterializedBody(headers=result_headers, data=body.content)

    if body.type == 'form-data' and body.form_data is not None:
        entries = [e for e in body.form_data if e.enabled]
        result_headers = {k: v for k, v in result_headers.items() if k.lower() != 'content-type'}

        if multipart:
            return MaterializedBody(
                headers=result_headers,
                files=[(e.key, (None, e.value)) for e in entries]
            )

        result_headers['Content-Type'] = 'application/x-www-form-urlencoded'
        return MaterializedBody(
            headers=result_headers,
            data=urlencode([(e.key, e.value) for e in entries])
        )

    return MaterializedBody(headers=result_headers)
