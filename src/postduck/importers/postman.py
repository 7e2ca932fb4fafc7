"""
Postduck Postman Collection Importer

Parses Postman v2.1 collection JSON into folders, requests and collection
variables ready for WorkspaceStore.import_parsed_collection.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..common.errors import PostmanParseError
from ..common.url_utils import encode_uri_component
from ..request.models import (
    HTTP_METHODS,
    ApiKeyAuth,
    AuthConfig,
    BasicAuth,
    BearerAuth,
    FormDataEntry,
    RequestBody,
)

ROOT_COLLECTION_ID = 'root'
DEFAULT_COLLECTION_NAME = 'Imported Collection'


@dataclass
class ParsedCollectionNode:
    """Folder with a temporary id, mapped to a real id on import."""

    id: str
    name: str
    parent_id: Optional[str] = None
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'parentId': self.parent_id, 'order': self.order}


@dataclass
class ParsedRequest:
    name: str
    collection_id: str
    method: str = "GET"
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: RequestBody = field(default_factory=RequestBody)
    auth_type: str = "none"
    auth_config: AuthConfig = field(default_factory=AuthConfig)
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'collectionId': self.collection_id,
            'method': self.method,
            'url': self.url,
            'headers': dict(self.headers),
            'body': self.body.to_dict(),
            'authType': self.auth_type,
            'authConfig': self.auth_config.to_dict(),
            'order': self.order,
        }


@dataclass
class ParsedCollection:
    """Result of parsing one Postman collection."""

    name: str
    collections: List[ParsedCollectionNode] = field(default_factory=list)
    requests: List[ParsedRequest] = field(default_factory=list)
    variables: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'collections': [c.to_dict() for c in self.collections],
            'requests': [r.to_dict() for r in self.requests],
            'variables': dict(self.variables),
        }


def _enabled_pairs(entries: Optional[List[Dict[str, Any]]]) -> List[Tuple[str, str]]:
    """(key, value) for entries that are enabled and have a key."""
    pairs = []
    for entry in entries or []:
        if not isinstance(entry, dict) or entry.get('disabled') or not entry.get('key'):
            continue
        value = entry.get('value')
        pairs.append((entry['key'], '' if value is None else str(value)))
    return pairs


def parse_headers(headers: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    return dict(_enabled_pairs(headers))


def parse_url(url: Any) -> str:
    """
    Render a Postman URL (string or object) as a string.

    Objects use 'raw' when present; otherwise the URL is rebuilt from
    protocol, host and path parts plus enabled query entries.
    """
    if not url:
        return ''
    if isinstance(url, str):
        return url
    if not isinstance(url, dict):
        return ''
    if url.get('raw'):
        return url['raw']

    protocol = url.get('protocol') or 'https'
    host = url.get('host') or ''
    if isinstance(host, list):
        host = '.'.join(str(part) for part in host)

    path = url.get('path')
    path = '/' + '/'.join(str(part) for part in path) if path else ''

    query = '&'.join(f"{key}={encode_uri_component(value)}" for key, value in _enabled_pairs(url.get('query')))
    query_string = f"?{query}" if query else ''

    return f"{protocol}://{host}{path}{query_string}"


def parse_body(body: Optional[Dict[str, Any]]) -> RequestBody:
    """
    Map a Postman body to a RequestBody.

    raw bodies are json when the declared language is json or the content
    starts with '{' or '['; formdata and urlencoded both become form-data;
    file and graphql bodies are dropped.
    """
    if not isinstance(body, dict):
        return RequestBody()

    mode = body.get('mode')
    if mode == 'raw':
        content = body.get('raw') or ''
        language = ((body.get('options') or {}).get('raw') or {}).get('language')
        stripped = content.strip()
        is_json = language == 'json' or stripped.startswith('{') or stripped.startswith('[')
        return RequestBody(type='json' if is_json else 'raw', content=content)

    if mode in ('formdata', 'urlencoded') and body.get(mode) is not None:
        return RequestBody(
            type='form-data',
            form_data=[FormDataEntry(key=k, value=v, enabled=True) for k, v in _enabled_pairs(body[mode])]
        )

    return RequestBody()


def _auth_values(auth: Dict[str, Any], auth_type: str) -> Dict[str, str]:
    values = {}
    for entry in auth.get(auth_type) or []:
        if isinstance(entry, dict) and 'key' in entry and entry['key'] not in values:
            value = entry.get('value')
            values[entry['key']] = '' if value is None else str(value)
    return values


def parse_auth(auth: Optional[Dict[str, Any]]) -> Tuple[str, AuthConfig]:
    """
    Map a Postman auth block to (auth_type, AuthConfig).

    Unsupported types and noauth map to 'none'. API keys default to the
    query string unless 'in' is 'header'.
    """
    if not isinstance(auth, dict):
        return 'none', AuthConfig()

    auth_type = auth.get('type')
    if auth_type not in ('bearer', 'basic', 'apikey') or not auth.get(auth_type):
        return 'none', AuthConfig()

    values = _auth_values(auth, auth_type)
    if auth_type == 'bearer':
        return 'bearer', AuthConfig(bearer=BearerAuth(token=values.get('token', '')))
    if auth_type == 'basic':
        return 'basic', AuthConfig(basic=BasicAuth(
            username=values.get('username', ''),
            password=values.get('password', '')
        ))
    return 'apikey', AuthConfig(apikey=ApiKeyAuth(
        key=values.get('key', ''),
        value=values.get('value', ''),
        add_to='header' if values.get('in') == 'header' else 'query'
    ))


def normalize_method(method: Optional[str]) -> str:
    upper = (method or 'GET').upper()
    return upper if upper in HTTP_METHODS else 'GET'


def parse_variables(variables: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    return dict(_enabled_pairs(variables))


def parse_postman_collection(text: str) -> ParsedCollection:
    """
    Parse a Postman v2.1 collection.

    Items are visited in document order. Folders get temporary ids col_0,
    col_1, ... and a folder order shared across the tree; requests get a
    tree-wide order and belong to their enclosing folder or to the 'root'
    sentinel. Request auth falls back to the item's, then the collection's.

    Args:
        text: Collection JSON text

    Returns:
        ParsedCollection

    Raises:
        PostmanParseError: If the text is not JSON or lacks info/item

    Example:
        parsed = parse_postman_collection(Path('api.postman_collection.json').read_text())
        print(parsed.name, len(parsed.requests))
    """
    try:
        document = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise PostmanParseError("Invalid JSON format") from e

    if not isinstance(document, dict) or not document.get('info') or not isinstance(document.get('item'), list):
        raise PostmanParseError("Invalid Postman collection format")

    info = document['info'] if isinstance(document['info'], dict) else {}
    result = ParsedCollection(
        name=info.get('name') or DEFAULT_COLLECTION_NAME,
        variables=parse_variables(document.get('variable'))
    )
    collection_auth = document.get('auth')

    folder_order = 0
    request_order = 0

    # (item, enclosing folder id), popped in document order
    pending = [(item, None) for item in reversed(document['item'])]
    while pending:
        item, parent_id = pending.pop()
        if not isinstance(item, dict):
            continue

        if isinstance(item.get('item'), list):
            folder = ParsedCollectionNode(
                id=f"col_{len(result.collections)}",
                name=item.get('name') or '',
                parent_id=parent_id,
                order=folder_order
            )
            folder_order += 1
            result.collections.append(folder)
            pending.extend((child, folder.id) for child in reversed(item['item']))
            continue

        request = item.get('request')
        if not request:
            continue
        if isinstance(request, str):
            request = {'url': request}

        auth_type, auth_config = parse_auth(request.get('auth') or item.get('auth') or collection_auth)
        result.requests.append(ParsedRequest(
            name=item.get('name') or '',
            collection_id=parent_id or ROOT_COLLECTION_ID,
            method=normalize_method(request.get('method')),
            url=parse_url(request.get('url')),
            headers=parse_headers(request.get('header')),
            body=parse_body(request.get('body')),
            auth_type=auth_type,
            auth_config=auth_config,
            order=request_order
        ))
        request_order += 1

    return result
