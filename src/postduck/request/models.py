"""
Postduck Request Models

Dataclasses for request descriptors, environments, auth sessions and
execution results. Every record converts to and from the camelCase JSON shape
used by the HTTP surfaces and the workspace snapshot file.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

HTTP_METHODS = ('GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS')
AUTH_TYPES = ('none', 'bearer', 'basic', 'apikey', 'saved-session')
BODY_TYPES = ('none', 'raw', 'json', 'form-data')
TOKEN_TYPES = ('bearer', 'cookie')
EXTRACT_SOURCES = ('body', 'header', 'cookie')


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class FormDataEntry:
    """One key/value row of a form-data body."""

    key: str
    value: str = ""
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {'key': self.key, 'value': self.value, 'enabled': self.enabled}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FormDataEntry':
        return cls(
            key=data.get('key', ''),
            value=data.get('value') or '',
            enabled=data.get('enabled', True)
        )


@dataclass
class RequestBody:
    """Tagged request body: none, raw, json or form-data."""

    type: str = "none"
    content: Optional[str] = None
    form_data: Optional[List[FormDataEntry]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.type}
        if self.content is not None:
            data['content'] = self.content
        if self.form_data is not None:
            data['formData'] = [entry.to_dict() for entry in self.form_data]
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'RequestBody':
        if not data:
            return cls()

        body_type = data.get('type', 'none')
        if body_type not in BODY_TYPES:
            body_type = 'none'

        form_data = data.get('formData')
        return cls(
            type=body_type,
            content=data.get('content'),
            form_data=[FormDataEntry.from_dict(e) for e in form_data] if form_data is not None else None
        )


@dataclass
class BearerAuth:
    token: str = ""


@dataclass
class BasicAuth:
    username: str = ""
    password: str = ""


@dataclass
class ApiKeyAuth:
    key: str = ""
    value: str = ""
    add_to: str = "header"  # header, query


@dataclass
class AuthConfig:
    """Per-request credentials, one slot per auth type."""

    bearer: Optional[BearerAuth] = None
    basic: Optional[BasicAuth] = None
    apikey: Optional[ApiKeyAuth] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.bearer is not None:
            data['bearer'] = {'token': self.bearer.token}
        if self.basic is not None:
            data['basic'] = {'username': self.basic.username, 'password': self.basic.password}
        if self.apikey is not None:
            data['apikey'] = {
                'key': self.apikey.key,
                'value': self.apikey.value,
                'addTo': self.apikey.add_to
            }
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AuthConfig':
        data = data or {}
        bearer = data.get('bearer')
        basic = data.get('basic')
        apikey = data.get('apikey')
        return cls(
            bearer=BearerAuth(token=bearer.get('token') or '') if bearer else None,
            basic=BasicAuth(
                username=basic.get('username') or '',
                password=basic.get('password') or ''
            ) if basic else None,
            apikey=ApiKeyAuth(
                key=apikey.get('key') or '',
                value=apikey.get('value') or '',
                add_to='query' if apikey.get('addTo') == 'query' else 'header'
            ) if apikey else None
        )


@dataclass
class AuthExtractionConfig:
    """How to pull an auth token out of a successful login response."""

    enabled: bool = False
    token_type: str = "bearer"  # bearer, cookie
    extract_from: str = "body"  # body, header, cookie
    path: Optional[str] = None  # Dot path for body, header name for header
    cookie_name: Optional[str] = None
    session_name: Optional[str] = None
    save_as_env_variable: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'enabled': self.enabled,
            'tokenType': self.token_type,
            'extractFrom': self.extract_from,
            'path': self.path,
            'cookieName': self.cookie_name,
            'sessionName': self.session_name,
            'saveAsEnvVariable': self.save_as_env_variable,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthExtractionConfig':
        return cls(
            enabled=bool(data.get('enabled', False)),
            token_type=data.get('tokenType', 'bearer'),
            extract_from=data.get('extractFrom', 'body'),
            path=data.get('path'),
            cookie_name=data.get('cookieName'),
            session_name=data.get('sessionName'),
            save_as_env_variable=data.get('saveAsEnvVariable')
        )


@dataclass
class RequestDescriptor:
    """A stored, user-edited request definition, prior to interpolation."""

    id: str = ""
    collection_id: str = ""
    name: str = ""
    method: str = "GET"
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: RequestBody = field(default_factory=RequestBody)
    auth_type: str = "none"
    auth_config: AuthConfig = field(default_factory=AuthConfig)
    auth_extraction: Optional[AuthExtractionConfig] = None
    use_auth_session: Optional[str] = None
    order: int = 0
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'collectionId': self.collection_id,
            'name': self.name,
            'method': self.method,
            'url': self.url,
            'headers': dict(self.headers),
            'body': self.body.to_dict(),
            'authType': self.auth_type,
            'authConfig': self.auth_config.to_dict(),
            'useAuthSession': self.use_auth_session,
            'order': self.order,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
        if self.auth_extraction is not None:
            data['authExtraction'] = self.auth_extraction.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RequestDescriptor':
        extraction = data.get('authExtraction')
        return cls(
            id=data.get('id', ''),
            collection_id=data.get('collectionId', ''),
            name=data.get('name', ''),
            method=(data.get('method') or 'GET').upper(),
            url=data.get('url', ''),
            headers=dict(data.get('headers') or {}),
            body=RequestBody.from_dict(data.get('body')),
            auth_type=data.get('authType') or 'none',
            auth_config=AuthConfig.from_dict(data.get('authConfig')),
            auth_extraction=AuthExtractionConfig.from_dict(extraction) if extraction else None,
            use_auth_session=data.get('useAuthSession'),
            order=data.get('order', 0),
            created_at=data.get('createdAt', 0),
            updated_at=data.get('updatedAt', 0)
        )


@dataclass
class Collection:
    """A folder of requests; nesting is expressed with parent_id."""

    id: str
    workspace_id: str
    name: str
    parent_id: Optional[str] = None
    order: int = 0
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'workspaceId': self.workspace_id,
            'parentId': self.parent_id,
            'name': self.name,
            'order': self.order,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Collection':
        return cls(
            id=data['id'],
            workspace_id=data.get('workspaceId', ''),
            name=data.get('name', ''),
            parent_id=data.get('parentId'),
            order=data.get('order', 0),
            created_at=data.get('createdAt', 0),
            updated_at=data.get('updatedAt', 0)
        )


@dataclass
class EnvironmentVariable:
    key: str
    value: str = ""
    is_secret: bool = False
    id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'key': self.key, 'value': self.value, 'isSecret': self.is_secret}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EnvironmentVariable':
        return cls(
            id=data.get('id', ''),
            key=data.get('key', ''),
            value=data.get('value') or '',
            is_secret=bool(data.get('isSecret', False))
        )


@dataclass
class Environment:
    """Named set of variables substituted into {{name}} tokens."""

    id: str
    name: str
    workspace_id: str = ""
    is_active: bool = False
    variables: List[EnvironmentVariable] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0

    def get_variable(self, key: str) -> Optional[EnvironmentVariable]:
        """Return the first variable with exactly this key."""
        for variable in self.variables:
            if variable.key == key:
                return variable
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'workspaceId': self.workspace_id,
            'name': self.name,
            'isActive': self.is_active,
            'variables': [v.to_dict() for v in self.variables],
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Environment':
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            workspace_id=data.get('workspaceId', ''),
            is_active=bool(data.get('isActive', False)),
            variables=[EnvironmentVariable.from_dict(v) for v in data.get('variables') or []],
            created_at=data.get('createdAt', 0),
            updated_at=data.get('updatedAt', 0)
        )


@dataclass
class AuthSession:
    """A captured credential reusable by later requests."""

    id: str
    token_type: str  # bearer, cookie
    token_value: str
    updated_at: int
    workspace_id: str = ""
    name: str = ""
    request_id: str = ""
    expires_at: Optional[int] = None
    login_response_history_id: Optional[str] = None
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'id': self.id,
            'workspaceId': self.workspace_id,
            'name': self.name,
            'requestId': self.request_id,
            'tokenType': self.token_type,
            'tokenValue': self.token_value,
            'expiresAt': self.expires_at,
            'loginResponseHistoryId': self.login_response_history_id,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuthSession':
        return cls(
            id=data.get('id', ''),
            token_type=data.get('tokenType', 'bearer'),
            token_value=data.get('tokenValue', ''),
            updated_at=data.get('updatedAt', 0),
            workspace_id=data.get('workspaceId', ''),
            name=data.get('name', ''),
            request_id=data.get('requestId', ''),
            expires_at=data.get('expiresAt'),
            login_response_history_id=data.get('loginResponseHistoryId'),
            created_at=data.get('createdAt', 0)
        )


@dataclass
class ExecuteRequestParams:
    """Wire request accepted by the dispatch surfaces."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[RequestBody] = None
    auth_type: str = "none"
    auth_config: AuthConfig = field(default_factory=AuthConfig)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'method': self.method,
            'url': self.url,
            'headers': dict(self.headers),
            'authType': self.auth_type,
            'authConfig': self.auth_config.to_dict(),
        }
        if self.body is not None:
            data['body'] = self.body.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExecuteRequestParams':
        if not isinstance(data, dict):
            raise ValueError("Request parameters must be a JSON object")

        url = data.get('url')
        headers = data.get('headers') or {}
        return cls(
            method=str(data.get('method') or 'GET').upper(),
            url=url if isinstance(url, str) else '',
            headers={str(k): str(v) for k, v in headers.items()},
            body=RequestBody.from_dict(data['body']) if data.get('body') else None,
            auth_type=data.get('authType') or 'none',
            auth_config=AuthConfig.from_dict(data.get('authConfig'))
        )


@dataclass
class ParsedCookie:
    name: str
    value: str = ""
    domain: Optional[str] = None
    path: Optional[str] = None
    expires: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            'name': self.name,
            'value': self.value,
            'domain': self.domain,
            'path': self.path,
            'expires': self.expires,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParsedCookie':
        return cls(
            name=data.get('name', ''),
            value=data.get('value', ''),
            domain=data.get('domain'),
            path=data.get('path'),
            expires=data.get('expires')
        )


@dataclass
class ExecuteResponse:
    """Normalized result of one dispatch, including transport failures."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    duration: int = 0
    size: int = 0
    cookies: Optional[List[ParsedCookie]] = None

    @property
    def is_success(self) -> bool:
        """True for 2xx upstream statuses."""
        return 200 <= self.status_code < 300

    @classmethod
    def failure(cls, message: str) -> 'ExecuteResponse':
        """Zero-status response carrying a diagnostic body."""
        return cls(status_code=0, headers={}, body=message, duration=0, size=0)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'statusCode': self.status_code,
            'headers': dict(self.headers),
            'body': self.body,
            'duration': self.duration,
            'size': self.size,
        }
        if self.cookies:
            data['cookies'] = [c.to_dict() for c in self.cookies]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExecuteResponse':
        cookies = data.get('cookies')
        return cls(
            status_code=int(data.get('statusCode', 0)),
            headers=dict(data.get('headers') or {}),
            body=data.get('body', ''),
            duration=int(data.get('duration', 0)),
            size=int(data.get('size', 0)),
            cookies=[ParsedCookie.from_dict(c) for c in cookies] if cookies else None
        )


@dataclass
class RequestHistory:
    """One executed request and its response."""

    id: str
    request_id: str
    url: str
    method: str
    status_code: int
    duration: int
    headers: Dict[str, str]
    body: str
    response_headers: Dict[str, str]
    response_body: str
    executed_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'requestId': self.request_id,
            'url': self.url,
            'method': self.method,
            'statusCode': self.status_code,
            'duration': self.duration,
            'headers': dict(self.headers),
            'body': self.body,
            'responseHeaders': dict(self.response_headers),
            'responseBody': self.response_body,
            'executedAt': self.executed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RequestHistory':
        return cls(
            id=data['id'],
            request_id=data.get('requestId', ''),
            url=data.get('url', ''),
            method=data.get('method', 'GET'),
            status_code=data.get('statusCode', 0),
            duration=data.get('duration', 0),
            headers=dict(data.get('headers') or {}),
            body=data.get('body', ''),
            response_headers=dict(data.get('responseHeaders') or {}),
            response_body=data.get('responseBody', ''),
            executed_at=data.get('executedAt', 0)
        )


@dataclass
class Workspace:
    id: str
    name: str
    is_local: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'isLocal': self.is_local}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Workspace':
        return cls(id=data['id'], name=data.get('name', ''), is_local=data.get('isLocal', True))
