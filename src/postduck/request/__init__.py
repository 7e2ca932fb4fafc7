"""
Postduck Request Module

Request data model and the resolution steps applied before dispatch.

This module provides:
- Request, environment and session dataclasses
- {{variable}} interpolation
- :name path parameter substitution
- Shared auth/header/body materialization
"""

from .models import (
    HTTP_METHODS,
    AUTH_TYPES,
    BODY_TYPES,
    FormDataEntry,
    RequestBody,
    BearerAuth,
    BasicAuth,
    ApiKeyAuth,
    AuthConfig,
    AuthExtractionConfig,
    RequestDescriptor,
    Collection,
    EnvironmentVariable,
    Environment,
    AuthSession,
    ExecuteRequestParams,
    ParsedCookie,
    ExecuteResponse,
    RequestHistory,
    Workspace,
)
from .variables import interpolate, interpolate_request, find_unresolved
from .path_params import extract_path_params, replace_path_params
from .resolution import (
    prepare_request,
    materialize_auth,
    materialize_body,
    apply_query_auth,
    has_header,
)

__all__ = [
    'HTTP_METHODS',
    'AUTH_TYPES',
    'BODY_TYPES',
    'FormDataEntry',
    'RequestBody',
    'BearerAuth',
    'BasicAuth',
    'ApiKeyAuth',
    'AuthConfig',
    'AuthExtractionConfig',
    'RequestDescriptor',
    'Collection',
    'EnvironmentVariable',
    'Environment',
    'AuthSession',
    'ExecuteRequestParams',
    'ParsedCookie',
    'ExecuteResponse',
    'RequestHistory',
    'Workspace',
    'interpolate',
    'interpolate_request',
    'find_unresolved',
    'extract_path_params',
    'replace_path_params',
    'prepare_request',
    'materialize_auth',
    'materialize_body',
    'apply_query_auth',
    'has_header',
]
