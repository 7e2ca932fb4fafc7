"""
Postduck Request Executor

End-to-end execution of a stored request: permission check, snapshot of the
active environment and auth sessions, resolution, dispatch, history and auth
token extraction.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, Optional

from ..auth.extraction import AuthTokenExtractor
from ..auth.permissions import can_execute
from ..common.errors import PermissionDeniedError
from ..request.models import (
    AuthSession,
    Environment,
    EnvironmentVariable,
    ExecuteRequestParams,
    ExecuteResponse,
    RequestDescriptor,
)
from ..request.path_params import extract_path_params
from ..request.resolution import prepare_request
from .dispatcher import RequestDispatcher

logger = logging.getLogger("postduck.dispatch")


def overlay_variables(environment: Optional[Environment], variables: Dict[str, str]) -> Environment:
    """
    Return a copy of environment with variables set or replaced.

    Without an active environment, an unsaved one holding only the overrides
    is returned.
    """
    if environment is None:
        environment = Environment(id='', name='overrides')

    overridden = [v for v in environment.variables if v.key not in variables]
    overridden.extend(EnvironmentVariable(key=k, value=v) for k, v in variables.items())
    return replace(environment, variables=overridden)


@dataclass
class ExecutionResult:
    """Outcome of one execution."""

    response: ExecuteResponse
    request: ExecuteRequestParams
    history_id: Optional[str] = None
    auth_session: Optional[AuthSession] = None

    def to_dict(self):
        data = {
            'response': self.response.to_dict(),
            'request': self.request.to_dict(),
            'historyId': self.history_id,
        }
        if self.auth_session is not None:
            data['authSession'] = self.auth_session.to_dict()
        return data


class RequestExecutor:
    """
    Run stored requests against a workspace store.

    Example:
        executor = RequestExecutor(store, RequestDispatcher(config))
        result = executor.execute(store.get_request(request_id), path_params={'id': '42'})
        print(result.response.status_code)
    """

    def __init__(
        self,
        store,
        dispatcher: Optional[RequestDispatcher] = None,
        extractor: Optional[AuthTokenExtractor] = None
    ):
        self.store = store
        self.dispatcher = dispatcher or RequestDispatcher()
        self.extractor = extractor or AuthTokenExtractor(store)

    def execute(
        self,
        request: RequestDescriptor,
        path_params: Optional[Dict[str, str]] = None,
        role: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        variables: Optional[Dict[str, str]] = None
    ) -> ExecutionResult:
        """
        Execute a request descriptor.

        Args:
            request: Request to run (stored or unsaved)
            path_params: Values for :name URL tokens; missing names become ''
            role: Team role of the caller; None for a local workspace
            cancel_event: Set to abort the outbound call
            variables: One-off values layered over the active environment

        Returns:
            ExecutionResult with the response, history id and any auth session
            created or refreshed from it

        Raises:
            PermissionDeniedError: role may not execute requests
            ValidationError: request rejected before dispatch
        """
        if role is not None and not can_execute(role):
            raise PermissionDeniedError(role)

        environment = self.store.get_active_environment()
        if variables:
            environment = overlay_variables(environment, variables)
        sessions = self.store.list_auth_sessions()

        supplied = path_params or {}
        values = {name: supplied.get(name, '') for name in extract_path_params(request.url)}

        params = prepare_request(request, environment, sessions, path_params=values)
        response = self.dispatcher.dispatch(params, cancel_event=cancel_event)

        history = self.store.add_history(
            request_id=request.id,
            url=params.url,
            method=params.method,
            status_code=response.status_code,
            duration=response.duration,
            headers=params.headers,
            body=(params.body.content or '') if params.body else '',
            response_headers=response.headers,
            response_body=response.body
        )

        auth_session = self.extractor.apply(request, response, history_id=history.id, environment=environment)
        if auth_session is not None:
            logger.info(f"Auth session {auth_session.name!r} is now available to other requests")

        return ExecutionResult(
            response=response,
            request=params,
            history_id=history.id,
            auth_session=auth_session
        )
