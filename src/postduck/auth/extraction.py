"""
Postduck Auth Token Extraction

Pulls an auth token out of a successful login response and upserts it as a
reusable auth session, optionally mirroring it into an environment variable.

Extraction never fails the request it runs after: unparseable bodies,
missing paths and absent headers or cookies only produce a log line.
"""

import logging
from typing import Any, Optional

from ..common.errors import NotFoundError
from ..common.utils import JsonBody, classify_json
from ..request.models import (
    AuthExtractionConfig,
    AuthSession,
    Environment,
    ExecuteResponse,
    RequestDescriptor,
)

logger = logging.getLogger("postduck.auth")

DEFAULT_SESSION_NAME = "Auth Session"


def get_nested_value(data: Any, path: Optional[str]) -> Any:
    """
    Walk a dot-notation path through decoded JSON.

    Numeric segments index into lists. Any missing step yields None.

    Example:
        get_nested_value({'data': {'tokens': [{'access': 'abc'}]}}, 'data.tokens.0.access')
        # 'abc'
    """
    if not path:
        return None

    current = data
    for key in path.split('.'):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None

        if current is None:
            return None

    return current


def _token_to_string(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    token = str(value)
    return token or None


def extract_auth_token(response: ExecuteResponse, config: AuthExtractionConfig) -> Optional[str]:
    """
    Extract a token from a response according to an extraction rule.

    Sources:
    - body: JSON body walked with the dot path in config.path
    - header: exact (case-sensitive) response header named by config.path
    - cookie: parsed cookie named config.cookie_name (case-insensitive)

    Args:
        response: Response produced by the dispatcher
        config: Extraction rule

    Returns:
        Token string, or None when nothing could be extracted
    """
    if not config.enabled:
        return None

    if config.extract_from == 'body':
        parsed = classify_json(response.body)
        if not isinstance(parsed, JsonBody):
            logger.warning("Auth extraction: response body is not JSON")
            return None

        token = _token_to_string(get_nested_value(parsed.value, config.path))
        if token is None:
            logger.debug(f"Auth extraction: no token at path {config.path!r}")
        return token

    if config.extract_from == 'cookie':
        if not response.cookies or not config.cookie_name:
            logger.debug(
                f"Auth extraction: no cookies or cookie name missing "
                f"(cookies={bool(response.cookies)}, cookie_name={config.cookie_name!r})"
            )
            return None

        wanted = config.cookie_name.lower()
        for cookie in response.cookies:
            if cookie.name.lower() == wanted:
                return cookie.value or None

        logger.debug(
            f"Auth extraction: cookie {config.cookie_name!r} not found "
            f"among {[c.name for c in response.cookies]}"
        )
        return None

    if config.extract_from == 'header':
        if not config.path:
            return None
        return response.headers.get(config.path) or None

    logger.warning(f"Auth extraction: unknown source {config.extract_from!r}")
    return None


class AuthTokenExtractor:
    """
    Apply a request's extraction rule to its response and persist the result.

    The store collaborator must provide upsert_auth_session and
    set_environment_variable (see postduck.store.WorkspaceStore).

    Example:
        extractor = AuthTokenExtractor(store)
        session = extractor.apply(request, response, history_id=history.id,
                                  environment=store.get_active_environment())
    """

    def __init__(self, store):
        """
        Initialize extractor.

        Args:
            store: Workspace store holding auth sessions and environments
        """
        self.store = store

    @staticmethod
    def should_extract(request: RequestDescriptor, response: ExecuteResponse) -> bool:
        """Extraction runs only for enabled rules on 2xx responses."""
        extraction = request.auth_extraction
        return bool(extraction and extraction.enabled) and response.is_success

    def apply(
        self,
        request: RequestDescriptor,
        response: ExecuteResponse,
        history_id: Optional[str] = None,
        environment: Optional[Environment] = None
    ) -> Optional[AuthSession]:
        """
        Extract a token and upsert the auth session for this request.

        Args:
            request: Request that produced the response
            response: Fully read response
            history_id: History record of this execution
            environment: Environment active when the request was sent

        Returns:
            The created or updated AuthSession, or None if nothing was extracted
        """
        if not self.should_extract(request, response):
            return None

        config = request.auth_extraction
        token = extract_auth_token(response, config)
        if not token:
            logger.info(f"Auth extraction produced no token for request {request.id or request.name!r}")
            return None

        try:
            session = self._upsert_session(request, config, token, history_id)
            if config.save_as_env_variable and environment is not None:
                self._upsert_env_variable(environment, config.save_as_env_variable, token)
        except Exception:
            logger.exception(f"Failed to store extracted token for request {request.id}")
            return None

        return session

    def _upsert_session(
        self,
        request: RequestDescriptor,
        config: AuthExtractionConfig,
        token: str,
        history_id: Optional[str]
    ) -> AuthSession:
        name = config.session_name or request.name or DEFAULT_SESSION_NAME
        session, created = self.store.upsert_auth_session(
            request_id=request.id,
            name=name,
            token_type=config.token_type,
            token_value=token,
            login_response_history_id=history_id
        )
        if created:
            logger.info(f"Created auth session {session.id} ({name}) from request {request.id}")
        else:
            logger.info(f"Refreshed auth session {session.id} from request {request.id}")
        return session

    def _upsert_env_variable(self, environment: Environment, key: str, token: str):
        try:
            self.store.set_environment_variable(environment.id, key, token, is_secret=True)
        except NotFoundError:
            logger.warning(f"Environment {environment.id} no longer exists, token not saved as {key}")
            return
        logger.debug(f"Saved extracted token to environment variable {key}")
