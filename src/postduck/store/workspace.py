"""
Postduck Workspace Store

In-memory store for requests, collections, environments, auth sessions and
request history, with JSON snapshot files for persistence between runs.

Records handed out are copies: callers snapshot state (active environment,
auth sessions) once per dispatch and mutate only through store methods.
"""

import copy
import json
import logging
import threading
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..common.errors import NotFoundError
from ..common.utils import generate_id, now_ms
from ..request.models import (
    AuthConfig,
    AuthSession,
    Collection,
    Environment,
    EnvironmentVariable,
    RequestBody,
    RequestDescriptor,
    RequestHistory,
    Workspace,
)

logger = logging.getLogger("postduck.store")

DEFAULT_WORKSPACE_ID = 'local-workspace'
DEFAULT_ENVIRONMENT_ID = 'default-env'
SNAPSHOT_VERSION = 1


def _check_fields(record_type, updates: Dict[str, Any]):
    known = {f.name for f in fields(record_type)}
    unknown = set(updates) - known
    if unknown:
        raise ValueError(f"Unknown {record_type.__name__} fields: {', '.join(sorted(unknown))}")


class WorkspaceStore:
    """
    Local workspace state: one workspace, its collection tree, requests,
    environments, auth sessions and history.

    Features:
    - Generated ids (<prefix>_<epoch ms>_<9 chars>) and server-side timestamps
    - At most one active environment per workspace
    - At most one auth session per request (see get_auth_session_by_request)
    - Recursive collection delete
    - Postman import with temporary-id remapping
    - JSON snapshot load/save

    Example:
        store = WorkspaceStore()
        folder = store.create_collection('Users API')
        request = store.create_request(RequestDescriptor(collection_id=folder.id, name='List',
                                                         url='{{base}}/users'))
        store.save('workspace.json')
    """

    def __init__(self, workspace_id: str = DEFAULT_WORKSPACE_ID, initialize: bool = True):
        """
        Initialize store.

        Args:
            workspace_id: Id of the local workspace
            initialize: Create the default workspace and active 'Default' environment
        """
        self.workspace_id = workspace_id
        self.workspaces: Dict[str, Workspace] = {}
        self.collections: Dict[str, Collection] = {}
        self.requests: Dict[str, RequestDescriptor] = {}
        self.environments: Dict[str, Environment] = {}
        self.auth_sessions: Dict[str, AuthSession] = {}
        self.history: List[RequestHistory] = []
        self._lock = threading.RLock()

        if initialize:
            self._initialize_default_workspace()

    def _initialize_default_workspace(self):
        if self.workspaces:
            return

        self.workspaces[self.workspace_id] = Workspace(id=self.workspace_id, name='My Workspace', is_local=True)
        now = now_ms()
        self.environments[DEFAULT_ENVIRONMENT_ID] = Environment(
            id=DEFAULT_ENVIRONMENT_ID,
            workspace_id=self.workspace_id,
            name='Default',
            is_active=True,
            variables=[],
            created_at=now,
            updated_at=now
        )

    def get_workspace(self) -> Optional[Workspace]:
        return copy.deepcopy(self.workspaces.get(self.workspace_id))

    # Collections

    def create_collection(
        self,
        name: str,
        parent_id: Optional[str] = None,
        order: int = 0
    ) -> Collection:
        """Create a collection (folder), optionally nested under parent_id."""
        with self._lock:
            if parent_id is not None and parent_id not in self.collections:
                raise NotFoundError(f"Parent collection not found: {parent_id}")

            now = now_ms()
            collection = Collection(
                id=generate_id('col'),
                workspace_id=self.workspace_id,
                name=name,
                parent_id=parent_id,
                order=order,
                created_at=now,
                updated_at=now
            )
            self.collections[collection.id] = collection
            return copy.deepcopy(collection)

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        return copy.deepcopy(self.collections.get(collection_id))

    def list_collections(self, parent_id: Optional[str] = None, all_levels: bool = True) -> List[Collection]:
        """
        List collections sorted by order.

        Args:
            parent_id: Only children of this collection (None with
                       all_levels=False means root collections)
            all_levels: Ignore parent_id and return every collection
        """
        with self._lock:
            items = [
                c for c in self.collections.values()
                if all_levels or c.parent_id == parent_id
            ]
            return copy.deepcopy(sorted(items, key=lambda c: c.order))

    def update_collection(self, collection_id: str, **updates) -> Collection:
        return self._update(self.collections, Collection, collection_id, updates)

    def delete_collection(self, collection_id: str) -> int:
        """
        Delete a collection, its descendant collections and all their requests.

        Returns:
            Number of collections removed
        """
        with self._lock:
            if collection_id not in self.collections:
                raise NotFoundError(f"Collection not found: {collection_id}")

            to_delete = []
            pending = [collection_id]
            while pending:
                current = pending.pop()
                to_delete.append(current)
                pending.extend(c.id for c in self.collections.values() if c.parent_id == current)

            doomed = set(to_delete)
            for request_id in [r.id for r in self.requests.values() if r.collection_id in doomed]:
                del self.requests[request_id]
            for current in to_delete:
                del self.collections[current]

            logger.debug(f"Deleted {len(to_delete)} collection(s) under {collection_id}")
            return len(to_delete)

    def move_collection_up(self, collection_id: str) -> Collection:
        """Move a collection to its parent's level, just after the parent."""
        with self._lock:
            collection = self._require(self.collections, collection_id, 'Collection')
            if collection.parent_id is None:
                return copy.deepcopy(collection)

            parent = self.collections.get(collection.parent_id)
            if parent is None:
                return copy.deepcopy(collection)

            return self.update_collection(collection_id, parent_id=parent.parent_id, order=parent.order + 1)

    def move_collection_down(self, collection_id: str) -> Collection:
        """
        Nest a collection into its previous sibling.

        The first sibling instead moves to its grandparent's level; a first
        sibling at root or directly under a root folder stays put.
        """
        with self._lock:
            collection = self._require(self.collections, collection_id, 'Collection')
            siblings = sorted(
                (c for c in self.collections.values() if c.parent_id == collection.parent_id),
                key=lambda c: c.order
            )
            index = next(i for i, c in enumerate(siblings) if c.id == collection_id)

            if index > 0:
                target = siblings[index - 1]
                return self.update_collection(
                    collection_id,
                    parent_id=target.id,
                    order=self._max_child_order(target.id) + 1
                )

            parent = self.collections.get(collection.parent_id) if collection.parent_id else None
            if parent is not None and parent.parent_id:
                return self.update_collection(
                    collection_id,
                    parent_id=parent.parent_id,
                    order=self._max_child_order(parent.parent_id) + 1
                )

            return copy.deepcopy(collection)

    def _max_child_order(self, parent_id: str) -> int:
        orders = [c.order for c in self.collections.values() if c.parent_id == parent_id]
        return max(orders) if orders else -1

    # Requests

    def create_request(self, request: RequestDescriptor) -> RequestDescriptor:
        """
        Store a new request.

        The id and timestamps are assigned here; any set on the argument are
        ignored.
        """
        with self._lock:
            if request.collection_id and request.collection_id not in self.collections:
                raise NotFoundError(f"Collection not found: {request.collection_id}")

            now = now_ms()
            stored = replace(copy.deepcopy(request), id=generate_id('req'), created_at=now, updated_at=now)
            self.requests[stored.id] = stored
            return copy.deepcopy(stored)

    def get_request(self, request_id: str) -> Optional[RequestDescriptor]:
        return copy.deepcopy(self.requests.get(request_id))

    def list_requests(self, collection_id: Optional[str] = None) -> List[RequestDescriptor]:
        with self._lock:
            items = [
                r for r in self.requests.values()
                if collection_id is None or r.collection_id == collection_id
            ]
            return copy.deepcopy(sorted(items, key=lambda r: r.order))

    def update_request(self, request_id: str, **updates) -> RequestDescriptor:
        """Replace top-level request fields (body, headers and auth are replaced wholesale)."""
        return self._update(self.requests, RequestDescriptor, request_id, updates)

    def delete_request(self, request_id: str):
        with self._lock:
            self._require(self.requests, request_id, 'Request')
            del self.requests[request_id]

    def max_request_order(self) -> int:
        with self._lock:
            return max([0] + [r.order for r in self.requests.values()])

    # Environments

    def create_environment(
        self,
        name: str,
        variables: Optional[List[EnvironmentVariable]] = None,
        is_active: bool = False
    ) -> Environment:
        with self._lock:
            now = now_ms()
            environment = Environment(
                id=generate_id('env'),
                workspace_id=self.workspace_id,
                name=name,
                is_active=False,
                variables=copy.deepcopy(variables or []),
                created_at=now,
                updated_at=now
            )
            for variable in environment.variables:
                if not variable.id:
                    variable.id = generate_id('var')

            self.environments[environment.id] = environment
            if is_active:
                self.set_active_environment(environment.id)
            return copy.deepcopy(self.environments[environment.id])

    def get_environment(self, environment_id: str) -> Optional[Environment]:
        return copy.deepcopy(self.environments.get(environment_id))

    def list_environments(self) -> List[Environment]:
        with self._lock:
            return copy.deepcopy(sorted(self.environments.values(), key=lambda e: e.created_at))

    def update_environment(self, environment_id: str, **updates) -> Environment:
        if 'is_active' in updates:
            raise ValueError("Use set_active_environment to change the active environment")
        return self._update(self.environments, Environment, environment_id, updates)

    def set_environment_variable(
        self,
        environment_id: str,
        key: str,
        value: str,
        is_secret: bool = False
    ) -> Environment:
        """Set one variable in place, keeping its id, or append it."""
        with self._lock:
            environment = self._require(self.environments, environment_id, 'Environment')
            variables = list(environment.variables)
            for index, variable in enumerate(variables):
                if variable.key == key:
                    variables[index] = EnvironmentVariable(
                        id=variable.id, key=key, value=value, is_secret=is_secret
                    )
                    break
            else:
                variables.append(EnvironmentVariable(
                    id=generate_id('var'), key=key, value=value, is_secret=is_secret
                ))
            return self.update_environment(environment_id, variables=variables)

    def delete_environment(self, environment_id: str):
        with self._lock:
            self._require(self.environments, environment_id, 'Environment')
            del self.environments[environment_id]

    def set_active_environment(self, environment_id: str) -> Environment:
        """Activate one environment and deactivate every other in the workspace."""
        with self._lock:
            target = self._require(self.environments, environment_id, 'Environment')
            for environment in self.environments.values():
                if environment.workspace_id == target.workspace_id:
                    environment.is_active = environment.id == environment_id
            return copy.deepcopy(target)

    def get_active_environment(self) -> Optional[Environment]:
        with self._lock:
            for environment in self.environments.values():
                if environment.is_active and environment.workspace_id == self.workspace_id:
                    return copy.deepcopy(environment)
            return None

    # Auth sessions

    def create_auth_session(
        self,
        name: str,
        request_id: str,
        token_type: str,
        token_value: str,
        expires_at: Optional[int] = None,
        login_response_history_id: Optional[str] = None
    ) -> AuthSession:
        with self._lock:
            now = now_ms()
            session = AuthSession(
                id=generate_id('auth'),
                workspace_id=self.workspace_id,
                name=name,
                request_id=request_id,
                token_type=token_type,
                token_value=token_value,
                expires_at=expires_at,
                login_response_history_id=login_response_history_id,
                created_at=now,
                updated_at=now
            )
            self.auth_sessions[session.id] = session
            return copy.deepcopy(session)

    def get_auth_session(self, session_id: str) -> Optional[AuthSession]:
        return copy.deepcopy(self.auth_sessions.get(session_id))

    def get_auth_session_by_request(self, request_id: str) -> Optional[AuthSession]:
        with self._lock:
            for session in self.auth_sessions.values():
                if session.request_id == request_id:
                    return copy.deepcopy(session)
            return None

    def upsert_auth_session(
        self,
        request_id: str,
        name: str,
        token_type: str,
        token_value: str,
        login_response_history_id: Optional[str] = None
    ) -> Tuple[AuthSession, bool]:
        """
        Refresh the session captured from a request, or create it.

        Lookup and write happen under one lock hold: at most one session
        exists per request_id. A refreshed session keeps its name and token
        type.

        Returns:
            (session, created)
        """
        with self._lock:
            for session in self.auth_sessions.values():
                if session.request_id == request_id:
                    updated = self.update_auth_session(
                        session.id,
                        token_value=token_value,
                        login_response_history_id=login_response_history_id
                    )
                    return updated, False

            created = self.create_auth_session(
                name=name,
                request_id=request_id,
                token_type=token_type,
                token_value=token_value,
                login_response_history_id=login_response_history_id
            )
            return created, True

    def list_auth_sessions(self) -> List[AuthSession]:
        """Snapshot of every stored session, most recently updated first."""
        with self._lock:
            return copy.deepcopy(sorted(self.auth_sessions.values(), key=lambda s: s.updated_at, reverse=True))

    def update_auth_session(self, session_id: str, **updates) -> AuthSession:
        return self._update(self.auth_sessions, AuthSession, session_id, updates)

    def delete_auth_session(self, session_id: str):
        with self._lock:
            self._require(self.auth_sessions, session_id, 'Auth session')
            del self.auth_sessions[session_id]

    def clear_auth_sessions(self) -> int:
        with self._lock:
            count = len(self.auth_sessions)
            self.auth_sessions.clear()
            return count

    # History

    def add_history(
        self,
        request_id: str,
        url: str,
        method: str,
        status_code: int,
        duration: int,
        headers: Dict[str, str],
        body: str,
        response_headers: Dict[str, str],
        response_body: str
    ) -> RequestHistory:
        with self._lock:
            entry = RequestHistory(
                id=generate_id('hist'),
                request_id=request_id,
                url=url,
                method=method,
                status_code=status_code,
                duration=duration,
                headers=dict(headers),
                body=body,
                response_headers=dict(response_headers),
                response_body=response_body,
                executed_at=now_ms()
            )
            self.history.append(entry)
            return copy.deepcopy(entry)

    def get_history(self, history_id: str) -> Optional[RequestHistory]:
        with self._lock:
            for entry in self.history:
                if entry.id == history_id:
                    return copy.deepcopy(entry)
            return None

    def list_history(self, request_id: Optional[str] = None, limit: Optional[int] = None) -> List[RequestHistory]:
        """History entries, newest first."""
        with self._lock:
            entries = [h for h in reversed(self.history) if request_id is None or h.request_id == request_id]
            if limit is not None:
                entries = entries[:limit]
            return copy.deepcopy(entries)

    # Import

    def import_parsed_collection(self, parsed, name: Optional[str] = None) -> Collection:
        """
        Create collections, requests and an environment from a parsed Postman collection.

        A destination folder is created at root; parsed root folders and
        requests in the "root" sentinel collection land inside it.

        Args:
            parsed: ParsedCollection from parse_postman_collection
            name: Destination folder name (defaults to the collection name)

        Returns:
            The destination collection
        """
        with self._lock:
            destination = self.create_collection(name or parsed.name, parent_id=None, order=0)

            id_map = {'root': destination.id}
            for node in parsed.collections:
                parent_id = id_map[node.parent_id] if node.parent_id else destination.id
                created = self.create_collection(node.name, parent_id=parent_id, order=node.order)
                id_map[node.id] = created.id

            base_order = self.max_request_order()
            for index, request in enumerate(parsed.requests):
                collection_id = id_map.get(request.collection_id)
                if collection_id is None:
                    raise NotFoundError(f"Collection not found for request: {request.name}")

                self.create_request(RequestDescriptor(
                    collection_id=collection_id,
                    name=request.name,
                    method=request.method,
                    url=request.url,
                    headers=dict(request.headers),
                    body=copy.deepcopy(request.body) if request.body else RequestBody(),
                    auth_type=request.auth_type,
                    auth_config=copy.deepcopy(request.auth_config) if request.auth_config else AuthConfig(),
                    order=base_order + index + 1
                ))

            if parsed.variables:
                self.create_environment(
                    destination.name,
                    variables=[EnvironmentVariable(key=k, value=v) for k, v in parsed.variables.items()]
                )

            logger.info(
                f"Imported {parsed.name!r}: {len(parsed.collections)} folder(s), "
                f"{len(parsed.requests)} request(s), {len(parsed.variables)} variable(s)"
            )
            return destination

    # Snapshots

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'version': SNAPSHOT_VERSION,
                'workspaceId': self.workspace_id,
                'workspaces': [w.to_dict() for w in self.workspaces.values()],
                'collections': [c.to_dict() for c in self.collections.values()],
                'requests': [r.to_dict() for r in self.requests.values()],
                'environments': [e.to_dict() for e in self.environments.values()],
                'authSessions': [s.to_dict() for s in self.auth_sessions.values()],
                'history': [h.to_dict() for h in self.history],
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkspaceStore':
        store = cls(workspace_id=data.get('workspaceId', DEFAULT_WORKSPACE_ID), initialize=False)
        store.workspaces = {w['id']: Workspace.from_dict(w) for w in data.get('workspaces', [])}
        store.collections = {c['id']: Collection.from_dict(c) for c in data.get('collections', [])}
        store.requests = {r['id']: RequestDescriptor.from_dict(r) for r in data.get('requests', [])}
        store.environments = {e['id']: Environment.from_dict(e) for e in data.get('environments', [])}
        store.auth_sessions = {s['id']: AuthSession.from_dict(s) for s in data.get('authSessions', [])}
        store.history = [RequestHistory.from_dict(h) for h in data.get('history', [])]
        store._initialize_default_workspace()
        return store

    def save(self, path: str):
        """Write a JSON snapshot of the whole store."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Saved workspace snapshot to {path}")

    @classmethod
    def load(cls, path: str) -> 'WorkspaceStore':
        """Load a JSON snapshot; a missing file yields a fresh store."""
        path = Path(path)
        if not path.exists():
            logger.debug(f"No workspace snapshot at {path}, starting empty")
            return cls()

        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    # Helpers

    @staticmethod
    def _require(table: Dict[str, Any], record_id: str, kind: str):
        record = table.get(record_id)
        if record is None:
            raise NotFoundError(f"{kind} not found: {record_id}")
        return record

    def _update(self, table: Dict[str, Any], record_type, record_id: str, updates: Dict[str, Any]):
        _check_fields(record_type, updates)
        updates.pop('id', None)
        updates.pop('created_at', None)
        with self._lock:
            record = self._require(table, record_id, record_type.__name__)
            updated = replace(record, **copy.deepcopy(updates))
            updated.updated_at = now_ms()
            table[record_id] = updated
            return copy.deepcopy(updated)
