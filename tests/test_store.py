"""
Tests for Postduck workspace store

Tests collections, requests, environments, auth sessions, history,
Postman import and snapshot persistence.
"""

import json
import tempfile
from pathlib import Path

import pytest

from postduck.common.errors import NotFoundError
from postduck.importers.postman import parse_postman_collection
from postduck.request.models import EnvironmentVariable, RequestDescriptor
from postduck.store.workspace import DEFAULT_ENVIRONMENT_ID, WorkspaceStore


@pytest.fixture
def store():
    return WorkspaceStore()


class TestDefaults:

    def test_default_workspace_and_environment(self, store):
        assert store.get_workspace().name == 'My Workspace'

        active = store.get_active_environment()
        assert active.id == DEFAULT_ENVIRONMENT_ID
        assert active.name == 'Default'


class TestCollections:

    def test_create_and_list_children(self, store):
        parent = store.create_collection('API')
        child_b = store.create_collection('B', parent_id=parent.id, order=2)
        child_a = store.create_collection('A', parent_id=parent.id, order=1)

        children = store.list_collections(parent_id=parent.id, all_levels=False)

        assert [c.id for c in children] == [child_a.id, child_b.id]
        assert parent.id.startswith('col_')

    def test_missing_parent(self, store):
        with pytest.raises(NotFoundError):
            store.create_collection('Orphan', parent_id='col_missing')

    def test_delete_is_recursive(self, store):
        root = store.create_collection('Root')
        child = store.create_collection('Child', parent_id=root.id)
        grandchild = store.create_collection('Grandchild', parent_id=child.id)
        keep = store.create_collection('Keep')
        store.create_request(RequestDescriptor(collection_id=grandchild.id, url='https://a.test'))
        kept_request = store.create_request(RequestDescriptor(collection_id=keep.id, url='https://b.test'))

        assert store.delete_collection(root.id) == 3
        assert [c.id for c in store.list_collections()] == [keep.id]
        assert [r.id for r in store.list_requests()] == [kept_request.id]

    def test_move_up_places_after_parent(self, store):
        parent = store.create_collection('Parent', order=3)
        child = store.create_collection('Child', parent_id=parent.id)

        moved = store.move_collection_up(child.id)

        assert moved.parent_id is None
        assert moved.order == 4

    def test_move_down_nests_into_previous_sibling(self, store):
        first = store.create_collection('First', order=0)
        store.create_collection('Inside', parent_id=first.id, order=5)
        second = store.create_collection('Second', order=1)

        moved = store.move_collection_down(second.id)

        assert moved.parent_id == first.id
        assert moved.order == 6

    def test_move_down_first_root_sibling_stays(self, store):
        first = store.create_collection('First', order=0)
        assert store.move_collection_down(first.id).parent_id is None

    def test_records_are_copies(self, store):
        collection = store.create_collection('API')
        collection.name = 'Changed'
        assert store.get_collection(collection.id).name == 'API'


class TestRequests:

    def test_create_assigns_id_and_timestamps(self, store):
        folder = store.create_collection('API')
        request = store.create_request(RequestDescriptor(id='ignored', collection_id=folder.id, url='https://a.test'))

        assert request.id.startswith('req_')
        assert request.id != 'ignored'
        assert request.created_at > 0
        assert request.updated_at == request.created_at

    def test_unknown_collection(self, store):
        with pytest.raises(NotFoundError):
            store.create_request(RequestDescriptor(collection_id='col_missing'))

    def test_update(self, store):
        request = store.create_request(RequestDescriptor(url='https://a.test'))

        updated = store.update_request(request.id, name='Renamed', method='PUT')

        assert updated.name == 'Renamed'
        assert updated.method == 'PUT'
        assert store.get_request(request.id).name == 'Renamed'

    def test_update_unknown_field(self, store):
        request = store.create_request(RequestDescriptor(url='https://a.test'))
        with pytest.raises(ValueError, match='Unknown RequestDescriptor fields'):
            store.update_request(request.id, colour='blue')

    def test_delete(self, store):
        request = store.create_request(RequestDescriptor(url='https://a.test'))
        store.delete_request(request.id)

        assert store.get_request(request.id) is None
        with pytest.raises(NotFoundError):
            store.delete_request(request.id)


class TestEnvironments:

    def test_single_active_environment(self, store):
        staging = store.create_environment('Staging', variables=[EnvironmentVariable(key='base', value='s')])
        assert store.get_active_environment().id == DEFAULT_ENVIRONMENT_ID

        store.set_active_environment(staging.id)

        active = [e.id for e in store.list_environments() if e.is_active]
        assert active == [staging.id]
        assert store.get_active_environment().get_variable('base').value == 's'

    def test_variables_get_ids(self, store):
        environment = store.create_environment('Dev', variables=[EnvironmentVariable(key='a', value='1')])
        assert environment.variables[0].id.startswith('var_')

    def test_update_rejects_activation(self, store):
        with pytest.raises(ValueError):
            store.update_environment(DEFAULT_ENVIRONMENT_ID, is_active=False)

    def test_set_variable_replaces_in_place(self, store):
        environment = store.create_environment('Dev', variables=[
            EnvironmentVariable(key='a', value='1'),
            EnvironmentVariable(key='token', value='old'),
        ])
        original_id = environment.variables[1].id

        updated = store.set_environment_variable(environment.id, 'token', 'new', is_secret=True)
        appended = store.set_environment_variable(environment.id, 'b', '2')

        assert updated.variables[1].id == original_id
        assert updated.variables[1].is_secret
        assert [(v.key, v.value) for v in appended.variables] == [('a', '1'), ('token', 'new'), ('b', '2')]

    def test_set_variable_unknown_environment(self, store):
        with pytest.raises(NotFoundError):
            store.set_environment_variable('env_missing', 'a', '1')


class TestAuthSessions:

    def test_lookup_by_request_and_clear(self, store):
        session = store.create_auth_session('Login', 'req_1', 'bearer', 'tok')

        assert store.get_auth_session_by_request('req_1').id == session.id
        assert store.get_auth_session_by_request('req_2') is None
        assert store.clear_auth_sessions() == 1
        assert store.list_auth_sessions() == []

    def test_upsert_creates_then_refreshes(self, store):
        created, was_created = store.upsert_auth_session('req_1', 'Login', 'bearer', 'tok1')
        refreshed, refreshed_created = store.upsert_auth_session('req_1', 'Other', 'cookie', 'tok2', 'hist_2')

        assert was_created
        assert not refreshed_created
        assert refreshed.id == created.id
        assert refreshed.name == 'Login'
        assert refreshed.token_type == 'bearer'
        assert refreshed.token_value == 'tok2'
        assert refreshed.login_response_history_id == 'hist_2'
        assert len(store.list_auth_sessions()) == 1

    def test_update_token(self, store):
        session = store.create_auth_session('Login', 'req_1', 'cookie', 'sid=1')

        updated = store.update_auth_session(session.id, token_value='sid=2')

        assert updated.token_value == 'sid=2'
        assert updated.updated_at >= session.updated_at

    def test_delete_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.delete_auth_session('auth_missing')


class TestHistory:

    def test_newest_first_and_filtered(self, store):
        first = store.add_history('req_1', 'https://a.test', 'GET', 200, 10, {}, '', {}, 'one')
        second = store.add_history('req_2', 'https://b.test', 'GET', 404, 20, {}, '', {}, 'two')
        third = store.add_history('req_1', 'https://a.test', 'GET', 0, 0, {}, '', {}, 'three')

        assert [h.id for h in store.list_history()] == [third.id, second.id, first.id]
        assert [h.id for h in store.list_history(request_id='req_1')] == [third.id, first.id]
        assert [h.id for h in store.list_history(limit=1)] == [third.id]
        assert store.get_history(second.id).status_code == 404


class TestImportParsedCollection:

    def test_import_maps_folders_and_requests(self, store):
        existing = store.create_request(RequestDescriptor(url='https://a.test', order=7))
        parsed = parse_postman_collection(json.dumps({
            'info': {'name': 'Duck API'},
            'variable': [{'key': 'base', 'value': 'https://api.test'}],
            'item': [
                {'name': 'Users', 'item': [{'name': 'List', 'request': {'url': '{{base}}/users'}}]},
                {'name': 'Health', 'request': {'url': '{{base}}/health'}},
            ]
        }))

        destination = store.import_parsed_collection(parsed, name='Imported')

        assert destination.name == 'Imported'
        assert destination.parent_id is None

        folders = store.list_collections(parent_id=destination.id, all_levels=False)
        assert [f.name for f in folders] == ['Users']

        imported = {r.name: r for r in store.list_requests() if r.id != existing.id}
        assert imported['List'].collection_id == folders[0].id
        assert imported['Health'].collection_id == destination.id
        assert imported['List'].order == 8
        assert imported['Health'].order == 9

        environment = next(e for e in store.list_environments() if e.name == 'Imported')
        assert not environment.is_active
        assert environment.get_variable('base').value == 'https://api.test'
        assert store.get_active_environment().id == DEFAULT_ENVIRONMENT_ID


class TestSnapshots:

    def test_save_and_load(self, store):
        folder = store.create_collection('API')
        request = store.create_request(RequestDescriptor(collection_id=folder.id, name='Get', url='https://a.test'))
        store.create_auth_session('Login', request.id, 'bearer', 'tok')
        store.add_history(request.id, 'https://a.test', 'GET', 200, 5, {}, '', {}, 'ok')

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'nested' / 'workspace.json'
            store.save(str(path))

            loaded = WorkspaceStore.load(str(path))

        assert loaded.get_request(request.id).name == 'Get'
        assert loaded.get_collection(folder.id).name == 'API'
        assert loaded.list_auth_sessions()[0].token_value == 'tok'
        assert len(loaded.list_history()) == 1
        assert loaded.get_active_environment().id == DEFAULT_ENVIRONMENT_ID

    def test_load_missing_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = WorkspaceStore.load(str(Path(tmp) / 'absent.json'))

        assert store.get_active_environment().name == 'Default'
        assert store.list_requests() == []
