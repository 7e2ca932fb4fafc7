"""
Tests for Postduck Request Executor

Tests the end-to-end pipeline against an in-memory store with a mocked
dispatcher: permissions, path parameters, variables, history and auth
session capture feeding later requests.
"""

from unittest.mock import Mock

import pytest

from postduck.common.errors import PermissionDeniedError, ValidationError
from postduck.dispatch.dispatcher import RequestDispatcher
from postduck.dispatch.executor import RequestExecutor, overlay_variables
from postduck.request.models import (
    AuthExtractionConfig,
    Environment,
    EnvironmentVariable,
    ExecuteResponse,
    RequestDescriptor,
)
from postduck.store.workspace import DEFAULT_ENVIRONMENT_ID, WorkspaceStore


@pytest.fixture
def store():
    store = WorkspaceStore()
    store.update_environment(DEFAULT_ENVIRONMENT_ID, variables=[
        EnvironmentVariable(key='base', value='https://api.test', id='var_1'),
    ])
    return store


@pytest.fixture
def dispatcher():
    dispatcher = Mock(spec=RequestDispatcher)
    dispatcher.dispatch.return_value = ExecuteResponse(
        status_code=200,
        headers={'Content-Type': 'application/json'},
        body='{"token": "abc"}',
        duration=12,
        size=16
    )
    return dispatcher


@pytest.fixture
def executor(store, dispatcher):
    return RequestExecutor(store, dispatcher)


def sent_params(dispatcher):
    return dispatcher.dispatch.call_args[0][0]


class TestExecute:

    def test_resolves_and_records_history(self, store, dispatcher, executor):
        request = store.create_request(RequestDescriptor(name='User', url='{{base}}/users/:id'))

        result = executor.execute(request, path_params={'id': '42'})

        assert sent_params(dispatcher).url == 'https://api.test/users/42'
        assert result.response.status_code == 200

        history = store.list_history(request_id=request.id)
        assert len(history) == 1
        assert history[0].id == result.history_id
        assert history[0].url == 'https://api.test/users/42'
        assert history[0].response_body == '{"token": "abc"}'
        assert history[0].duration == 12

    def test_missing_path_params_become_empty(self, store, dispatcher, executor):
        request = store.create_request(RequestDescriptor(url='{{base}}/users/:id'))

        executor.execute(request)

        assert sent_params(dispatcher).url == 'https://api.test/users/'

    def test_variables_overlay_active_environment(self, store, dispatcher, executor):
        request = store.create_request(RequestDescriptor(url='{{base}}/{{version}}/ping'))

        executor.execute(request, variables={'base': 'https://override.test', 'version': 'v2'})

        assert sent_params(dispatcher).url == 'https://override.test/v2/ping'
        assert store.get_active_environment().get_variable('base').value == 'https://api.test'

    def test_login_session_applies_to_next_request(self, store, dispatcher, executor):
        login = store.create_request(RequestDescriptor(
            name='Login',
            method='POST',
            url='{{base}}/login',
            auth_extraction=AuthExtractionConfig(enabled=True, extract_from='body', path='token')
        ))
        profile = store.create_request(RequestDescriptor(url='{{base}}/me'))

        result = executor.execute(login)
        assert result.auth_session.token_value == 'abc'
        assert result.auth_session.login_response_history_id == result.history_id

        executor.execute(profile)
        assert sent_params(dispatcher).headers == {'Authorization': 'Bearer abc'}

    def test_team_role_may_execute(self, store, dispatcher, executor):
        request = store.create_request(RequestDescriptor(url='https://api.test'))
        executor.execute(request, role='COSMIC_OBSERVER')
        dispatcher.dispatch.assert_called_once()

    def test_unknown_role_rejected(self, store, dispatcher, executor):
        request = store.create_request(RequestDescriptor(url='https://api.test'))

        with pytest.raises(PermissionDeniedError):
            executor.execute(request, role='INTRUDER')

        dispatcher.dispatch.assert_not_called()

    def test_validation_error_propagates_without_history(self, store, dispatcher, executor):
        dispatcher.dispatch.side_effect = ValidationError('URL is required')
        request = store.create_request(RequestDescriptor(url=''))

        with pytest.raises(ValidationError):
            executor.execute(request)

        assert store.list_history() == []

    def test_result_to_dict(self, store, executor):
        request = store.create_request(RequestDescriptor(url='https://api.test'))

        data = executor.execute(request).to_dict()

        assert data['response']['statusCode'] == 200
        assert data['request']['url'] == 'https://api.test'
        assert data['historyId'].startswith('hist_')
        assert 'authSession' not in data


class TestOverlayVariables:

    def test_replaces_and_adds(self):
        environment = Environment(id='e', name='dev', variables=[
            EnvironmentVariable(key='a', value='1'),
            EnvironmentVariable(key='b', value='2'),
        ])

        overlaid = overlay_variables(environment, {'b': '3', 'c': '4'})

        assert [(v.key, v.value) for v in overlaid.variables] == [('a', '1'), ('b', '3'), ('c', '4')]
        assert environment.get_variable('b').value == '2'

    def test_without_environment(self):
        overlaid = overlay_variables(None, {'a': '1'})
        assert overlaid.get_variable('a').value == '1'
