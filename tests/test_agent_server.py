"""
Tests for Postduck Local Agent

Tests the agent's FastAPI routes with a mocked dispatcher:
- Health endpoint
- /proxy status code mapping
- CORS for the web origin
- 404 handling
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from postduck import __version__
from postduck.common.config import PostduckConfig
from postduck.common.errors import ValidationError
from postduck.dispatch.dispatcher import RequestDispatcher
from postduck.request.models import ExecuteResponse
from postduck.server.agent import AgentServer, build_origin_regex, create_agent_app


@pytest.fixture
def dispatcher():
    dispatcher = Mock(spec=RequestDispatcher)
    dispatcher.dispatch.return_value = ExecuteResponse(status_code=200, body='pong', duration=3, size=4)
    return dispatcher


@pytest.fixture
def client(dispatcher):
    return TestClient(create_agent_app(PostduckConfig(), dispatcher))


class TestAgentServer:

    def test_forces_direct_dispatch(self, dispatcher):
        server = AgentServer(PostduckConfig(), dispatcher)
        assert server.dispatcher.prefer_direct is True

    def test_default_dispatcher_is_direct(self):
        assert AgentServer(PostduckConfig()).dispatcher.prefer_direct is True


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json() == {'status': 'ok', 'version': __version__}


class TestProxy:

    def test_success(self, client, dispatcher):
        response = client.post('/proxy', json={'method': 'get', 'url': 'http://localhost:3000/ping'})

        assert response.status_code == 200
        assert response.json() == {'statusCode': 200, 'headers': {}, 'body': 'pong', 'duration': 3, 'size': 4}

        params = dispatcher.dispatch.call_args[0][0]
        assert params.method == 'GET'
        assert params.url == 'http://localhost:3000/ping'

    def test_upstream_failure_is_still_200(self, client, dispatcher):
        dispatcher.dispatch.return_value = ExecuteResponse.failure('Error: Connection refused.')

        response = client.post('/proxy', json={'method': 'GET', 'url': 'http://localhost:1'})

        assert response.status_code == 200
        assert response.json()['statusCode'] == 0

    def test_validation_error_is_400(self, client, dispatcher):
        dispatcher.dispatch.side_effect = ValidationError('URL is required')

        response = client.post('/proxy', json={'method': 'GET', 'url': ''})

        assert response.status_code == 400
        assert response.json()['statusCode'] == 0
        assert response.json()['body'] == 'Error: URL is required'

    def test_malformed_body_is_500(self, client, dispatcher):
        response = client.post('/proxy', content='not json', headers={'Content-Type': 'application/json'})

        assert response.status_code == 500
        assert response.json()['body'].startswith('Error: Invalid request body')
        dispatcher.dispatch.assert_not_called()

    def test_unexpected_error_is_500(self, client, dispatcher):
        dispatcher.dispatch.side_effect = RuntimeError('boom')

        response = client.post('/proxy', json={'method': 'GET', 'url': 'http://localhost:3000'})

        assert response.status_code == 500
        assert response.json()['body'] == 'Error: boom'


class TestRouting:

    def test_unknown_route(self, client):
        response = client.get('/nope')

        assert response.status_code == 404
        assert response.json() == {'error': 'Not found'}


class TestCors:

    @pytest.mark.parametrize('origin', [
        'https://postduck.org',
        'https://app.postduck.org',
        'http://localhost:5173',
        'http://127.0.0.1:3000',
    ])
    def test_allowed_origins(self, client, origin):
        response = client.get('/health', headers={'Origin': origin})

        assert response.headers['access-control-allow-origin'] == origin
        assert response.headers['access-control-allow-credentials'] == 'true'

    def test_other_origin_gets_no_cors_headers(self, client):
        response = client.get('/health', headers={'Origin': 'https://evil.test'})
        assert 'access-control-allow-origin' not in response.headers

    def test_preflight(self, client):
        response = client.options('/proxy', headers={
            'Origin': 'https://postduck.org',
            'Access-Control-Request-Method': 'POST',
            'Access-Control-Request-Headers': 'Content-Type',
        })

        assert response.status_code == 200
        assert response.headers['access-control-allow-origin'] == 'https://postduck.org'

    def test_origin_regex_escapes_host(self):
        regex = build_origin_regex('https://postduck.org')
        assert r'postduck\.org' in regex
