"""
Tests for Postduck Direct Dispatch API

Tests /api/proxy, /api/parse-curl and /api/import/postman with a mocked
dispatcher.
"""

import json
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from postduck.common.config import PostduckConfig
from postduck.common.errors import ValidationError
from postduck.dispatch.dispatcher import RequestDispatcher
from postduck.request.models import ExecuteResponse, ParsedCookie
from postduck.server.api import PARSED_CURL_FIELDS, create_api_app


@pytest.fixture
def dispatcher():
    dispatcher = Mock(spec=RequestDispatcher)
    dispatcher.dispatch.return_value = ExecuteResponse(
        status_code=201,
        headers={'Set-Cookie': 'b=2'},
        body='{"id": 1}',
        duration=8,
        size=9,
        cookies=[ParsedCookie(name='a', value='1'), ParsedCookie(name='b', value='2')]
    )
    return dispatcher


@pytest.fixture
def client(dispatcher):
    return TestClient(create_api_app(PostduckConfig(), dispatcher))


class TestProxy:

    def test_success_with_cookies(self, client, dispatcher):
        response = client.post('/api/proxy', json={
            'method': 'POST',
            'url': 'https://api.test/users',
            'headers': {'Accept': 'application/json'},
            'body': {'type': 'json', 'content': '{"name": "duck"}'},
            'authType': 'bearer',
            'authConfig': {'bearer': {'token': 't'}},
        })

        assert response.status_code == 200
        data = response.json()
        assert data['statusCode'] == 201
        assert data['cookies'] == [{'name': 'a', 'value': '1'}, {'name': 'b', 'value': '2'}]

        params = dispatcher.dispatch.call_args[0][0]
        assert params.body.content == '{"name": "duck"}'
        assert params.auth_config.bearer.token == 't'

    def test_unresolved_variables_are_400(self, client, dispatcher):
        dispatcher.dispatch.side_effect = ValidationError(
            'Unresolved variables in URL: {{host}}. Please set these variables in your active environment.'
        )

        response = client.post('/api/proxy', json={'method': 'GET', 'url': 'https://{{host}}'})

        assert response.status_code == 400
        assert 'Unresolved variables in URL: {{host}}' in response.json()['body']

    def test_malformed_body_is_400(self, client, dispatcher):
        response = client.post('/api/proxy', content='[1, 2]', headers={'Content-Type': 'application/json'})

        assert response.status_code == 400
        assert response.json()['statusCode'] == 0
        dispatcher.dispatch.assert_not_called()


class TestParseCurl:

    def test_parses_command(self, client):
        response = client.post('/api/parse-curl', json={
            'curlCommand': "curl -X POST https://api.test/users -H 'Authorization: Bearer abc' -d '{\"a\": 1}'"
        })

        assert response.status_code == 200
        data = response.json()
        assert set(data) == set(PARSED_CURL_FIELDS)
        assert data['method'] == 'POST'
        assert data['url'] == 'https://api.test/users'
        assert data['body'] == {'type': 'json', 'content': '{"a": 1}'}
        assert data['authType'] == 'bearer'
        assert data['authConfig'] == {'bearer': {'token': 'abc'}}

    @pytest.mark.parametrize('payload', [{}, {'curlCommand': ''}, {'curlCommand': 42}])
    def test_invalid_command(self, client, payload):
        response = client.post('/api/parse-curl', json=payload)

        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid curl command'}

    def test_non_json_body(self, client):
        response = client.post('/api/parse-curl', content='curl https://api.test')
        assert response.status_code == 400


class TestImportPostman:

    def test_imports_collection(self, client):
        document = {
            'info': {'name': 'Duck API'},
            'item': [{'name': 'Ping', 'request': {'method': 'GET', 'url': 'https://api.test/ping'}}],
        }

        response = client.post('/api/import/postman', content=json.dumps(document))

        assert response.status_code == 200
        data = response.json()
        assert data['name'] == 'Duck API'
        assert data['requests'][0]['collectionId'] == 'root'
        assert data['requests'][0]['url'] == 'https://api.test/ping'

    def test_invalid_document(self, client):
        response = client.post('/api/import/postman', content='{"info": {"name": "x"}}')

        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid Postman collection format'}

    def test_invalid_json(self, client):
        response = client.post('/api/import/postman', content='nope')

        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid JSON format'}
