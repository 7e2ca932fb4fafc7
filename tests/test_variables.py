"""
Tests for Postduck variable interpolation

Tests {{name}} resolution including:
- Lookup with trimmed token names
- Unknown tokens left verbatim
- Request-wide interpolation of URL, headers and body
- Detection of unresolved tokens
"""

import pytest

from postduck.request.models import Environment, EnvironmentVariable
from postduck.request.variables import find_unresolved, interpolate, interpolate_request


@pytest.fixture
def environment():
    """Environment with a host, token and a duplicated key."""
    return Environment(
        id='env_1',
        name='dev',
        variables=[
            EnvironmentVariable(key='host', value='api.dev.test'),
            EnvironmentVariable(key='token', value='s3cret'),
            EnvironmentVariable(key='host', value='shadowed.test'),
        ]
    )


class TestInterpolate:
    """Test single-string interpolation."""

    def test_substitutes_known_variable(self, environment):
        assert interpolate('https://{{host}}/v1', environment) == 'https://api.dev.test/v1'

    def test_trims_token_name(self, environment):
        assert interpolate('https://{{ host }}/v1', environment) == 'https://api.dev.test/v1'

    def test_first_variable_wins_for_duplicate_keys(self, environment):
        assert interpolate('{{host}}', environment) == 'api.dev.test'

    def test_unknown_token_left_verbatim(self, environment):
        assert interpolate('{{host}}/{{missing}}', environment) == 'api.dev.test/{{missing}}'

    def test_no_environment_returns_text_unchanged(self):
        assert interpolate('https://{{host}}', None) == 'https://{{host}}'

    def test_empty_and_none_text(self, environment):
        assert interpolate('', environment) == ''
        assert interpolate(None, environment) is None

    def test_variable_lookup_is_case_sensitive(self, environment):
        assert interpolate('{{HOST}}', environment) == '{{HOST}}'


class TestInterpolateRequest:
    """Test interpolation across URL, headers and body."""

    def test_interpolates_header_keys_and_values(self, environment):
        url, headers, body = interpolate_request(
            'https://{{host}}',
            {'X-{{token}}': 'Bearer {{token}}'},
            '{"host": "{{host}}"}',
            environment
        )

        assert url == 'https://api.dev.test'
        assert headers == {'X-s3cret': 'Bearer s3cret'}
        assert body == '{"host": "api.dev.test"}'

    def test_none_body_stays_none(self, environment):
        _, _, body = interpolate_request('https://{{host}}', {}, None, environment)
        assert body is None


class TestFindUnresolved:
    """Test unresolved token detection."""

    def test_returns_tokens_in_order(self):
        assert find_unresolved('https://{{host}}/{{ version }}/x') == ['{{host}}', '{{ version }}']

    def test_resolved_text_has_none(self):
        assert find_unresolved('https://api.test/v1') == []

    def test_empty_text(self):
        assert find_unresolved('') == []
        assert find_unresolved(None) == []


class TestIdempotence:

    def test_idempotent_once_resolved(self, environment):
        once = interpolate('https://{{host}}/{{token}}', environment)
        assert interpolate(once, environment) == once
