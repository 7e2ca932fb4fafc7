"""
Tests for Postduck Set-Cookie parsing
"""

from postduck.dispatch.cookies import parse_cookies, parse_set_cookie


class TestParseSetCookie:

    def test_name_value_and_attributes(self):
        cookie = parse_set_cookie('sid=abc123; Domain=example.com; Path=/; Expires=Wed, 21 Oct 2026 07:28:00 GMT; HttpOnly')

        assert cookie.name == 'sid'
        assert cookie.value == 'abc123'
        assert cookie.domain == 'example.com'
        assert cookie.path == '/'
        assert cookie.expires == 'Wed, 21 Oct 2026 07:28:00 GMT'

    def test_value_split_on_first_equals(self):
        cookie = parse_set_cookie('token=a=b=c; Secure')
        assert cookie.name == 'token'
        assert cookie.value == 'a=b=c'

    def test_name_without_value(self):
        cookie = parse_set_cookie('flag; Path=/')
        assert cookie.name == 'flag'
        assert cookie.value == ''

    def test_unknown_attributes_ignored(self):
        cookie = parse_set_cookie('a=1; SameSite=Lax; Max-Age=60')
        assert cookie.to_dict() == {'name': 'a', 'value': '1'}

    def test_empty_name_rejected(self):
        assert parse_set_cookie('') is None


class TestParseCookies:

    def test_collects_every_set_cookie_in_order(self):
        items = [
            ('Content-Type', 'application/json'),
            ('Set-Cookie', 'a=1; Path=/'),
            ('set-cookie', 'b=2'),
        ]

        cookies = parse_cookies(items)

        assert [(c.name, c.value) for c in cookies] == [('a', '1'), ('b', '2')]

    def test_no_set_cookie(self):
        assert parse_cookies([('Content-Type', 'text/plain')]) == []

    def test_second_cookie_keeps_its_path(self):
        cookies = parse_cookies([('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2; Path=/x')])

        assert [c.name for c in cookies] == ['a', 'b']
        assert cookies[0].path is None
        assert cookies[1].path == '/x'
