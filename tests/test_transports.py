"""
Tests for Postduck transports

Tests the direct transport's streaming read, deadline and cancellation, and
the local agent transport's health probe and proxy call. The timing and
cookie tests run against a throwaway HTTP server on 127.0.0.1.
"""

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import Mock

import pytest
import requests

from postduck.common.config import PostduckConfig
from postduck.dispatch.dispatcher import RequestDispatcher
from postduck.dispatch.failures import DeadlineExceeded, RequestCancelled
from postduck.dispatch.transports import DirectTransport, LocalAgentTransport
from postduck.request.models import ExecuteRequestParams


class UpstreamHandler(BaseHTTPRequestHandler):
    """Routes for the local upstream used by the end-to-end transport tests."""

    def log_message(self, format, *args):
        pass

    def _reply(self, body: bytes, extra_headers=()):
        self.send_response(200)
        for name, value in extra_headers:
            self.send_header(name, value)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _trickle(self, parts, delay):
        try:
            for part in parts:
                self.wfile.write(part)
                self.wfile.flush()
                time.sleep(delay)
        except OSError:
            pass

    def do_GET(self):
        if self.path == '/login':
            self._reply(b'ok', [('Set-Cookie', 'sid=user-a-secret; Path=/')])
        elif self.path == '/echo-cookie':
            self._reply((self.headers.get('Cookie') or '').encode())
        elif self.path == '/slow-body':
            self.send_response(200)
            self.send_header('Content-Length', '8')
            self.end_headers()
            self._trickle([b'x'] * 8, 0.5)
        elif self.path == '/slow-headers':
            lines = [b'HTTP/1.1 200 OK\r\n'] + [f'X-Slow-{i}: 1\r\n'.encode() for i in range(8)]
            self._trickle(lines + [b'Content-Length: 0\r\n\r\n'], 0.5)
        else:
            self.send_error(404)


@pytest.fixture
def upstream():
    server = ThreadingHTTPServer(('127.0.0.1', 0), UpstreamHandler)
    server.daemon_threads = True
    server.block_on_close = False
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


class FakeRawHeaders:
    """Raw header lines as urllib3 exposes them, duplicates kept."""

    def __init__(self, items):
        self.items = items

    def iteritems(self):
        return iter(self.items)


@pytest.fixture
def upstream_response():
    response = Mock()
    response.status_code = 200
    response.raw.headers = FakeRawHeaders([
        ('Content-Type', 'text/plain'),
        ('Set-Cookie', 'a=1'),
        ('Set-Cookie', 'b=2'),
    ])
    response.iter_content.return_value = [b'hello ', b'w\xc3\xb6rld', b'\xff']
    return response


@pytest.fixture
def session(upstream_response):
    session = Mock(spec=requests.Session)
    session.request.return_value = upstream_response
    return session


class TestDirectTransport:

    def test_reads_body_and_raw_headers(self, session, upstream_response):
        transport = DirectTransport(session=session, timeout=30)

        raw = transport.send('GET', 'https://api.test', {'Accept': '*/*'})

        assert raw.status_code == 200
        assert raw.body == 'hello wörld�'
        assert raw.header_items.count(('Set-Cookie', 'a=1')) == 1
        assert ('Set-Cookie', 'b=2') in raw.header_items
        upstream_response.close.assert_called_once()

    def test_request_options(self, session):
        transport = DirectTransport(session=session, timeout=12, verify_ssl=False)

        transport.send('POST', 'https://api.test', {}, data='{"a": "é"}')

        kwargs = session.request.call_args[1]
        assert kwargs['data'] == '{"a": "é"}'.encode('utf-8')
        assert kwargs['timeout'] == 12
        assert kwargs['verify'] is False
        assert kwargs['stream'] is True
        assert kwargs['allow_redirects'] is True

    def test_cancelled_before_send(self, session):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(RequestCancelled):
            DirectTransport(session=session).send('GET', 'https://api.test', {}, cancel_event=cancel)

        session.request.assert_not_called()

    def test_cancelled_while_reading_closes_response(self, session, upstream_response):
        cancel = threading.Event()

        def chunks(chunk_size):
            yield b'part'
            cancel.set()
            yield b'more'

        upstream_response.iter_content.side_effect = chunks

        with pytest.raises(RequestCancelled):
            DirectTransport(session=session).send('GET', 'https://api.test', {}, cancel_event=cancel)

        upstream_response.close.assert_called()

    def test_zero_deadline_expires(self, session):
        with pytest.raises(DeadlineExceeded):
            DirectTransport(session=session, timeout=0).send('GET', 'https://api.test', {})

    def test_transport_errors_propagate(self, session):
        session.request.side_effect = requests.exceptions.ConnectionError('down')

        with pytest.raises(requests.exceptions.ConnectionError):
            DirectTransport(session=session).send('GET', 'https://api.test', {})


class TestLocalAgentTransport:

    def test_available_when_health_ok(self):
        session = Mock(spec=requests.Session)
        session.get.return_value = Mock(ok=True)

        agent = LocalAgentTransport('http://localhost:19199/', session=session, health_timeout=0.5)

        assert agent.is_available()
        session.get.assert_called_once_with('http://localhost:19199/health', timeout=0.5)

    def test_unavailable_on_connection_error(self):
        session = Mock(spec=requests.Session)
        session.get.side_effect = requests.exceptions.ConnectionError('refused')

        assert not LocalAgentTransport('http://localhost:19199', session=session).is_available()

    def test_unavailable_on_error_status(self):
        session = Mock(spec=requests.Session)
        session.get.return_value = Mock(ok=False)

        assert not LocalAgentTransport('http://localhost:19199', session=session).is_available()

    def test_send_posts_params_and_decodes_response(self):
        session = Mock(spec=requests.Session)
        session.post.return_value.json.return_value = {
            'statusCode': 200,
            'headers': {'X-Test': '1'},
            'body': 'ok',
            'duration': 5,
            'size': 2,
            'cookies': [{'name': 'sid', 'value': 'abc'}],
        }
        params = ExecuteRequestParams(method='GET', url='http://localhost:3000/api')

        response = LocalAgentTransport('http://localhost:19199', session=session, timeout=30).send(params)

        assert response.status_code == 200
        assert response.cookies[0].name == 'sid'
        args, kwargs = session.post.call_args
        assert args[0] == 'http://localhost:19199/proxy'
        assert kwargs['json'] == params.to_dict()
        assert kwargs['timeout'] == 35

    def test_send_can_be_cancelled(self):
        release = threading.Event()
        session = Mock(spec=requests.Session)

        def blocked_post(*args, **kwargs):
            release.wait(5)
            return Mock()

        session.post.side_effect = blocked_post
        cancel = threading.Event()
        threading.Timer(0.2, cancel.set).start()
        agent = LocalAgentTransport('http://localhost:19199', session=session)

        start = time.monotonic()
        with pytest.raises(RequestCancelled):
            agent.send(ExecuteRequestParams(method='GET', url='http://localhost:3000'), cancel_event=cancel)
        release.set()

        assert time.monotonic() - start < 2


class TestCookieIsolation:
    """Response cookies never leak into later dispatches."""

    def test_session_rejects_response_cookies(self, upstream):
        dispatcher = RequestDispatcher(PostduckConfig(), prefer_direct=True)

        login = dispatcher.dispatch(ExecuteRequestParams(method='GET', url=f"{upstream}/login"))
        echoed = dispatcher.dispatch(ExecuteRequestParams(method='GET', url=f"{upstream}/echo-cookie"))

        assert login.cookies[0].value == 'user-a-secret'
        assert echoed.status_code == 200
        assert echoed.body == ''
        assert len(dispatcher.direct.session.cookies) == 0

    def test_explicit_cookie_header_is_sent(self, upstream):
        dispatcher = RequestDispatcher(PostduckConfig(), prefer_direct=True)

        echoed = dispatcher.dispatch(ExecuteRequestParams(
            method='GET',
            url=f"{upstream}/echo-cookie",
            headers={'Cookie': 'token=zzz'}
        ))

        assert echoed.body == 'token=zzz'


class TestHardDeadline:
    """The deadline bounds the whole exchange, not each socket read."""

    def test_slow_body_is_cut_off(self, upstream):
        transport = DirectTransport(timeout=1)

        start = time.monotonic()
        with pytest.raises(DeadlineExceeded):
            transport.send('GET', f"{upstream}/slow-body", {})

        assert time.monotonic() - start < 2

    def test_slow_headers_are_cut_off(self, upstream):
        transport = DirectTransport(timeout=1)

        start = time.monotonic()
        with pytest.raises(DeadlineExceeded):
            transport.send('GET', f"{upstream}/slow-headers", {})

        assert time.monotonic() - start < 2

    def test_dispatch_reports_timeout(self, upstream):
        dispatcher = RequestDispatcher(PostduckConfig(request_timeout=1), prefer_direct=True)

        start = time.monotonic()
        response = dispatcher.dispatch(ExecuteRequestParams(method='GET', url=f"{upstream}/slow-body"))

        assert time.monotonic() - start < 2
        assert response.status_code == 0
        assert response.body.startswith('Error: Request timeout after 1 seconds.')

    def test_cancel_interrupts_slow_body(self, upstream):
        cancel = threading.Event()
        threading.Timer(0.3, cancel.set).start()

        start = time.monotonic()
        with pytest.raises(RequestCancelled):
            DirectTransport(timeout=10).send('GET', f"{upstream}/slow-body", {}, cancel_event=cancel)

        assert time.monotonic() - start < 1.5
