"""
Unit Tests for the HTTP Probe (against an in-process aiohttp server)
"""

import asyncio
import json
import socket
from unittest.mock import Mock

import pytest
from aiohttp import web
from aiohttp import test_utils

from expira.util.types import TransportErrorKind
from expira.checker.probes.http_probe import HTTPProbe, flatten_headers

PAGE = "<html><head><title>Example Domain</title></head><body>Example Domain</body></html>"


async def _index(request):
    return web.Response(text=PAGE, content_type='text/html', headers={'Server': 'test-server'})


async def _missing(request):
    return web.Response(status=404, text="nope")


async def _json(request):
    return web.json_response({'status': 'ok', 'version': 3})


async def _old(request):
    raise web.HTTPFound('/')


async def _slow(request):
    await asyncio.sleep(1.0)
    return web.Response(text="late")


async def _user_agent(request):
    return web.Response(text=request.headers.get('User-Agent', ''))


def _app():
    hits = {'/once': 0}

    async def _once(request):
        """Answers the first request at once, stalls every later one"""
        hits['/once'] += 1
        if hits['/once'] > 1:
            await asyncio.sleep(2.0)
        return web.Response(text=PAGE, content_type='text/html')

    app = web.Application()
    app.router.add_get('/once', _once)
    app.router.add_get('/', _index)
    app.router.add_get('/missing', _missing)
    app.router.add_get('/api', _json)
    app.router.add_get('/old', _old)
    app.router.add_get('/slow', _slow)
    app.router.add_get('/ua', _user_agent)
    return app


def _run_against_server(coro_factory):
    """Start a test server, run coro_factory(server), always close the server."""
    async def runner():
        server = test_utils.TestServer(_app())
        await server.start_server()
        try:
            return await coro_factory(server)
        finally:
            await server.close()
    return asyncio.run(runner())


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


class TestHTTPProbe:
    """Test suite for HTTPProbe"""

    @pytest.fixture
    def probe(self):
        return HTTPProbe(timeout=5.0, user_agent="expira-test/1.0")

    def test_get_with_body(self, probe):
        """GET captures status, headers, timing and body"""
        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/')), fetch_body=True))

        assert result.success is True
        assert result.data['method'] == 'GET'
        assert result.data['status_code'] == 200
        assert result.data['reason'] == 'OK'
        assert result.data['headers']['server'] == 'test-server'
        assert result.data['content_type'].startswith('text/html')
        assert isinstance(result.data['response_time_ms'], int)
        assert result.data['body'] == PAGE
        assert result.started_at <= result.timestamp

    def test_head_without_body(self, probe):
        """HEAD probes never fetch the body unless asked"""
        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/')), method='HEAD'))

        assert result.success is True
        assert result.data['method'] == 'HEAD'
        assert result.data['status_code'] == 200
        assert 'body' not in result.data

    def test_non_2xx_is_still_a_response(self, probe):
        """404 is a successful probe; judging it is not the probe's job"""
        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/missing'))))

        assert result.success is True
        assert result.data['status_code'] == 404
        assert result.data['reason'] == 'Not Found'
        assert result.error_kind is None

    def test_redirects_followed(self, probe):
        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/old')), fetch_body=True))

        assert result.data['status_code'] == 200
        assert result.data['final_url'].endswith('/')
        assert result.data['body'] == PAGE

    def test_json_body(self, probe):
        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/api')), fetch_body=True))

        assert 'json' in result.data['content_type']
        assert json.loads(result.data['body']) == {'status': 'ok', 'version': 3}

    def test_user_agent_sent(self, probe):
        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/ua')), fetch_body=True))

        assert result.data['body'] == "expira-test/1.0"

    def test_timeout(self):
        """Deadline expiry is a TIMEOUT failure with no response data"""
        probe = HTTPProbe(timeout=0.1)

        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/slow')), fetch_body=True))

        assert result.success is False
        assert result.error_kind == TransportErrorKind.TIMEOUT
        assert result.error == "Request timeout"
        assert 'status_code' not in result.data
        assert result.data['error_details']['code'] == 'TIMEOUT'

    def test_body_fetch_failure_keeps_response(self):
        """A stalled body GET is dropped; the primary response still counts"""
        probe = HTTPProbe(timeout=0.5)

        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/once')), fetch_body=True))

        assert result.success is True
        assert result.error_kind is None
        assert result.data['status_code'] == 200
        assert 'body' not in result.data
        assert "Timeout" in result.data['body_error']

    def test_connection_refused(self, probe):
        """Nothing listening: classified as ECONNREFUSED"""
        port = _free_port()

        result = asyncio.run(probe.probe(f"http://127.0.0.1:{port}/"))

        assert result.success is False
        assert result.error_kind == TransportErrorKind.CONNECTION_REFUSED
        assert result.data['error_details']['code'] == 'ECONNREFUSED'
        assert result.error.startswith("HTTP error:")

    def test_to_dict_excludes_body(self, probe):
        result = _run_against_server(
            lambda server: probe.probe(str(server.make_url('/')), fetch_body=True))

        logged = result.to_dict()

        assert 'body' not in logged['data']
        assert logged['data']['status_code'] == 200


class TestFlattenHeaders:
    """Test suite for header flattening"""

    def test_lowercases_and_joins_repeats(self):
        headers = Mock()
        headers.items.return_value = [
            ('Set-Cookie', 'a=1'),
            ('set-cookie', 'b=2'),
            ('Server', 'nginx'),
        ]

        flat = flatten_headers(headers)

        assert flat == {'set-cookie': 'a=1, b=2', 'server': 'nginx'}

    def test_plain_dict(self):
        assert flatten_headers({'Content-Type': 'text/html'}) == {'content-type': 'text/html'}
