"""Shared fixtures and probe-result builders for the test suite."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, AsyncMock

import pytest

from expira.util.config import Config
from expira.util.types import ProbeResult, TransportErrorKind
from expira.state.store import ProductStore
from expira.notifications.dispatcher import NotificationDispatcher

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _span(start_ms: float, length_ms: float):
    start = NOW + timedelta(milliseconds=start_ms)
    return start, start + timedelta(milliseconds=length_ms)


def dns_result(ipv4=('93.184.216.34',), ipv6=(), mx=(), errors=None) -> ProbeResult:
    started, ended = _span(0, 5)
    success = bool(ipv4 or ipv6 or mx)
    return ProbeResult(
        target='example.com',
        probe_type='dns',
        success=success,
        data={
            'ipv4': list(ipv4),
            'ipv6': list(ipv6),
            'mx': [dict(m) for m in mx],
            'errors': dict(errors or {}),
        },
        error=None if success else "No DNS records found",
        started_at=started,
        timestamp=ended,
    )


def http_ok(status=200, reason='OK', body=None, content_type='text/html; charset=utf-8',
            response_time=120, headers=None, method='GET') -> ProbeResult:
    started, ended = _span(5, response_time)
    headers = dict(headers or {'content-type': content_type, 'server': 'ECS (nyb/1D2E)'})
    data = {
        'method': method,
        'status_code': status,
        'reason': reason,
        'headers': headers,
        'content_type': content_type,
        'final_url': 'https://example.com/',
        'response_time_ms': response_time,
    }
    if body is not None:
        data['body'] = body
    return ProbeResult(
        target='https://example.com/', probe_type='http', success=True,
        data=data, started_at=started, timestamp=ended,
    )


def http_fail(kind: TransportErrorKind, message='connect failed') -> ProbeResult:
    started, ended = _span(5, 3)
    return ProbeResult(
        target='https://example.com/',
        probe_type='http',
        success=False,
        data={'error_details': {'name': 'ClientConnectorError', 'code': kind.value, 'message': message}},
        error=f"HTTP error: {message}",
        error_kind=kind,
        started_at=started,
        timestamp=ended,
    )


def tls_result(days=365, verified=True, kind=None, error=None) -> ProbeResult:
    started, ended = _span(5, 40)
    cert = None
    if days is not None:
        cert = {
            'issuer': 'DigiCert Global G2 TLS RSA SHA256 2020 CA1',
            'subject': 'www.example.org',
            'valid_from': '2025-01-15T00:00:00+00:00',
            'valid_to': (NOW + timedelta(days=days)).isoformat(),
            'serial_number': '75BCEF30689C8ADDF13E51AF4AFE187',
            'fingerprint': 'AB:CD:EF',
            'algorithm': 'sha256WithRSAEncryption',
            'days_until_expiry': days,
        }
    strict = {'verified': True}
    if not verified:
        strict = {
            'verified': False,
            'error_kind': kind,
            'error': error or 'handshake failed',
            'error_details': {'name': 'SSLError', 'code': kind.value, 'message': error or 'handshake failed'},
        }
    return ProbeResult(
        target='example.com:443',
        probe_type='tls',
        success=cert is not None and verified,
        data={'cert': cert, 'strict': strict},
        error=None if verified else strict['error'],
        error_kind=None if verified else kind,
        started_at=started,
        timestamp=ended,
    )


def fake_probes(dns=None, http=None, tls=None):
    """Mock probes returning canned results."""
    dns_probe = Mock()
    dns_probe.resolve = AsyncMock(return_value=dns or dns_result())
    http_probe = Mock()
    http_probe.probe = AsyncMock(return_value=http or http_ok())
    tls_probe = Mock()
    tls_probe.inspect = AsyncMock(return_value=tls or tls_result())
    return dns_probe, http_probe, tls_probe


class RecordingDispatcher(NotificationDispatcher):
    """Keeps every alert it is given."""

    def __init__(self):
        self.alerts = []

    async def dispatch(self, alert):
        self.alerts.append(alert)


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Config with defaults, isolated from any .env in the working directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("EXPIRA_DB_PATH", str(tmp_path / "expira.db"))
    return Config(env_file=tmp_path / "missing.env")


@pytest.fixture
def store(tmp_path):
    return ProductStore(tmp_path / "state" / "expira.db")


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()
