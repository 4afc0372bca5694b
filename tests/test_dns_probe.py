"""
Unit Tests for the DNS Probe
"""

import asyncio
from unittest.mock import Mock, AsyncMock, patch

import pytest
import dns.name
import dns.resolver
import dns.exception

from expira.checker.probes.dns_probe import DNSProbe


def _a(address):
    rdata = Mock()
    rdata.address = address
    return rdata


def _mx(exchange, preference):
    rdata = Mock()
    rdata.exchange = dns.name.from_text(exchange)
    rdata.preference = preference
    return rdata


def _answers(records):
    """side_effect for Resolver.resolve: records[rdtype] is a list or an exception."""
    def resolve(hostname, rdtype, lifetime=None):
        result = records.get(rdtype, dns.resolver.NoAnswer())
        if isinstance(result, Exception):
            raise result
        return result
    return resolve


class TestDNSProbe:
    """Test suite for DNSProbe"""

    @pytest.fixture
    def probe(self):
        """Probe with an unconfigured resolver and no system fallback"""
        probe = DNSProbe(timeout=1.0, resolver=dns.resolver.Resolver(configure=False))
        probe._getaddrinfo = AsyncMock(return_value=None)
        return probe

    @patch('dns.resolver.Resolver.resolve')
    def test_all_record_types(self, mock_resolve, probe):
        """A, AAAA and MX are all collected"""
        mock_resolve.side_effect = _answers({
            'A': [_a('93.184.216.34')],
            'AAAA': [_a('2606:2800:220:1:248:1893:25c8:1946')],
            'MX': [_mx('mx2.example.com.', 20), _mx('mx1.example.com.', 10)],
        })

        result = asyncio.run(probe.resolve('example.com'))

        assert result.success is True
        assert result.probe_type == 'dns'
        assert result.data['ipv4'] == ['93.184.216.34']
        assert result.data['ipv6'] == ['2606:2800:220:1:248:1893:25c8:1946']
        assert result.data['mx'] == [
            {'exchange': 'mx1.example.com', 'priority': 10},
            {'exchange': 'mx2.example.com', 'priority': 20},
        ]
        assert result.data['errors'] == {}
        assert result.started_at <= result.timestamp

    @patch('dns.resolver.Resolver.resolve')
    def test_missing_aaaa_and_mx_is_not_failure(self, mock_resolve, probe):
        """Absent AAAA/MX is normal and only recorded"""
        mock_resolve.side_effect = _answers({'A': [_a('10.0.0.1')]})

        result = asyncio.run(probe.resolve('example.com'))

        assert result.success is True
        assert result.data['ipv4'] == ['10.0.0.1']
        assert result.data['ipv6'] == []
        assert result.data['mx'] == []
        assert result.data['errors'] == {'AAAA': 'no answer', 'MX': 'no answer'}

    @patch('dns.resolver.Resolver.resolve')
    def test_nxdomain(self, mock_resolve, probe):
        """Nothing resolves: recorded, not raised"""
        mock_resolve.side_effect = dns.resolver.NXDOMAIN()

        result = asyncio.run(probe.resolve('nonexistent-domain-12345.com'))

        assert result.success is False
        assert result.error == "No DNS records found"
        assert result.data['errors'] == {'A': 'NXDOMAIN', 'AAAA': 'NXDOMAIN', 'MX': 'NXDOMAIN'}

    @patch('dns.resolver.Resolver.resolve')
    def test_timeout_recorded(self, mock_resolve, probe):
        mock_resolve.side_effect = dns.exception.Timeout()

        result = asyncio.run(probe.resolve('example.com'))

        assert result.success is False
        assert result.data['errors']['A'] == 'timeout'

    @patch('dns.resolver.Resolver.resolve')
    def test_getaddrinfo_fallback(self, mock_resolve, probe):
        """No A records: the system resolver supplies the primary address"""
        mock_resolve.side_effect = dns.resolver.NoNameservers()
        probe._getaddrinfo = AsyncMock(return_value='127.0.0.1')

        result = asyncio.run(probe.resolve('localhost'))

        assert result.success is True
        assert result.data['ipv4'] == ['127.0.0.1']
        probe._getaddrinfo.assert_awaited_once_with('localhost')

    @patch('dns.resolver.Resolver.resolve')
    def test_lifetime_passed_to_resolver(self, mock_resolve, probe):
        mock_resolve.side_effect = _answers({'A': [_a('10.0.0.1')]})

        asyncio.run(probe.resolve('example.com'))

        for call in mock_resolve.call_args_list:
            assert call.kwargs['lifetime'] == 1.0
