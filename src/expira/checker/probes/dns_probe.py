"""DNS probe - resolve A, AAAA and MX records for a product's hostname.

First step of every check. Missing AAAA or MX is normal, and even a total
failure here is only recorded - the HTTP probe reports unreachability itself.
"""

import asyncio
import functools
import logging
import socket
from typing import List, Dict, Any, Optional

import dns.exception
import dns.resolver

from expira.util.types import ProbeResult
from expira.util.time import now_utc, duration_ms

logger = logging.getLogger(__name__)

RECORD_TYPES = ('A', 'AAAA', 'MX')


class DNSProbe:
    """DNS resolver for A/AAAA/MX lookups.

    dnspython is synchronous, so each lookup runs in the default executor
    with its own lifetime; the three record types are queried in parallel.
    """

    def __init__(self, timeout: float = 5.0, resolver: Optional[dns.resolver.Resolver] = None):
        """Initialize DNS probe with per-lookup timeout."""
        self.timeout = timeout
        self.resolver = resolver or dns.resolver.Resolver()

    async def _query(self, hostname: str, rdtype: str) -> List[Any]:
        loop = asyncio.get_running_loop()
        lookup = functools.partial(self.resolver.resolve, hostname, rdtype, lifetime=self.timeout)
        answers = await asyncio.wait_for(
            loop.run_in_executor(None, lookup),
            timeout=self.timeout + 1.0
        )
        return list(answers)

    async def _getaddrinfo(self, hostname: str) -> Optional[str]:
        """System resolver fallback for the primary IPv4 address."""
        loop = asyncio.get_running_loop()
        try:
            results = await asyncio.wait_for(
                loop.getaddrinfo(hostname, None, family=socket.AF_INET),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"getaddrinfo failed for {hostname}: {e}")
            return None
        return results[0][4][0] if results else None

    async def resolve(self, hostname: str) -> ProbeResult:
        """Resolve A, AAAA and MX records for hostname.

        Returns ProbeResult with:
          - success=True if at least one record found
          - data={'ipv4': [...], 'ipv6': [...], 'mx': [{'exchange', 'priority'}], 'errors': {...}}
        """
        start = now_utc()

        answers = await asyncio.gather(
            *(self._query(hostname, rdtype) for rdtype in RECORD_TYPES),
            return_exceptions=True
        )

        data: Dict[str, Any] = {'ipv4': [], 'ipv6': [], 'mx': [], 'errors': {}}
        for rdtype, result in zip(RECORD_TYPES, answers):
            if isinstance(result, BaseException):
                data['errors'][rdtype] = _describe_dns_error(result)
                continue
            if rdtype == 'A':
                data['ipv4'] = sorted({r.address for r in result})
            elif rdtype == 'AAAA':
                data['ipv6'] = sorted({r.address for r in result})
            else:
                mx = [
                    {'exchange': str(r.exchange).rstrip('.'), 'priority': int(r.preference)}
                    for r in result
                ]
                data['mx'] = sorted(mx, key=lambda m: (m['priority'], m['exchange']))

        if not data['ipv4']:
            address = await self._getaddrinfo(hostname)
            if address:
                data['ipv4'] = [address]

        success = bool(data['ipv4'] or data['ipv6'] or data['mx'])
        if not success:
            logger.warning(f"No DNS records found for {hostname}: {data['errors']}")

        return ProbeResult(
            target=hostname,
            probe_type='dns',
            success=success,
            data=data,
            error=None if success else "No DNS records found",
            duration_ms=duration_ms(start),
            started_at=start,
            timestamp=now_utc()
        )


def _describe_dns_error(error: BaseException) -> str:
    if isinstance(error, dns.resolver.NXDOMAIN):
        return "NXDOMAIN"
    if isinstance(error, dns.resolver.NoAnswer):
        return "no answer"
    if isinstance(error, (dns.exception.Timeout, asyncio.TimeoutError)):
        return "timeout"
    if isinstance(error, dns.exception.DNSException):
        return f"DNS error: {type(error).__name__}"
    return f"DNS error: {error}"
