"""HTTP probe - primary request for status/timing, optional body fetch.

Both requests share one deadline. The primary request decides the
transport outcome; the body fetch is best effort and its failure only
means content rules have nothing to look at.
"""

import asyncio
import logging
from typing import Dict, Any, Mapping

import aiohttp

from expira.util.types import ProbeResult, TransportErrorKind
from expira.util.time import now_utc, duration_ms
from expira.checker.probes.errors import classify_network_error, error_details

logger = logging.getLogger(__name__)


def flatten_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Flatten response headers into a lowercase string map.

    Repeated headers are joined with ', ' like a fetch Headers object does.
    """
    flat: Dict[str, str] = {}
    for key, value in headers.items():
        name = key.lower()
        flat[name] = f"{flat[name]}, {value}" if name in flat else value
    return flat


class HTTPProbe:
    """Async HTTP client for a single product check.

    A new session per probe keeps checks fully independent of each other.
    """

    def __init__(self, timeout: float = 10.0, user_agent: str = "expira/1.0"):
        """Initialize HTTP probe with deadline and user agent."""
        self.timeout = timeout
        self.user_agent = user_agent

    def _session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(headers={'User-Agent': self.user_agent})

    async def probe(self, url: str, method: str = 'GET', fetch_body: bool = False) -> ProbeResult:
        """Issue the primary request and, if asked, a full-body GET.

        Returns ProbeResult with:
          - success=True if we got any HTTP response (even non-2xx)
          - data={'status_code', 'reason', 'headers', 'content_type',
                  'response_time_ms', 'final_url', 'body'?}
          - error/error_kind if the request itself failed
        """
        start = now_utc()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        async with self._session() as session:
            try:
                async with session.request(
                    method,
                    url,
                    allow_redirects=True,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    headers = flatten_headers(resp.headers)
                    data: Dict[str, Any] = {
                        'method': method,
                        'status_code': resp.status,
                        'reason': resp.reason or "",
                        'headers': headers,
                        'content_type': headers.get('content-type', ''),
                        'final_url': str(resp.url),
                    }
                response_end = now_utc()
                data['response_time_ms'] = int(round(duration_ms(start, response_end)))

            except asyncio.TimeoutError as e:
                logger.debug(f"HTTP timeout for {url}")
                return self._failure(url, start, e, TransportErrorKind.TIMEOUT, "Request timeout")

            except aiohttp.ClientError as e:
                kind = classify_network_error(e)
                logger.debug(f"HTTP error for {url}: {kind.value} {e}")
                return self._failure(url, start, e, kind, f"HTTP error: {e}")

            except OSError as e:
                kind = classify_network_error(e)
                logger.debug(f"HTTP OS error for {url}: {kind.value} {e}")
                return self._failure(url, start, e, kind, f"HTTP error: {e}")

            if fetch_body:
                body, body_error = await self._fetch_body(session, url, deadline - loop.time())
                if body is not None:
                    data['body'] = body
                if body_error:
                    data['body_error'] = body_error

        return ProbeResult(
            target=url,
            probe_type='http',
            success=True,
            data=data,
            duration_ms=duration_ms(start),
            started_at=start,
            timestamp=response_end
        )

    async def _fetch_body(self, session: aiohttp.ClientSession, url: str,
                          remaining: float) -> tuple:
        """GET the full body within what's left of the deadline.

        Returns (body, error). Failure here is never fatal.
        """
        if remaining <= 0:
            return None, "deadline exceeded before body fetch"
        try:
            async with session.get(
                url,
                allow_redirects=True,
                timeout=aiohttp.ClientTimeout(total=remaining)
            ) as resp:
                return await resp.text(errors='replace'), None
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError) as e:
            logger.debug(f"Body fetch failed for {url}: {type(e).__name__} {e}")
            return None, f"{type(e).__name__}: {e}"

    def _failure(self, url: str, start, exc: BaseException, kind: TransportErrorKind,
                 error: str) -> ProbeResult:
        return ProbeResult(
            target=url,
            probe_type='http',
            success=False,
            data={'error_details': error_details(exc, kind)},
            error=error,
            error_kind=kind,
            duration_ms=duration_ms(start),
            started_at=start,
            timestamp=now_utc()
        )
