"""Product check engine - runs every stage and reduces them to one verdict.

CHECK FLOW:
1. Normalize the product URL (the only fatal precondition)
2. Resolve DNS (A/AAAA/MX)
3. HTTP probe and TLS inspection, concurrently
4. Content analysis on whatever body the HTTP probe fetched
5. Performance aggregation from probe timings
6. Custom field rules, then the product expiry rule
7. Reduce all stage outcomes, in that order, into one verdict

Every stage handles its own failures. Whatever happens, a check ends
with a complete CheckResult.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from expira.util.config import Config
from expira.util.time import now_utc
from expira.util.types import ProbeResult, ProductType
from expira.checker.records import (
    Product, CheckResult, DnsInfo, SslInfo, NetworkInfo,
)
from expira.checker.target import normalize_target, InvalidTargetError
from expira.checker.probes.dns_probe import DNSProbe
from expira.checker.probes.http_probe import HTTPProbe
from expira.checker.probes.tls_probe import TLSProbe
from expira.checker.content import analyze_html, analyze_api
from expira.checker.performance import aggregate_performance
from expira.checker.rules import (
    RuleEvaluator, CheckSignals, evaluate_product_expiry, find_rule, needs_body,
)
from expira.checker.verdict import (
    Verdict, reduce_verdict, fatal_outcome, transport_outcome, tls_outcomes,
)
from expira.notifications.dispatcher import NotificationDispatcher, plan_check_alerts

logger = logging.getLogger(__name__)

# Product types whose checks always need the response body
BODY_TYPES = (ProductType.WEBSITE, ProductType.API)


@dataclass(frozen=True)
class CheckResponse:
    """What a caller gets back from check_product."""
    success: bool
    product: Product
    message: str
    check: CheckResult

    def to_dict(self):
        return {
            'success': self.success,
            'product': self.product.to_dict(),
            'message': self.message,
            'check': self.check.to_dict(),
        }


class ProductChecker:
    """Runs health checks for stored products.

    Probes are injectable so tests can replace the network entirely.
    """

    def __init__(self, store, dispatcher: Optional[NotificationDispatcher] = None,
                 config: Optional[Config] = None,
                 dns_probe: Optional[DNSProbe] = None,
                 http_probe: Optional[HTTPProbe] = None,
                 tls_probe: Optional[TLSProbe] = None):
        """Initialize checker with persistence, notifications and probes."""
        self.store = store
        self.dispatcher = dispatcher
        self.config = config or Config()

        self.dns_probe = dns_probe or DNSProbe(timeout=self.config.dns_timeout)
        self.http_probe = http_probe or HTTPProbe(
            timeout=self.config.http_timeout,
            user_agent=self.config.user_agent
        )
        self.tls_probe = tls_probe or TLSProbe(timeout=self.config.tls_timeout)
        self.rules = RuleEvaluator()

    async def check_product(self, product_id: str) -> CheckResponse:
        """Check one stored product and record the outcome.

        Side effects, in order: product status and last_checked updated,
        one new check row inserted, alerts dispatched when not active.
        Raises ProductNotFoundError for an unknown id.
        """
        product = self.store.get_product(product_id)
        logger.info(f"Checking product {product.id} ({product.type.value}): {product.url}")

        check, verdict = await self.run_pipeline(product)
        status = verdict.severity.product_status

        self.store.update_product_status(product.id, status, last_checked=check.checked_at)
        stored = self.store.insert_check(check)
        product.status = status
        product.last_checked = check.checked_at

        logger.info(f"✓ {product.name}: {status.value} - {check.message}")

        alerts = plan_check_alerts(product.name, product.user_id, status, check.status, check.message)
        if alerts and self.dispatcher is not None:
            sent = await self.dispatcher.dispatch_all(alerts)
            logger.debug(f"Dispatched {sent}/{len(alerts)} alerts for {product.id}")

        return CheckResponse(success=True, product=product, message=check.message, check=stored)

    async def run_pipeline(self, product: Product,
                           now: Optional[datetime] = None) -> Tuple[CheckResult, Verdict]:
        """Run every stage for product. Never raises.

        now is the check start time; it is also used for every
        days-until-expiry computation in this check.
        """
        checked_at = now or now_utc()
        try:
            return await self._run_stages(product, checked_at)
        except Exception as e:
            logger.error(f"Check failed for product {product.id}: {e}", exc_info=True)
            verdict = reduce_verdict([fatal_outcome(str(e) or type(e).__name__)])
            return self._fatal_result(product, checked_at, verdict), verdict

    async def _run_stages(self, product: Product, checked_at: datetime) -> Tuple[CheckResult, Verdict]:
        try:
            target = normalize_target(product.url)
        except InvalidTargetError as e:
            logger.warning(f"Product {product.id} has an invalid URL: {e}")
            verdict = reduce_verdict([fatal_outcome(str(e), error_code="INVALID_URL")])
            return self._fatal_result(product, checked_at, verdict), verdict

        # Resolving
        dns = await self.dns_probe.resolve(target.hostname)

        # Probing, with TLS inspection alongside
        method = 'GET' if product.type in BODY_TYPES else 'HEAD'
        fetch_body = product.type in BODY_TYPES or needs_body(product.custom_fields)
        http, tls = await asyncio.gather(
            self.http_probe.probe(target.url, method=method, fetch_body=fetch_body),
            self._inspect_tls(target, checked_at)
        )

        outcomes = [transport_outcome(http)]
        if tls is not None:
            outcomes.extend(tls_outcomes(tls, self.config.cert_warning_days))

        # Content analysis
        body = http.data.get('body') if http.success else None
        content_type = http.data.get('content_type') if http.success else None
        content_info = None
        api_response = None
        if body is not None and product.type == ProductType.WEBSITE:
            content_info = analyze_html(
                body, content_type or "", find_rule(product.custom_fields, 'expectedText'))
        elif body is not None and product.type == ProductType.API:
            api_response = analyze_api(body, content_type or "")

        # Aggregating
        response_time = http.data.get('response_time_ms') if http.success else None
        performance = aggregate_performance(dns, http, tls, response_time)

        # Evaluating
        signals = CheckSignals(
            status_code=http.data.get('status_code') if http.success else None,
            response_time=response_time,
            content_type=content_type or None,
            body=body,
        )
        outcomes.extend(self.rules.evaluate(product.custom_fields, signals))
        expiry = evaluate_product_expiry(product.expires_at, checked_at, self.config.expiry_warning_days)
        if expiry is not None:
            outcomes.append(expiry)

        verdict = reduce_verdict(outcomes)

        check = CheckResult(
            product_id=product.id,
            status=verdict.severity.check_status,
            message=verdict.message,
            checked_at=checked_at,
            response_time=response_time,
            status_code=signals.status_code,
            error_code=verdict.error_code,
            error_details=verdict.details_dict(),
            http_headers=http.data.get('headers') if http.success else None,
            dns_info=DnsInfo.from_dict(dns.data) if dns.success else None,
            ssl_info=_ssl_info(tls),
            api_response=api_response,
            content_info=content_info,
            performance=performance,
            network_info=_network_info(dns, http),
        )
        return check, verdict

    async def _inspect_tls(self, target, checked_at: datetime) -> Optional[ProbeResult]:
        if not target.is_https:
            return None
        return await self.tls_probe.inspect(target.hostname, target.port, now=checked_at)

    def _fatal_result(self, product: Product, checked_at: datetime, verdict: Verdict) -> CheckResult:
        return CheckResult(
            product_id=product.id,
            status=verdict.severity.check_status,
            message=verdict.message,
            checked_at=checked_at,
            error_code=verdict.error_code,
            error_details=verdict.details_dict(),
        )


def _ssl_info(tls: Optional[ProbeResult]) -> Optional[SslInfo]:
    cert = tls.data.get('cert') if tls is not None else None
    return SslInfo(**cert) if cert else None


def _network_info(dns: ProbeResult, http: ProbeResult) -> Optional[NetworkInfo]:
    ipv4 = dns.data.get('ipv4') or []
    server = (http.data.get('headers') or {}).get('server') if http.success else None
    if not ipv4 and not server:
        return None
    return NetworkInfo(ip_address=ipv4[0] if ipv4 else None, server=server)
