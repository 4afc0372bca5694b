"""Verdict reduction - fold stage outcomes into one status and message.

Every stage reports a StageOutcome: a suggested severity, an optional
message clause, and optional error information. The Verdict is an
immutable accumulator; applying an outcome returns a new Verdict whose
severity is the max of the two. Severity therefore never goes down,
and the final severity is the max over all outcomes whatever their order.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Any, Iterable, List, Optional, Tuple

from expira.util.types import ProbeResult, Severity, TransportErrorKind

HEALTHY_MESSAGE = "Product is healthy"
CLAUSE_SEPARATOR = ". "

# Network failure kind -> severity, for both the HTTP request and the strict TLS handshake.
ERROR_SEVERITY: Dict[TransportErrorKind, Severity] = {
    TransportErrorKind.TIMEOUT: Severity.WARNING,
    TransportErrorKind.NAME_NOT_RESOLVED: Severity.EXPIRED,
    TransportErrorKind.CONNECTION_REFUSED: Severity.EXPIRED,
    TransportErrorKind.CERT_EXPIRED: Severity.EXPIRED,
    TransportErrorKind.CERT_UNVERIFIED: Severity.WARNING,
    TransportErrorKind.CERT_SIGNATURE_FAILURE: Severity.WARNING,
    TransportErrorKind.TLS_ERROR: Severity.WARNING,
    TransportErrorKind.NETWORK_ERROR: Severity.WARNING,
}

_TRANSPORT_MESSAGES = {
    TransportErrorKind.TIMEOUT: "Request timeout - website took too long to respond",
    TransportErrorKind.NAME_NOT_RESOLVED: "Domain not found - the website does not exist or DNS lookup failed",
    TransportErrorKind.CONNECTION_REFUSED: "Connection refused - the website is not accessible",
    TransportErrorKind.CERT_EXPIRED: "SSL certificate has expired",
}


@dataclass(frozen=True)
class StageOutcome:
    """What one stage (or one rule) contributes to the verdict."""
    stage: str
    severity: Severity = Severity.ACTIVE
    clause: Optional[str] = None
    error_code: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Verdict:
    """Immutable running verdict for one check."""
    severity: Severity = Severity.ACTIVE
    clauses: Tuple[str, ...] = ()
    error_code: Optional[str] = None
    error_details: Tuple[Tuple[str, Dict[str, Any]], ...] = field(default_factory=tuple)

    def apply(self, outcome: StageOutcome) -> "Verdict":
        """Return a new Verdict with outcome merged in. Never lowers severity.

        A clause identical to one already recorded is not repeated.
        """
        clauses = self.clauses
        if outcome.clause and outcome.clause not in clauses:
            clauses = clauses + (outcome.clause,)
        details = self.error_details
        if outcome.error_details:
            details = details + ((outcome.stage, outcome.error_details),)
        return replace(
            self,
            severity=max(self.severity, outcome.severity),
            clauses=clauses,
            error_code=self.error_code or outcome.error_code,
            error_details=details,
        )

    @property
    def message(self) -> str:
        return CLAUSE_SEPARATOR.join(self.clauses) if self.clauses else HEALTHY_MESSAGE

    def details_dict(self) -> Optional[Dict[str, Any]]:
        return dict(self.error_details) if self.error_details else None


def reduce_verdict(outcomes: Iterable[StageOutcome], initial: Optional[Verdict] = None) -> Verdict:
    """Fold outcomes, in execution order, into a single Verdict."""
    verdict = initial or Verdict()
    for outcome in outcomes:
        verdict = verdict.apply(outcome)
    return verdict


def fatal_outcome(reason: str, error_code: str = "CHECK_FAILED") -> StageOutcome:
    """Outcome for a failure that leaves nothing else to check."""
    return StageOutcome(
        stage='engine',
        severity=Severity.EXPIRED,
        clause=f"Failed to check website: {reason}",
        error_code=error_code,
        error_details={'code': error_code, 'message': reason},
    )


def transport_outcome(probe: ProbeResult) -> StageOutcome:
    """Judge the primary HTTP request."""
    if not probe.success:
        kind = probe.error_kind or TransportErrorKind.NETWORK_ERROR
        details = probe.data.get('error_details') or {}
        clause = _TRANSPORT_MESSAGES.get(kind)
        if clause is None:
            clause = f"Unable to access website: {details.get('message') or probe.error or 'Unknown error'}"
        return StageOutcome(
            stage='transport',
            severity=ERROR_SEVERITY[kind],
            clause=clause,
            error_code=kind.value,
            error_details=details or None,
        )

    status_code = probe.data['status_code']
    if not 200 <= status_code < 300:
        return StageOutcome(
            stage='transport',
            severity=Severity.WARNING,
            clause=f"Website returned status {status_code}: {probe.data.get('reason', '')}",
        )
    return StageOutcome(
        stage='transport',
        clause=(
            f"Website is accessible (Status: {status_code}, "
            f"Response time: {probe.data.get('response_time_ms')}ms)"
        ),
    )


def _strict_clause(kind: TransportErrorKind, error: str) -> str:
    if kind in (TransportErrorKind.NAME_NOT_RESOLVED, TransportErrorKind.CONNECTION_REFUSED):
        return f"Domain not found or not accessible: {error}"
    if kind == TransportErrorKind.CERT_EXPIRED:
        return "SSL certificate has expired"
    if kind in (TransportErrorKind.CERT_UNVERIFIED, TransportErrorKind.CERT_SIGNATURE_FAILURE):
        return "SSL certificate verification failed"
    if kind == TransportErrorKind.TIMEOUT:
        return "Connection timeout"
    return f"Connection error: {error}"


def tls_outcomes(probe: ProbeResult, warning_days: int = 30) -> List[StageOutcome]:
    """Judge certificate expiry and the strict handshake, independently."""
    outcomes = []

    cert = probe.data.get('cert')
    days = cert.get('days_until_expiry') if cert else None
    if days is not None:
        if days < 0:
            outcomes.append(StageOutcome(
                stage='tls_certificate',
                severity=Severity.EXPIRED,
                clause=f"SSL certificate expired {abs(days)} days ago",
            ))
        elif days <= warning_days:
            outcomes.append(StageOutcome(
                stage='tls_certificate',
                severity=Severity.WARNING,
                clause=f"SSL certificate expires in {days} days",
            ))

    strict = probe.data.get('strict') or {}
    if strict and not strict.get('verified'):
        kind = strict.get('error_kind') or TransportErrorKind.TLS_ERROR
        outcomes.append(StageOutcome(
            stage='tls_strict',
            severity=ERROR_SEVERITY[kind],
            clause=_strict_clause(kind, strict.get('error') or "unknown error"),
            error_code=kind.value,
            error_details=strict.get('error_details'),
        ))

    return outcomes
