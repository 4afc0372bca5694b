"""Rule evaluation - user-defined custom field assertions and product expiry.

Custom fields are grouped by category ("Content Verification", "HTTP Status",
"Performance", "API Response", ...). Every category may hold any rule key;
the category only affects the order clauses are appended in.

Violations of user rules are advisory: they escalate to WARNING at most.
A rule whose signal was never collected is skipped, not reported.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, List, Optional, Callable

from expira.util.types import Severity
from expira.util.time import days_until
from expira.checker.content import extract_title, extract_meta_description, parse_json, is_parsed
from expira.checker.verdict import StageOutcome

logger = logging.getLogger(__name__)

# Rules that need the response body to evaluate
BODY_RULES = ('expectedText', 'expectedTitle', 'expectedMeta', 'expectedJsonKey')


@dataclass(frozen=True)
class CheckSignals:
    """Everything the probes collected that rules can compare against."""
    status_code: Optional[int] = None
    response_time: Optional[float] = None
    content_type: Optional[str] = None
    body: Optional[str] = None


def find_rule(custom_fields: Dict[str, Any], key: str) -> Any:
    """First value for a rule key across categories, in category order."""
    for fields in (custom_fields or {}).values():
        if isinstance(fields, dict) and fields.get(key):
            return fields[key]
    return None


def needs_body(custom_fields: Dict[str, Any]) -> bool:
    return any(find_rule(custom_fields, key) for key in BODY_RULES)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _fmt_ms(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _json_matches(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    if isinstance(actual, str):
        return False
    return json.dumps(actual) == str(expected)


def _json_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


class RuleEvaluator:
    """Evaluates a product's custom field rules against collected signals.

    Each rule key maps to one evaluation function. Functions return a
    violation clause, or None when the rule passes or can't be evaluated.
    """

    def __init__(self):
        """Initialize evaluator."""
        self.evaluators: Dict[str, Callable[[Dict[str, Any], CheckSignals], Optional[str]]] = {
            'expectedText': self._eval_expected_text,
            'expectedTitle': self._eval_expected_title,
            'expectedMeta': self._eval_expected_meta,
            'expectedStatusCode': self._eval_expected_status_code,
            'allowedStatusCodes': self._eval_allowed_status_codes,
            'maxResponseTime': self._eval_max_response_time,
            'minResponseTime': self._eval_min_response_time,
            'expectedResponseFormat': self._eval_expected_response_format,
            'expectedJsonKey': self._eval_expected_json_key,
            'timeout': self._eval_timeout,
        }

    def evaluate(self, custom_fields: Dict[str, Any], signals: CheckSignals) -> List[StageOutcome]:
        """Evaluate every recognized rule, category by category.

        Returns one WARNING outcome per violation, in evaluation order.
        """
        outcomes = []
        for category, fields in (custom_fields or {}).items():
            if not isinstance(fields, dict):
                logger.debug(f"Skipping custom field category {category!r}: not a mapping")
                continue

            for key, value in fields.items():
                evaluator = self.evaluators.get(key)
                if evaluator is None or not value:
                    continue
                clause = evaluator(fields, signals)
                if clause:
                    outcomes.append(StageOutcome(
                        stage=f"rule:{category}:{key}",
                        severity=Severity.WARNING,
                        clause=clause,
                    ))
        return outcomes

    # Content verification

    def _eval_expected_text(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        expected = str(fields['expectedText'])
        if signals.body is None or expected in signals.body:
            return None
        return f'Expected text "{expected}" not found in response'

    def _eval_expected_title(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        if signals.body is None:
            return None
        expected = str(fields['expectedTitle'])
        actual = extract_title(signals.body) or ""
        if actual == expected:
            return None
        return f'Expected title "{expected}", got "{actual}"'

    def _eval_expected_meta(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        if signals.body is None:
            return None
        expected = str(fields['expectedMeta'])
        actual = extract_meta_description(signals.body) or ""
        if expected in actual:
            return None
        return f'Expected meta description containing "{expected}" not found'

    # HTTP status

    def _eval_expected_status_code(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        expected = _as_int(fields['expectedStatusCode'])
        if expected is None or signals.status_code is None:
            return None
        if signals.status_code == expected:
            return None
        return f"Expected status code {expected}, got {signals.status_code}"

    def _eval_allowed_status_codes(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        if signals.status_code is None:
            return None
        raw = fields['allowedStatusCodes']
        entries = raw if isinstance(raw, (list, tuple)) else str(raw).split(',')
        allowed = [code for code in (_as_int(entry) for entry in entries) if code is not None]
        if not allowed or signals.status_code in allowed:
            return None
        listed = raw if isinstance(raw, str) else ",".join(str(e) for e in raw)
        return f"Status code {signals.status_code} not in allowed list: {listed}"

    # Performance

    def _eval_max_response_time(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        limit = _as_number(fields['maxResponseTime'])
        if limit is None or signals.response_time is None or signals.response_time <= limit:
            return None
        return (f"Response time {_fmt_ms(signals.response_time)}ms exceeds maximum "
                f"{_fmt_ms(limit)}ms")

    def _eval_min_response_time(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        limit = _as_number(fields['minResponseTime'])
        if limit is None or signals.response_time is None or signals.response_time >= limit:
            return None
        return (f"Response time {_fmt_ms(signals.response_time)}ms is below minimum "
                f"{_fmt_ms(limit)}ms")

    def _eval_timeout(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        limit = _as_number(fields['timeout'])
        if limit is None or signals.response_time is None or signals.response_time <= limit:
            return None
        return f"Request exceeded timeout of {_fmt_ms(limit)}ms"

    # API response

    def _eval_expected_response_format(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        if signals.content_type is None:
            return None
        expected = str(fields['expectedResponseFormat']).strip().lower()
        if expected != 'json' or 'json' in signals.content_type.lower():
            return None
        return f"Expected JSON format, got {signals.content_type}"

    def _eval_expected_json_key(self, fields: Dict[str, Any], signals: CheckSignals) -> Optional[str]:
        if signals.body is None:
            return None
        parsed = parse_json(signals.body)
        if not is_parsed(parsed) or not isinstance(parsed, dict):
            return None

        key = str(fields['expectedJsonKey'])
        if key not in parsed:
            return f'Expected JSON key "{key}" not found'

        expected = fields.get('expectedJsonValue')
        if expected in (None, ""):
            return None
        actual = parsed[key]
        if _json_matches(actual, expected):
            return None
        return (f'Expected JSON value "{_json_text(expected)}" for key "{key}", '
                f'got "{_json_text(actual)}"')


def evaluate_product_expiry(expires_at: Optional[datetime], now: datetime,
                            warning_days: int = 30) -> Optional[StageOutcome]:
    """Product-level expiry date rule. Runs whenever expires_at is set."""
    if expires_at is None:
        return None

    days = days_until(expires_at, now)
    if days < 0:
        return StageOutcome(
            stage='product_expiry',
            severity=Severity.EXPIRED,
            clause=f"Product expiration date has passed ({abs(days)} days ago)",
        )
    if days <= warning_days:
        return StageOutcome(
            stage='product_expiry',
            severity=Severity.WARNING,
            clause=f"Product expires in {days} days",
        )
    return None
