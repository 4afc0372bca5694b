"""
Unit Tests for Custom Field Rules and the Product Expiry Rule
"""

import json
from datetime import timedelta

import pytest

from expira.util.types import Severity
from expira.checker.rules import (
    RuleEvaluator, CheckSignals, evaluate_product_expiry, find_rule, needs_body,
)

from conftest import NOW

PAGE = ("<html><head><title>Acme Store</title>"
        "<meta name=\"description\" content=\"Best deals on widgets\"></head>"
        "<body>Welcome to Acme</body></html>")


def _clauses(outcomes):
    return [o.clause for o in outcomes]


class TestRuleEvaluator:
    """Test suite for RuleEvaluator"""

    @pytest.fixture
    def evaluator(self):
        return RuleEvaluator()

    @pytest.fixture
    def page_signals(self):
        return CheckSignals(status_code=200, response_time=450,
                            content_type="text/html; charset=utf-8", body=PAGE)

    def test_no_rules(self, evaluator, page_signals):
        assert evaluator.evaluate({}, page_signals) == []
        assert evaluator.evaluate(None, page_signals) == []

    def test_passing_content_rules(self, evaluator, page_signals):
        rules = {"Content Verification": {
            "expectedText": "Welcome to Acme",
            "expectedTitle": "Acme Store",
            "expectedMeta": "widgets",
        }}

        assert evaluator.evaluate(rules, page_signals) == []

    def test_failing_content_rules(self, evaluator, page_signals):
        rules = {"Content Verification": {
            "expectedText": "Out of stock",
            "expectedTitle": "Acme Shop",
            "expectedMeta": "gadgets",
        }}

        outcomes = evaluator.evaluate(rules, page_signals)

        assert _clauses(outcomes) == [
            'Expected text "Out of stock" not found in response',
            'Expected title "Acme Shop", got "Acme Store"',
            'Expected meta description containing "gadgets" not found',
        ]
        assert all(o.severity == Severity.WARNING for o in outcomes)

    def test_missing_title_is_empty_string(self, evaluator):
        signals = CheckSignals(status_code=200, body="<html><body>hi</body></html>")

        outcomes = evaluator.evaluate({"Content": {"expectedTitle": "Home"}}, signals)

        assert _clauses(outcomes) == ['Expected title "Home", got ""']

    def test_expected_status_code(self, evaluator, page_signals):
        assert evaluator.evaluate({"HTTP Status": {"expectedStatusCode": "200"}}, page_signals) == []

        outcomes = evaluator.evaluate({"HTTP Status": {"expectedStatusCode": 201}}, page_signals)

        assert _clauses(outcomes) == ["Expected status code 201, got 200"]

    def test_allowed_status_codes(self, evaluator):
        signals = CheckSignals(status_code=404)

        outcomes = evaluator.evaluate({"HTTP Status": {"allowedStatusCodes": "200,301"}}, signals)

        assert _clauses(outcomes) == ["Status code 404 not in allowed list: 200,301"]

    def test_allowed_status_codes_skips_malformed_entries(self, evaluator):
        rules = {"HTTP Status": {"allowedStatusCodes": "200, abc, 404"}}

        assert evaluator.evaluate(rules, CheckSignals(status_code=404)) == []
        assert len(evaluator.evaluate(rules, CheckSignals(status_code=500))) == 1

    def test_allowed_status_codes_all_malformed_is_skipped(self, evaluator):
        rules = {"HTTP Status": {"allowedStatusCodes": "ok, fine"}}

        assert evaluator.evaluate(rules, CheckSignals(status_code=500)) == []

    def test_response_time_rules(self, evaluator):
        signals = CheckSignals(status_code=200, response_time=1500)
        rules = {"Performance": {
            "maxResponseTime": "1000",
            "minResponseTime": 2000,
            "timeout": 1200,
        }}

        outcomes = evaluator.evaluate(rules, signals)

        assert _clauses(outcomes) == [
            "Response time 1500ms exceeds maximum 1000ms",
            "Response time 1500ms is below minimum 2000ms",
            "Request exceeded timeout of 1200ms",
        ]

    def test_response_time_within_limits(self, evaluator):
        signals = CheckSignals(status_code=200, response_time=1000)
        rules = {"Performance": {"maxResponseTime": 1000, "minResponseTime": 1000, "timeout": 1000}}

        assert evaluator.evaluate(rules, signals) == []

    def test_expected_response_format(self, evaluator):
        rules = {"API Response": {"expectedResponseFormat": "json"}}

        assert evaluator.evaluate(rules, CheckSignals(content_type="application/json")) == []
        outcomes = evaluator.evaluate(rules, CheckSignals(content_type="text/html"))

        assert _clauses(outcomes) == ["Expected JSON format, got text/html"]

    def test_expected_json_key(self, evaluator):
        signals = CheckSignals(status_code=200, body=json.dumps({"status": "ok"}))

        assert evaluator.evaluate({"API Response": {"expectedJsonKey": "status"}}, signals) == []
        outcomes = evaluator.evaluate({"API Response": {"expectedJsonKey": "health"}}, signals)

        assert _clauses(outcomes) == ['Expected JSON key "health" not found']

    def test_expected_json_value_mismatch(self, evaluator):
        signals = CheckSignals(status_code=200, body=json.dumps({"status": "fail"}))
        rules = {"API Response": {"expectedJsonKey": "status", "expectedJsonValue": "ok"}}

        outcomes = evaluator.evaluate(rules, signals)

        assert _clauses(outcomes) == ['Expected JSON value "ok" for key "status", got "fail"']

    @pytest.mark.parametrize("actual,expected", [
        (5, "5"),
        (True, "true"),
        ("ok", "ok"),
        ([1, 2], "[1, 2]"),
    ])
    def test_expected_json_value_matches_serialized_form(self, evaluator, actual, expected):
        signals = CheckSignals(body=json.dumps({"value": actual}))
        rules = {"API Response": {"expectedJsonKey": "value", "expectedJsonValue": expected}}

        assert evaluator.evaluate(rules, signals) == []

    def test_rule_independence(self, evaluator):
        """A JSON rule against a non-JSON body is skipped; other rules still run"""
        signals = CheckSignals(status_code=200, response_time=900,
                               content_type="text/html", body="<html>not json</html>")
        rules = {
            "API Response": {"expectedJsonKey": "status", "expectedJsonValue": "ok"},
            "Performance": {"maxResponseTime": 500},
        }

        outcomes = evaluator.evaluate(rules, signals)

        assert _clauses(outcomes) == ["Response time 900ms exceeds maximum 500ms"]

    def test_json_rule_on_array_body_skipped(self, evaluator):
        signals = CheckSignals(body="[1, 2, 3]")

        assert evaluator.evaluate({"API Response": {"expectedJsonKey": "status"}}, signals) == []

    def test_missing_signals_skip_rules(self, evaluator):
        """No response at all: every rule is silently skipped"""
        rules = {
            "Content Verification": {"expectedText": "x", "expectedTitle": "y", "expectedMeta": "z"},
            "HTTP Status": {"expectedStatusCode": 200, "allowedStatusCodes": "200"},
            "Performance": {"maxResponseTime": 1, "minResponseTime": 1, "timeout": 1},
            "API Response": {"expectedResponseFormat": "json", "expectedJsonKey": "k"},
        }

        assert evaluator.evaluate(rules, CheckSignals()) == []

    def test_falsy_values_disable_rules(self, evaluator, page_signals):
        rules = {"Mixed": {"expectedText": "", "maxResponseTime": 0, "expectedStatusCode": None}}

        assert evaluator.evaluate(rules, page_signals) == []

    def test_unknown_keys_and_bad_categories_ignored(self, evaluator, page_signals):
        rules = {"Notes": "free text", "Other": {"color": "blue"}}

        assert evaluator.evaluate(rules, page_signals) == []

    def test_category_order_changes_message_not_severity(self, evaluator):
        signals = CheckSignals(status_code=500, response_time=900)
        first = {"A": {"expectedStatusCode": 200}, "B": {"maxResponseTime": 100}}
        second = {"B": {"maxResponseTime": 100}, "A": {"expectedStatusCode": 200}}

        outcomes_first = evaluator.evaluate(first, signals)
        outcomes_second = evaluator.evaluate(second, signals)

        assert _clauses(outcomes_first) == list(reversed(_clauses(outcomes_second)))
        assert max(o.severity for o in outcomes_first) == max(o.severity for o in outcomes_second)


class TestRuleLookup:
    """Test suite for find_rule and needs_body"""

    def test_find_rule_across_categories(self):
        fields = {"Performance": {"maxResponseTime": 500}, "Content": {"expectedText": "hi"}}

        assert find_rule(fields, "expectedText") == "hi"
        assert find_rule(fields, "expectedTitle") is None

    def test_needs_body(self):
        assert needs_body({"Content": {"expectedTitle": "Home"}}) is True
        assert needs_body({"Performance": {"maxResponseTime": 500}}) is False
        assert needs_body({}) is False


class TestProductExpiry:
    """Test suite for the product expiry rule"""

    @pytest.mark.parametrize("delta,severity,clause", [
        (timedelta(days=30), Severity.WARNING, "Product expires in 30 days"),
        (timedelta(days=31), None, None),
        (timedelta(days=-1), Severity.EXPIRED, "Product expiration date has passed (1 days ago)"),
        (timedelta(0), Severity.WARNING, "Product expires in 0 days"),
        (timedelta(hours=5), Severity.WARNING, "Product expires in 0 days"),
        (timedelta(days=-5), Severity.EXPIRED, "Product expiration date has passed (5 days ago)"),
    ])
    def test_window_boundaries(self, delta, severity, clause):
        outcome = evaluate_product_expiry(NOW + delta, NOW)

        if severity is None:
            assert outcome is None
        else:
            assert outcome.severity == severity
            assert outcome.clause == clause

    def test_no_expiry_date(self):
        assert evaluate_product_expiry(None, NOW) is None

    def test_custom_window(self):
        assert evaluate_product_expiry(NOW + timedelta(days=10), NOW, warning_days=7) is None
