import threading
from pathlib import Path

import pytest

from contract_monitor.errors import RouteUnresolved, SchemaViolation
from contract_monitor.spec.store import SchemaSpecStore
from contract_monitor.validation.runtime import (
    RecordedError,
    RequestResponseValidator,
    ValidationStats,
)

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def store():
    return SchemaSpecStore.from_file(FIXTURES / "notes_contract.yaml")


@pytest.fixture
def runtime(store):
    return RequestResponseValidator(store)


class TestValidationStats:
    def test_rates(self):
        stats = ValidationStats()
        for i in range(100):
            stats.record_request(i >= 12)
        snap = stats.snapshot()
        assert snap.total_requests == 100
        assert snap.invalid_requests == 12
        assert snap.request_failure_rate == pytest.approx(12.0)
        assert snap.request_success_rate == pytest.approx(88.0)
        assert snap.response_failure_rate == 0.0

    def test_recent_errors_ring_is_bounded(self):
        stats = ValidationStats(recent_error_capacity=3)
        for i in range(5):
            stats.record_response(False, RecordedError(
                timestamp="2026-03-01T00:00:00Z", type="response_validation",
                method="GET", path=f"/api/{i}", status_code=200, error="bad",
            ))
        paths = [e.path for e in stats.snapshot().recent_errors]
        assert paths == ["/api/2", "/api/3", "/api/4"]

    def test_snapshot_is_immutable_copy(self):
        stats = ValidationStats()
        snap = stats.snapshot()
        stats.record_request(True)
        assert snap.total_requests == 0
        assert stats.snapshot().total_requests == 1

    def test_reset(self):
        stats = ValidationStats()
        stats.record_request(False)
        stats.reset()
        assert stats.snapshot().total_requests == 0

    def test_concurrent_increments(self):
        stats = ValidationStats()

        def worker():
            for _ in range(1000):
                stats.record_request(True)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert stats.snapshot().total_requests == 8000


class TestOnRequest:
    def test_valid_request_returns_exchange(self, runtime):
        exchange = runtime.on_request("POST", "/api/notes", body={"title": "Groceries"})
        assert exchange.endpoint.key == ("POST", "/api/notes")
        assert runtime.stats.snapshot().valid_requests == 1

    def test_missing_required_body(self, runtime):
        with pytest.raises(SchemaViolation, match="Request body is required"):
            runtime.on_request("POST", "/api/notes", body={})
        snap = runtime.stats.snapshot()
        assert snap.invalid_requests == 1
        assert snap.recent_errors[0].type == "request_validation"

    def test_invalid_body(self, runtime):
        with pytest.raises(SchemaViolation) as exc:
            runtime.on_request("POST", "/api/notes", body={"title": "ab"})
        assert exc.value.context == "body.title"

    def test_path_param_is_coerced(self, runtime):
        exchange = runtime.on_request("GET", "/api/notes/5", params={"id": "5"})
        assert exchange.endpoint.path_pattern == "/api/notes/{id}"
        with pytest.raises(SchemaViolation) as exc:
            runtime.on_request("GET", "/api/notes/abc", params={"id": "abc"})
        assert exc.value.context == "path.id"

    def test_missing_path_param(self, runtime):
        with pytest.raises(SchemaViolation, match="Required path parameter is missing"):
            runtime.on_request("GET", "/api/notes/5", params={})

    def test_query_params(self, runtime):
        runtime.on_request("GET", "/api/notes", query={"limit": "20", "done": "true"})
        with pytest.raises(SchemaViolation, match="<= 100"):
            runtime.on_request("GET", "/api/notes", query={"limit": "500"})
        with pytest.raises(SchemaViolation, match="Expected boolean"):
            runtime.on_request("GET", "/api/notes", query={"done": "maybe"})

    def test_empty_string_counts_as_missing(self, runtime):
        with pytest.raises(SchemaViolation, match="Required query parameter"):
            runtime.on_request("GET", "/api/notes/search", query={"q": ""})

    def test_header_params_are_case_insensitive(self, runtime):
        query = {"q": "milk"}
        runtime.on_request(
            "GET", "/api/notes/search", query=query,
            headers={"x-request-id": "123e4567-e89b-12d3-a456-426614174000"},
        )
        with pytest.raises(SchemaViolation) as exc:
            runtime.on_request("GET", "/api/notes/search", query=query, headers={"X-Request-Id": "nope"})
        assert exc.value.context == "header.X-Request-Id"

    def test_unresolved_route_is_rejected(self, runtime):
        with pytest.raises(RouteUnresolved):
            runtime.on_request("GET", "/api/unknown")
        assert runtime.stats.snapshot().invalid_requests == 1

    def test_unresolved_route_passes_through_when_allowed(self, store):
        runtime = RequestResponseValidator(store, reject_unresolved=False)
        exchange = runtime.on_request("GET", "/api/unknown")
        assert exchange.endpoint is None
        outcome = runtime.on_response(exchange, 200, {"anything": True})
        assert outcome.valid is True
        assert runtime.stats.snapshot().total_requests == 0


class TestOnResponse:
    def test_valid_response(self, runtime):
        exchange = runtime.on_request("GET", "/api/notes/1", params={"id": "1"})
        outcome = runtime.on_response(exchange, 200, {"id": 1, "title": "Groceries"})
        assert outcome.valid is True
        assert outcome.replaced is False
        assert runtime.stats.snapshot().valid_responses == 1

    def test_invalid_response_is_recorded_not_raised(self, runtime):
        exchange = runtime.on_request("GET", "/api/notes/1", params={"id": "1"})
        body = {"id": "one", "title": "Groceries"}
        outcome = runtime.on_response(exchange, 200, body)
        assert outcome.valid is False
        assert outcome.body is body
        assert "Response(200).id" in outcome.error
        snap = runtime.stats.snapshot()
        assert snap.invalid_responses == 1
        assert snap.recent_errors[-1].status_code == 200

    def test_development_mode_replaces_body(self, store):
        runtime = RequestResponseValidator(store, development_mode=True)
        exchange = runtime.on_request("GET", "/api/notes/1", params={"id": "1"})
        outcome = runtime.on_response(exchange, 200, {"id": 1})
        assert outcome.replaced is True
        assert outcome.body["success"] is False
        assert outcome.body["error"]["code"] == "RESPONSE_VALIDATION_ERROR"

    def test_status_range_and_default_lookup(self, runtime):
        exchange = runtime.on_request("POST", "/api/notes", body={"title": "Groceries"})
        outcome = runtime.on_response(exchange, 422, {"success": False})
        assert outcome.valid is False
        assert "Response(422)" in outcome.error

        exchange = runtime.on_request("GET", "/api/groups")
        assert runtime.on_response(exchange, 500, [{"id": 1, "name": "home"}]).valid is True
        assert runtime.on_response(exchange, 500, [{"id": 1}]).valid is False

    def test_undeclared_status_is_valid(self, runtime):
        exchange = runtime.on_request("GET", "/api/notes/1", params={"id": "1"})
        assert runtime.on_response(exchange, 500, "Internal error").valid is True


class TestValidationReport:
    def test_report_recommendations(self, runtime):
        for _ in range(3):
            with pytest.raises(SchemaViolation):
                runtime.on_request("POST", "/api/notes", body={"title": "x"})
        runtime.on_request("POST", "/api/notes", body={"title": "Groceries"})

        report = runtime.validation_report()
        assert report["summary"]["total_endpoints"] == 8
        assert report["summary"]["request_success_rate"] == "25.00%"
        assert "POST /api/notes" in report["endpoints"]
        assert [r["type"] for r in report["recommendations"]] == ["high_request_failure_rate"]
