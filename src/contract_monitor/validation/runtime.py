"""HTTP-boundary validation hooks with cumulative pass/fail counters."""

import logging
import re
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from contract_monitor.errors import RouteUnresolved, SchemaViolation, SpecInvalid
from contract_monitor.spec.base import EndpointDescriptor, Param
from contract_monitor.spec.store import SchemaSpecStore

from .routes import RouteMatcher
from .schema import SchemaValidator

logger = logging.getLogger(__name__)

DEFAULT_RECENT_ERRORS = 10

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordedError(BaseModel):
    """One recorded request or response validation failure."""

    timestamp: datetime
    type: str  # request_validation / response_validation
    method: str
    path: str
    status_code: int | None = None
    error: str


class ValidationStatsSnapshot(BaseModel):
    """Point-in-time copy of the validation counters."""

    model_config = ConfigDict(frozen=True)

    total_requests: int = 0
    valid_requests: int = 0
    invalid_requests: int = 0
    total_responses: int = 0
    valid_responses: int = 0
    invalid_responses: int = 0
    recent_errors: list[RecordedError] = Field(default_factory=list)

    @property
    def request_failure_rate(self) -> float:
        """Percentage of requests that failed validation."""
        if not self.total_requests:
            return 0.0
        return self.invalid_requests * 100 / self.total_requests

    @property
    def response_failure_rate(self) -> float:
        if not self.total_responses:
            return 0.0
        return self.invalid_responses * 100 / self.total_responses

    @property
    def request_success_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.valid_requests * 100 / self.total_requests

    @property
    def response_success_rate(self) -> float:
        if not self.total_responses:
            return 0.0
        return self.valid_responses * 100 / self.total_responses


class ValidationStats:
    """Thread-safe cumulative counters plus a bounded ring of recent errors."""

    def __init__(self, recent_error_capacity: int = DEFAULT_RECENT_ERRORS):
        self._lock = threading.Lock()
        self._capacity = recent_error_capacity
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._counts = dict.fromkeys(
                ("total_requests", "valid_requests", "invalid_requests",
                 "total_responses", "valid_responses", "invalid_responses"),
                0,
            )
            self._recent: deque[RecordedError] = deque(maxlen=self._capacity)

    def record_request(self, valid: bool, error: RecordedError | None = None) -> None:
        with self._lock:
            self._counts["total_requests"] += 1
            self._counts["valid_requests" if valid else "invalid_requests"] += 1
            if error is not None:
                self._recent.append(error)

    def record_response(self, valid: bool, error: RecordedError | None = None) -> None:
        with self._lock:
            self._counts["total_responses"] += 1
            self._counts["valid_responses" if valid else "invalid_responses"] += 1
            if error is not None:
                self._recent.append(error)

    def snapshot(self) -> ValidationStatsSnapshot:
        with self._lock:
            return ValidationStatsSnapshot(**self._counts, recent_errors=list(self._recent))


class Exchange(BaseModel):
    """Request-phase result handed back to the host for the response phase."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    endpoint: EndpointDescriptor | None = None


class ResponseOutcome(BaseModel):
    """Response-phase result. ``body`` is what the host should send."""

    valid: bool
    body: Any = None
    error: str | None = None
    replaced: bool = False


class RequestResponseValidator:
    """Validates exchanges at the HTTP boundary against a SchemaSpecStore.

    ``on_request`` raises to reject the exchange. ``on_response`` only records;
    with ``development_mode`` an invalid payload is swapped for a diagnostic body.
    """

    def __init__(
        self,
        store: SchemaSpecStore,
        stats: ValidationStats | None = None,
        matcher: RouteMatcher | None = None,
        validator: SchemaValidator | None = None,
        development_mode: bool = False,
        reject_unresolved: bool = True,
    ):
        self.store = store
        self.stats = stats or ValidationStats()
        self.matcher = matcher or RouteMatcher(store.endpoints.values())
        self.validator = validator or SchemaValidator(store)
        self.development_mode = development_mode
        self.reject_unresolved = reject_unresolved

    # -- request phase ----------------------------------------------------------

    def on_request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Exchange:
        method = method.upper()
        endpoint = self.matcher.resolve(method, path)

        try:
            if endpoint is None:
                if not self.reject_unresolved:
                    logger.debug("No contract operation for %s %s, skipping validation", method, path)
                    return Exchange(method=method, path=path)
                raise RouteUnresolved(method, path)

            self._validate_parameters(endpoint, "path", params or {})
            self._validate_parameters(endpoint, "query", query or {})
            self._validate_parameters(endpoint, "header", _lower_keys(headers or {}))
            self._validate_body(endpoint, body)
        except (SchemaViolation, RouteUnresolved) as e:
            self.stats.record_request(
                False,
                RecordedError(
                    timestamp=_utcnow(), type="request_validation",
                    method=method, path=path, error=str(e),
                ),
            )
            logger.warning("Request validation failed for %s %s: %s", method, path, e)
            raise

        self.stats.record_request(True)
        logger.debug("Request validation passed for %s %s", method, path)
        return Exchange(method=method, path=path, endpoint=endpoint)

    def _validate_parameters(self, endpoint: EndpointDescriptor, location: str, values: Mapping[str, Any]) -> None:
        for param in endpoint.parameters_in(location):
            key = param.name.lower() if location == "header" else param.name
            value = values.get(key)

            if value is None or value == "":
                if param.required:
                    raise SchemaViolation(f"{location}.{param.name}", f"Required {location} parameter is missing")
                continue

            if param.schema_node:
                self.validator.validate(
                    self._coerce(value, param),
                    param.schema_node,
                    f"{location}.{param.name}",
                )

    def _coerce(self, value: Any, param: Param) -> Any:
        """Convert a raw string parameter to the declared primitive type."""
        schema = self.validator.resolve(param.schema_node)
        schema_type = schema.get("type")

        if isinstance(value, str):
            if schema_type == "integer" and _INTEGER_RE.match(value):
                return int(value)
            if schema_type == "number":
                try:
                    return float(value) if not _INTEGER_RE.match(value) else int(value)
                except ValueError:
                    return value
            if schema_type == "boolean" and value.lower() in ("true", "false"):
                return value.lower() == "true"
            if schema_type == "array":
                return [self._coerce(v, _item_param(param, schema)) for v in value.split(",")]
        elif isinstance(value, (list, tuple)) and schema_type == "array":
            return [self._coerce(v, _item_param(param, schema)) for v in value]
        return value

    def _validate_body(self, endpoint: EndpointDescriptor, body: Any) -> None:
        empty = body is None or body == {} or body == ""
        if empty:
            if endpoint.request_body_required:
                raise SchemaViolation("body", "Request body is required")
            return
        if endpoint.request_schema:
            self.validator.validate(body, endpoint.request_schema, "body")

    # -- response phase ---------------------------------------------------------

    def on_response(self, exchange: Exchange, status_code: int, body: Any) -> ResponseOutcome:
        if exchange.endpoint is None:
            return ResponseOutcome(valid=True, body=body)

        schema = self._response_schema(exchange.endpoint, status_code)
        if schema is None:
            self.stats.record_response(True)
            return ResponseOutcome(valid=True, body=body)

        try:
            self.validator.validate(body, schema, f"Response({status_code})")
        except (SchemaViolation, SpecInvalid) as e:
            self.stats.record_response(
                False,
                RecordedError(
                    timestamp=_utcnow(), type="response_validation", method=exchange.method,
                    path=exchange.path, status_code=status_code, error=str(e),
                ),
            )
            logger.error(
                "Response validation failed for %s %s (%s): %s",
                exchange.method, exchange.path, status_code, e,
            )
            if self.development_mode:
                return ResponseOutcome(valid=False, body=_diagnostic_body(e), error=str(e), replaced=True)
            return ResponseOutcome(valid=False, body=body, error=str(e))

        self.stats.record_response(True)
        return ResponseOutcome(valid=True, body=body)

    @staticmethod
    def _response_schema(endpoint: EndpointDescriptor, status_code: int) -> dict | None:
        schemas = endpoint.response_schemas
        status = str(status_code)
        for key in (status, f"{status[0]}XX", f"{status[0]}xx", "default"):
            if key in schemas:
                return schemas[key]
        return None

    # -- reporting ----------------------------------------------------------------

    def validation_report(self) -> dict:
        """Summary of counters, covered endpoints and recommendations."""
        stats = self.stats.snapshot()
        return {
            "timestamp": _utcnow().isoformat(),
            "summary": {
                "total_endpoints": len(self.store.endpoints),
                "total_requests": stats.total_requests,
                "total_responses": stats.total_responses,
                "request_success_rate": f"{stats.request_success_rate:.2f}%",
                "response_success_rate": f"{stats.response_success_rate:.2f}%",
            },
            "statistics": stats.model_dump(mode="json"),
            "endpoints": [f"{method} {pattern}" for method, pattern in self.store.endpoints],
            "recommendations": _stats_recommendations(stats),
        }


def _stats_recommendations(stats: ValidationStatsSnapshot) -> list[dict]:
    recommendations = []
    if stats.invalid_requests > stats.valid_requests * 0.1:
        recommendations.append({
            "type": "high_request_failure_rate",
            "message": "High request validation failure rate. Review client-side validation "
                       "and the API documentation.",
            "priority": "high",
        })
    if stats.invalid_responses > stats.valid_responses * 0.05:
        recommendations.append({
            "type": "response_validation_issues",
            "message": "Responses are failing contract validation. Review the API "
                       "implementation for schema compliance.",
            "priority": "high",
        })
    return recommendations


def _diagnostic_body(error: Exception) -> dict:
    return {
        "success": False,
        "error": {
            "code": "RESPONSE_VALIDATION_ERROR",
            "message": "Response does not match API contract",
            "details": str(error),
        },
    }


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def _item_param(param: Param, schema: dict) -> Param:
    return param.model_copy(update={"schema_node": schema.get("items") or {}})
