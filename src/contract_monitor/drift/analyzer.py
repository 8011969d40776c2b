"""Drift detection between client call sites and declared backend endpoints."""

import logging
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from contract_monitor.spec.base import EndpointDescriptor
from contract_monitor.validation.routes import RouteMatcher

from .scanner import ApiCallSite
from .similarity import calculate_path_similarity

logger = logging.getLogger(__name__)

DEFAULT_INTERNAL_PATHS = ("/health", "/api-docs", "/api/openapi.json", "/api/contract/validate")

SUGGESTION_THRESHOLD = 0.5
MAX_SUGGESTIONS = 3

CallKey = tuple[str, str]


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    endpoint: str  # "GET /api/notes/{id}"
    similarity: float
    files: list[str] = Field(default_factory=list)


class Inconsistency(BaseModel):
    """One drift finding between client calls and the declared contract."""

    model_config = ConfigDict(frozen=True)

    type: str  # missing_backend_endpoint / unused_backend_endpoint
    severity: str  # error / warning
    method: str
    path: str
    message: str
    call_sites: list[ApiCallSite] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)


class ConsistencyAnalyzer:
    """Diffs scanned call sites against declared endpoints."""

    def __init__(self, internal_paths: tuple[str, ...] = DEFAULT_INTERNAL_PATHS):
        self.internal_paths = tuple(internal_paths)

    def diff(
        self,
        frontend_calls: Mapping[CallKey, list[ApiCallSite]],
        backend_endpoints: Mapping[CallKey, EndpointDescriptor],
    ) -> list[Inconsistency]:
        matcher = RouteMatcher(backend_endpoints.values())
        issues: list[Inconsistency] = []

        for (method, path), sites in frontend_calls.items():
            if (method, path) in backend_endpoints or matcher.candidates(method, path):
                continue
            issues.append(
                Inconsistency(
                    type="missing_backend_endpoint",
                    severity="error",
                    method=method,
                    path=path,
                    message=f"Frontend calls {method} {path} but no backend endpoint exists",
                    call_sites=list(sites),
                    suggestions=self._suggest(method, path, {k: [] for k in backend_endpoints}),
                )
            )

        for (method, pattern), endpoint in backend_endpoints.items():
            if self.is_internal(pattern):
                continue
            exercised = any(
                call_method == method and (call_path == pattern or RouteMatcher.match(call_path, pattern))
                for call_method, call_path in frontend_calls
            )
            if exercised:
                continue
            issues.append(
                Inconsistency(
                    type="unused_backend_endpoint",
                    severity="warning",
                    method=method,
                    path=pattern,
                    message=f"Backend endpoint {method} {pattern} is not used by frontend",
                    suggestions=self._suggest(method, pattern, frontend_calls),
                )
            )

        logger.info("Found %d API consistency issues", len(issues))
        return issues

    def is_internal(self, path: str) -> bool:
        return path.startswith(self.internal_paths)

    @staticmethod
    def _suggest(method: str, path: str, candidates: Mapping[CallKey, list[ApiCallSite]]) -> list[Suggestion]:
        suggestions = []
        for candidate_method, candidate_path in candidates:
            if candidate_method != method:
                continue
            similarity = calculate_path_similarity(path, candidate_path)
            if similarity > SUGGESTION_THRESHOLD:
                files = sorted({site.file for site in candidates[(candidate_method, candidate_path)]})
                suggestions.append(
                    Suggestion(
                        endpoint=f"{candidate_method} {candidate_path}",
                        similarity=similarity,
                        files=files,
                    )
                )
        # sorted() is stable, so equal scores keep candidate order
        suggestions = sorted(suggestions, key=lambda s: s.similarity, reverse=True)
        return suggestions[:MAX_SUGGESTIONS]
