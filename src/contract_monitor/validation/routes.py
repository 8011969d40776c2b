"""Resolution of observed request paths to declared parameterised patterns."""

from typing import Iterable

from contract_monitor.spec.base import EndpointDescriptor


def split_path(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def is_placeholder(segment: str) -> bool:
    return len(segment) > 2 and segment.startswith("{") and segment.endswith("}")


def literal_segments(pattern: str) -> int:
    return sum(1 for segment in split_path(pattern) if not is_placeholder(segment))


class RouteMatcher:
    """Matches (method, path) pairs against declared endpoint patterns.

    When several declared patterns match the same path structurally, the
    pattern with the most literal segments wins; ties go to declaration order.
    """

    def __init__(self, endpoints: Iterable[EndpointDescriptor] = ()):
        self._by_key: dict[tuple[str, str], EndpointDescriptor] = {}
        self._by_method: dict[str, list[EndpointDescriptor]] = {}
        for ep in endpoints:
            self._by_key[ep.key] = ep
            self._by_method.setdefault(ep.method, []).append(ep)

    @staticmethod
    def match(actual_path: str, declared_pattern: str) -> bool:
        actual = split_path(actual_path)
        declared = split_path(declared_pattern)
        if len(actual) != len(declared):
            return False
        return all(
            is_placeholder(expected) or expected == segment
            for segment, expected in zip(actual, declared)
        )

    def resolve(self, method: str, actual_path: str) -> EndpointDescriptor | None:
        method = method.upper()
        exact = self._by_key.get((method, actual_path))
        if exact is not None:
            return exact

        best = None
        best_literals = -1
        for ep in self._by_method.get(method, []):
            if not self.match(actual_path, ep.path_pattern):
                continue
            literals = literal_segments(ep.path_pattern)
            if literals > best_literals:
                best, best_literals = ep, literals
        return best

    def candidates(self, method: str, actual_path: str) -> list[EndpointDescriptor]:
        """Every declared pattern for ``method`` that structurally matches."""
        return [
            ep for ep in self._by_method.get(method.upper(), [])
            if self.match(actual_path, ep.path_pattern)
        ]
