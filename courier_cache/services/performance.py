"""Performance samples, optimization suggestions and request timings.

Suggestions are advisory only: a small rule table matched against the
operation name and duration of slow samples, not a query planner.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from courier_cache.models.base import utcnow

DEFAULT_SLOW_THRESHOLD_MS = 1000
DEFAULT_MAX_SAMPLES = 1000


class SuggestionKind(StrEnum):
    INDEX = "INDEX"
    QUERY_REWRITE = "QUERY_REWRITE"
    PAGINATION = "PAGINATION"
    CACHING = "CACHING"


class Impact(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


_PRIORITY = {Impact.HIGH: 1, Impact.MEDIUM: 2, Impact.LOW: 3}


@dataclass(frozen=True)
class PerformanceSample:
    operation: str
    duration_ms: int
    rows_returned: int
    recorded_at: datetime


@dataclass(frozen=True)
class OptimizationSuggestion:
    kind: SuggestionKind
    description: str
    impact: Impact
    operation: str


@dataclass(frozen=True)
class SuggestionRule:
    """Fires when the operation name contains ``keyword`` and runs longer than ``min_duration_ms``."""
    keyword: str
    min_duration_ms: int
    kind: SuggestionKind
    impact: Impact
    description: str

    def matches(self, sample: PerformanceSample) -> bool:
        return self.keyword in sample.operation and sample.duration_ms > self.min_duration_ms


DEFAULT_RULES: tuple[SuggestionRule, ...] = (
    SuggestionRule(
        "package", 500, SuggestionKind.INDEX, Impact.HIGH,
        "Consider adding composite index on packages(status, created_at, price_offered)",
    ),
    SuggestionRule(
        "trip", 300, SuggestionKind.INDEX, Impact.HIGH,
        "Consider adding spatial index on trip location fields",
    ),
    SuggestionRule(
        "bid", 400, SuggestionKind.QUERY_REWRITE, Impact.MEDIUM,
        "Optimize bid queries by limiting joined fields",
    ),
    SuggestionRule(
        "dashboard", 500, SuggestionKind.CACHING, Impact.MEDIUM,
        "Cache dashboard aggregates longer or precompute them",
    ),
    SuggestionRule(
        "notification", 300, SuggestionKind.PAGINATION, Impact.LOW,
        "Reduce notification page size or paginate by cursor",
    ),
)


class QueryMetrics:
    """Bounded log of query samples (oldest dropped first)."""

    def __init__(
        self,
        *,
        max_samples: int = DEFAULT_MAX_SAMPLES,
        slow_threshold_ms: int = DEFAULT_SLOW_THRESHOLD_MS,
        rules: Iterable[SuggestionRule] = DEFAULT_RULES,
    ) -> None:
        self._samples: deque[PerformanceSample] = deque(maxlen=max_samples)
        self.slow_threshold_ms = slow_threshold_ms
        self.rules = tuple(rules)

    def __len__(self) -> int:
        return len(self._samples)

    def record(self, operation: str, duration_ms: int, rows_returned: int) -> PerformanceSample:
        sample = PerformanceSample(
            operation=operation,
            duration_ms=duration_ms,
            rows_returned=rows_returned,
            recorded_at=utcnow(),
        )
        self._samples.append(sample)
        return sample

    def is_slow(self, sample: PerformanceSample) -> bool:
        return sample.duration_ms > self.slow_threshold_ms

    def samples(self) -> list[PerformanceSample]:
        return list(self._samples)

    def slow_samples(self) -> list[PerformanceSample]:
        return [s for s in self._samples if self.is_slow(s)]

    def suggestions(self) -> list[OptimizationSuggestion]:
        """Apply the rule table to slow samples; identical suggestions collapse."""
        seen: dict[tuple, OptimizationSuggestion] = {}
        for sample in self.slow_samples():
            for rule in self.rules:
                if not rule.matches(sample):
                    continue
                suggestion = OptimizationSuggestion(
                    kind=rule.kind,
                    description=rule.description,
                    impact=rule.impact,
                    operation=sample.operation,
                )
                seen.setdefault((rule.kind, rule.description, sample.operation), suggestion)
        return list(seen.values())

    def clear(self) -> None:
        self._samples.clear()


# ── HTTP request timings ─────────────────────────────────────

@dataclass(frozen=True)
class RequestSample:
    method: str
    path: str
    status_code: int
    duration_ms: int
    recorded_at: datetime


class RequestMetrics:
    """Measured request timings, filled by the HTTP middleware in ``main``."""

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES) -> None:
        self._samples: deque[RequestSample] = deque(maxlen=max_samples)

    def record(self, method: str, path: str, status_code: int, duration_ms: int) -> None:
        self._samples.append(
            RequestSample(method, path, status_code, duration_ms, utcnow())
        )

    def recent(self, limit: int) -> list[RequestSample]:
        if limit <= 0:
            return []
        return list(self._samples)[-limit:]

    def clear(self) -> None:
        self._samples.clear()


def aggregate_requests(samples: list[RequestSample]) -> dict:
    if not samples:
        return {"count": 0, "average_response_time_ms": 0.0, "error_rate": 0.0}
    errors = sum(1 for s in samples if s.status_code >= 400)
    return {
        "count": len(samples),
        "average_response_time_ms": round(sum(s.duration_ms for s in samples) / len(samples), 2),
        "error_rate": round(errors / len(samples) * 100, 2),
    }


# ── Recommendations ──────────────────────────────────────────

@dataclass(frozen=True)
class Recommendation:
    type: str  # "DATABASE" or "CACHE"
    category: str
    description: str
    impact: Impact
    priority: int


def merge_recommendations(
    suggestions: Iterable[OptimizationSuggestion], cache_warnings: Iterable[str]
) -> list[Recommendation]:
    """Combine query suggestions and cache warnings, highest priority first."""
    merged = [
        Recommendation(
            type="DATABASE",
            category=s.kind,
            description=s.description,
            impact=s.impact,
            priority=_PRIORITY[s.impact],
        )
        for s in suggestions
    ]
    merged.extend(
        Recommendation(
            type="CACHE",
            category="PERFORMANCE",
            description=warning,
            impact=Impact.MEDIUM,
            priority=_PRIORITY[Impact.MEDIUM],
        )
        for warning in cache_warnings
    )
    # sorted() is stable, so equal priorities keep database-before-cache order
    return sorted(merged, key=lambda r: r.priority)
