"""
Metrics Collection for the Refugee Rights RAG System

Tracks report generation, embedding and chat health for monitoring.
"""

import time
import logging
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class ReportMetrics:
    """Metrics for a single report generation."""
    case_id: str
    start_time: float
    end_time: float = 0
    latency_ms: float = 0
    categories_attempted: int = 0
    categories_succeeded: int = 0
    timed_out: bool = False
    error: Optional[str] = None


@dataclass
class SystemMetrics:
    """Aggregated system metrics."""
    # Report metrics
    total_reports: int = 0
    successful_reports: int = 0
    failed_reports: int = 0
    timed_out_reports: int = 0

    # Latency tracking (in ms)
    total_latency_ms: float = 0
    min_latency_ms: float = float('inf')
    max_latency_ms: float = 0
    latencies: list = field(default_factory=list)

    # Category outcomes
    categories_succeeded: int = 0
    categories_failed: int = 0
    precedent_failures: int = 0
    failures_by_category: dict = field(default_factory=lambda: defaultdict(int))

    # Embedding cache metrics
    cache_hits: int = 0
    cache_misses: int = 0
    embedding_batches: int = 0
    embedding_batches_failed: int = 0

    # Chat metrics
    chats_completed: int = 0
    chats_cancelled: int = 0

    # Error tracking
    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_latency_ms(self) -> float:
        """Calculate average report latency."""
        if self.total_reports == 0:
            return 0
        return self.total_latency_ms / self.total_reports

    @property
    def p95_latency_ms(self) -> float:
        """Calculate 95th percentile latency."""
        if not self.latencies:
            return 0
        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * 0.95)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def category_failure_rate(self) -> float:
        """Share of attempted categories that were dropped."""
        total = self.categories_succeeded + self.categories_failed
        if total == 0:
            return 0
        return self.categories_failed / total

    @property
    def batch_failure_rate(self) -> float:
        """Share of embedding batches that failed."""
        if self.embedding_batches == 0:
            return 0
        return self.embedding_batches_failed / self.embedding_batches

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0
        return self.cache_hits / total

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "reports": {
                "total": self.total_reports,
                "successful": self.successful_reports,
                "failed": self.failed_reports,
                "timed_out": self.timed_out_reports,
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "min": round(self.min_latency_ms, 2) if self.min_latency_ms != float('inf') else 0,
                "max": round(self.max_latency_ms, 2),
                "p95": round(self.p95_latency_ms, 2),
            },
            "categories": {
                "succeeded": self.categories_succeeded,
                "failed": self.categories_failed,
                "failure_rate": f"{self.category_failure_rate:.2%}",
                "precedent_failures": self.precedent_failures,
                "failures_by_category": dict(self.failures_by_category),
            },
            "embeddings": {
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "cache_hit_rate": f"{self.cache_hit_rate:.2%}",
                "batches": self.embedding_batches,
                "batches_failed": self.embedding_batches_failed,
            },
            "chat": {
                "completed": self.chats_completed,
                "cancelled": self.chats_cancelled,
            },
            "errors": dict(self.errors_by_type),
        }


class MetricsCollector:
    """
    Collects and aggregates system metrics.

    Usage:
        collector = get_metrics_collector()

        with collector.track_report(case_id) as tracker:
            report = await orchestrator.generate_report(case_id)
            tracker.set_outcome(attempted=4, succeeded=len(report.analyses))

        metrics = collector.get_metrics()
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern for global metrics collection."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.metrics = SystemMetrics()
        self._report_history: list[ReportMetrics] = []
        self._max_history = 1000
        self._start_time = datetime.now()
        self._initialized = True

    def reset(self):
        """Reset all metrics (for testing)."""
        self.metrics = SystemMetrics()
        self._report_history = []
        self._start_time = datetime.now()

    class ReportTracker:
        """Context manager for tracking report generation metrics."""

        def __init__(self, collector: 'MetricsCollector', case_id: str):
            self.collector = collector
            self.report = ReportMetrics(case_id=case_id, start_time=time.time())

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.report.end_time = time.time()
            self.report.latency_ms = (self.report.end_time - self.report.start_time) * 1000

            if exc_type:
                self.report.error = str(exc_val)
                self.collector._record_error(exc_type.__name__)

            self.collector._record_report(self.report)
            return False  # Don't suppress exceptions

        def set_outcome(self, attempted: int, succeeded: int, timed_out: bool = False):
            """Set category outcome counts for this report."""
            self.report.categories_attempted = attempted
            self.report.categories_succeeded = succeeded
            self.report.timed_out = timed_out

    def track_report(self, case_id: str) -> ReportTracker:
        """Create a report tracker context manager."""
        return self.ReportTracker(self, case_id)

    def _record_report(self, report: ReportMetrics):
        """Record completed report metrics."""
        self.metrics.total_reports += 1

        if report.error:
            self.metrics.failed_reports += 1
        else:
            self.metrics.successful_reports += 1
        if report.timed_out:
            self.metrics.timed_out_reports += 1

        self.metrics.total_latency_ms += report.latency_ms
        self.metrics.min_latency_ms = min(self.metrics.min_latency_ms, report.latency_ms)
        self.metrics.max_latency_ms = max(self.metrics.max_latency_ms, report.latency_ms)
        self.metrics.latencies.append(report.latency_ms)

        if len(self.metrics.latencies) > self._max_history:
            self.metrics.latencies = self.metrics.latencies[-self._max_history:]

        self._report_history.append(report)
        if len(self._report_history) > self._max_history:
            self._report_history = self._report_history[-self._max_history:]

    def _record_error(self, error_type: str):
        """Record an error by type."""
        self.metrics.errors_by_type[error_type] += 1

    def record_category(self, category: str, succeeded: bool):
        """Record the terminal state of one category pipeline."""
        if succeeded:
            self.metrics.categories_succeeded += 1
        else:
            self.metrics.categories_failed += 1
            self.metrics.failures_by_category[category] += 1

    def record_precedent_failure(self):
        self.metrics.precedent_failures += 1

    def record_embedding_batch(self, succeeded: bool):
        """Record one embedding batch call."""
        self.metrics.embedding_batches += 1
        if not succeeded:
            self.metrics.embedding_batches_failed += 1

    def record_cache_hit(self):
        """Record a persisted embedding cache being reused."""
        self.metrics.cache_hits += 1

    def record_cache_miss(self):
        """Record an embedding cache recomputation."""
        self.metrics.cache_misses += 1

    def record_chat(self, cancelled: bool):
        if cancelled:
            self.metrics.chats_cancelled += 1
        else:
            self.metrics.chats_completed += 1

    def get_metrics(self) -> SystemMetrics:
        """Get current metrics."""
        return self.metrics

    def get_metrics_dict(self) -> dict:
        """Get metrics as a dictionary."""
        return self.metrics.to_dict()

    def get_recent_reports(self, limit: int = 10) -> list[ReportMetrics]:
        """Get most recent report generations."""
        return self._report_history[-limit:]

    def get_uptime(self) -> timedelta:
        """Get system uptime."""
        return datetime.now() - self._start_time


# Global metrics collector instance
_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
