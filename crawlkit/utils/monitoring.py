"""
Crawl statistics and Prometheus metrics for the crawler.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest
from prometheus_client import start_http_server

from .locks import ReadWriteLock


logger = logging.getLogger(__name__)

# Outcomes of a processed crawl candidate, keyed by crawl event name
OUTCOME_STATS = {
    'page_load': 'page_load_count',
    'non_html_content': 'non_html_content_count',
    'request_error': 'request_error_count',
    'network_error': 'network_error_count',
    'page_load_timeout': 'page_load_timeout_count',
    'request_redirect': 'request_redirect_count',
}

# Reasons a crawl request can be filtered out by the frontier
FILTER_STATS = {
    'duplicate': 'filtered_duplicate_request_count',
    'offsite': 'filtered_offsite_request_count',
    'depth_limit': 'filtered_depth_limit_request_count',
    'malformed': 'filtered_malformed_request_count',
}

STAT_NAMES = (
    ('remaining_candidate_count', 'processed_candidate_count', 'callback_error_count')
    + tuple(OUTCOME_STATS.values())
    + tuple(FILTER_STATS.values())
)


class CrawlMetrics:
    """Mirrors crawl statistics into Prometheus metrics on a private registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.outcomes = Counter(
            'crawler_processed_candidates_total',
            'Crawl candidates processed, by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.filtered_requests = Counter(
            'crawler_filtered_requests_total',
            'Crawl requests rejected by the frontier, by reason',
            ['reason'],
            registry=self.registry
        )
        self.callback_errors = Counter(
            'crawler_callback_errors_total',
            'Exceptions raised by event callbacks',
            registry=self.registry
        )
        self.remaining_candidates = Gauge(
            'crawler_remaining_candidates',
            'Crawl candidates waiting in the frontier',
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render the metrics in the Prometheus text format."""
        return generate_latest(self.registry)


class StatsCounter:
    """
    Accumulates statistics during the operation of the crawler.

    Safe to read from a control thread while the crawl loop records.
    """

    def __init__(self, metrics: Optional[CrawlMetrics] = None):
        self.metrics = metrics
        self._lock = ReadWriteLock()
        self._counts: Dict[str, int] = dict.fromkeys(STAT_NAMES, 0)

    def record_remaining_candidate(self):
        with self._lock.write_lock():
            self._counts['remaining_candidate_count'] += 1
            self._update_remaining_gauge()

    def record_filtered_request(self, reason: str):
        stat_name = FILTER_STATS[reason]
        with self._lock.write_lock():
            self._counts[stat_name] += 1
        if self.metrics:
            self.metrics.filtered_requests.labels(reason=reason).inc()

    def record_outcome(self, outcome: str):
        """Record a processed candidate; outcome is a crawl event name."""
        stat_name = OUTCOME_STATS[outcome]
        with self._lock.write_lock():
            if self._counts['remaining_candidate_count'] <= 0:
                logger.warning("Recorded outcome %s with no remaining candidates", outcome)
            else:
                self._counts['remaining_candidate_count'] -= 1
            self._counts[stat_name] += 1
            self._counts['processed_candidate_count'] += 1
            self._update_remaining_gauge()
        if self.metrics:
            self.metrics.outcomes.labels(outcome=outcome).inc()

    def record_callback_error(self):
        with self._lock.write_lock():
            self._counts['callback_error_count'] += 1
        if self.metrics:
            self.metrics.callback_errors.inc()

    def get(self, stat_name: str) -> int:
        with self._lock.read_lock():
            return self._counts[stat_name]

    @property
    def processed_count(self) -> int:
        return self.get('processed_candidate_count')

    @property
    def remaining_count(self) -> int:
        return self.get('remaining_candidate_count')

    def snapshot(self) -> Dict[str, int]:
        with self._lock.read_lock():
            return dict(self._counts)

    def restore(self, data: Dict[str, int]):
        with self._lock.write_lock():
            self._counts = dict.fromkeys(STAT_NAMES, 0)
            for name, value in data.items():
                if name in self._counts:
                    self._counts[name] = int(value)
            self._update_remaining_gauge()

    def reset(self):
        self.restore({})

    def _update_remaining_gauge(self):
        # Caller holds the write lock
        if self.metrics:
            self.metrics.remaining_candidates.set(self._counts['remaining_candidate_count'])


def start_metrics_server(metrics: CrawlMetrics, port: int = 8000):
    """Start the Prometheus metrics HTTP server in a daemon thread."""
    start_http_server(port, registry=metrics.registry)
    logger.info(f"Prometheus metrics server started on port {port}")
