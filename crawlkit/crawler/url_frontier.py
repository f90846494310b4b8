"""
URL Frontier implementation for managing URLs to crawl.
Implements de-duplication, offsite filtering and priority scheduling.
"""

import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..exceptions import MalformedUrlError
from ..utils.monitoring import StatsCounter
from ..utils.urls import domain_in, fingerprint
from .request import CrawlCandidate, CrawlRequest


class CrawlStrategy(Enum):
    """Order in which candidates leave the frontier."""
    PRIORITY = 'priority'
    BREADTH_FIRST = 'breadth_first'
    DEPTH_FIRST = 'depth_first'


class OfferOutcome(Enum):
    """Result of offering a request to the frontier."""
    ACCEPTED = 'accepted'
    DUPLICATE = 'duplicate'
    OFFSITE = 'offsite'
    MALFORMED = 'malformed'
    DEPTH_LIMIT = 'depth_limit'


@dataclass(frozen=True)
class OfferResult:
    outcome: OfferOutcome
    candidate: Optional[CrawlCandidate] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is OfferOutcome.ACCEPTED

    def __bool__(self) -> bool:
        return self.accepted


class URLFrontier:
    """
    Manages the crawl candidates waiting to be fetched.

    Every accepted URL fingerprint is remembered for the lifetime of the run,
    so a URL is never admitted twice even after it has been processed.
    The frontier does not apply any delay; pacing is the crawler's job.
    """

    def __init__(self,
                 allowed_domains: Optional[Iterable[str]] = None,
                 offsite_filter_enabled: bool = False,
                 duplicate_filter_enabled: bool = True,
                 max_depth: int = 0,
                 crawl_strategy: CrawlStrategy = CrawlStrategy.PRIORITY,
                 stats: Optional[StatsCounter] = None,
                 time_source: Callable[[], float] = time.time):
        self.allowed_domains = [d.lower() for d in (allowed_domains or [])]
        self.offsite_filter_enabled = offsite_filter_enabled
        self.duplicate_filter_enabled = duplicate_filter_enabled
        self.max_depth = max_depth
        self.crawl_strategy = CrawlStrategy(crawl_strategy)
        self.stats = stats if stats is not None else StatsCounter()
        self.time_source = time_source
        self.logger = logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._queue: List[Tuple[tuple, CrawlCandidate]] = []
        self._fingerprints: Set[str] = set()
        self._sequence = itertools.count()

    @classmethod
    def from_config(cls, config, stats: Optional[StatsCounter] = None) -> 'URLFrontier':
        """Create a frontier from a CrawlerConfig."""
        return cls(
            allowed_domains=config.allowed_domains,
            offsite_filter_enabled=config.offsite_filter_enabled,
            duplicate_filter_enabled=config.duplicate_filter_enabled,
            max_depth=config.max_depth,
            crawl_strategy=CrawlStrategy(config.crawl_strategy),
            stats=stats
        )

    def _sort_key(self, candidate: CrawlCandidate) -> tuple:
        if self.crawl_strategy is CrawlStrategy.BREADTH_FIRST:
            return (candidate.depth, -candidate.priority, candidate.sequence)
        if self.crawl_strategy is CrawlStrategy.DEPTH_FIRST:
            return (-candidate.depth, -candidate.priority, candidate.sequence)
        return (-candidate.priority, candidate.sequence)

    def _is_offsite(self, request: CrawlRequest) -> bool:
        if not self.offsite_filter_enabled or not self.allowed_domains:
            return False
        return not domain_in(request.domain, self.allowed_domains)

    def _reject(self, request: CrawlRequest, outcome: OfferOutcome) -> OfferResult:
        self.logger.debug(f"Rejected URL ({outcome.value}): {request.url}")
        self.stats.record_filtered_request(outcome.value)
        return OfferResult(outcome)

    def offer(self, request: CrawlRequest,
              parent: Optional[CrawlCandidate] = None) -> OfferResult:
        """
        Offer a request to the frontier.

        Args:
            request: the request to schedule
            parent: the candidate whose processing produced this request, used
                to derive the crawl depth and referer

        Returns:
            OfferResult telling whether the request was accepted, and why not
        """
        try:
            url_fingerprint = fingerprint(request.url)
        except MalformedUrlError:
            return self._reject(request, OfferOutcome.MALFORMED)

        if self._is_offsite(request):
            return self._reject(request, OfferOutcome.OFFSITE)

        if request.depth is not None:
            depth = request.depth
        elif parent is not None:
            depth = parent.depth + 1
        else:
            depth = 0

        if self.max_depth and depth > self.max_depth:
            return self._reject(request, OfferOutcome.DEPTH_LIMIT)

        with self._lock:
            if self.duplicate_filter_enabled and url_fingerprint in self._fingerprints:
                duplicate = True
            else:
                duplicate = False
                self._fingerprints.add(url_fingerprint)
                candidate = CrawlCandidate(
                    request=request,
                    depth=depth,
                    enqueued_at=self.time_source(),
                    sequence=next(self._sequence),
                    referer_url=parent.url if parent is not None else None
                )
                heapq.heappush(self._queue, (self._sort_key(candidate), candidate))

        if duplicate:
            return self._reject(request, OfferOutcome.DUPLICATE)

        self.stats.record_remaining_candidate()
        self.logger.debug(f"Added URL to frontier: {request.url}")
        return OfferResult(OfferOutcome.ACCEPTED, candidate)

    def offer_all(self, requests: Iterable[CrawlRequest],
                  parent: Optional[CrawlCandidate] = None) -> int:
        """Offer multiple requests. Returns count of accepted requests."""
        return sum(1 for request in requests if self.offer(request, parent))

    def poll(self) -> Optional[CrawlCandidate]:
        """Remove and return the next candidate, or None if the queue is empty."""
        with self._lock:
            if not self._queue:
                return None
            _, candidate = heapq.heappop(self._queue)

        self.logger.debug(f"Retrieved URL from frontier: {candidate.url}")
        return candidate

    def size(self) -> int:
        with self._lock:
            return len(self._queue)

    def __len__(self) -> int:
        return self.size()

    def is_empty(self) -> bool:
        return self.size() == 0

    def seen_count(self) -> int:
        with self._lock:
            return len(self._fingerprints)

    def has_seen(self, url: str) -> bool:
        try:
            url_fingerprint = fingerprint(url)
        except MalformedUrlError:
            return False
        with self._lock:
            return url_fingerprint in self._fingerprints

    def clear(self):
        """Drop all queued candidates and forget every seen URL."""
        with self._lock:
            self._queue.clear()
            self._fingerprints.clear()
            self._sequence = itertools.count()

    def snapshot(self) -> Dict[str, Any]:
        """Return the queue contents (in poll order) and the seen-set."""
        with self._lock:
            ordered = sorted(self._queue, key=lambda entry: entry[0])
            return {
                'candidates': [candidate.to_dict() for _, candidate in ordered],
                'fingerprints': sorted(self._fingerprints)
            }

    def restore(self, data: Dict[str, Any]):
        """Replace the frontier state with a previously taken snapshot."""
        candidates = [CrawlCandidate.from_dict(item) for item in data.get('candidates', [])]
        with self._lock:
            self._fingerprints = set(data.get('fingerprints', []))
            self._queue = [(self._sort_key(c), c) for c in candidates]
            heapq.heapify(self._queue)
            next_sequence = max((c.sequence for c in candidates), default=-1) + 1
            self._sequence = itertools.count(next_sequence)

        self.logger.info(
            f"Restored URL frontier with {len(candidates)} queued candidates "
            f"and {len(self._fingerprints)} seen URLs"
        )
