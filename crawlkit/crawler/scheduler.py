"""
Crawler orchestration loop.

The Crawler pulls candidates from the frontier one at a time, waits for the
politeness delay, fetches the page and dispatches the matching lifecycle
event to the registered callbacks. Callbacks feed new requests back through
crawl().
"""

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Pattern, Tuple, Union

from ..exceptions import (
    ConfigurationError, CrawlerStateError, FetchError, FetchTimeoutError, MalformedUrlError
)
from ..utils.config import CrawlerConfig
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import StatsCounter
from ..utils.stopwatch import Stopwatch
from ..utils.urls import fingerprint, is_valid_url
from .callbacks import EventCallback, EventCallbackManager, PatternMatchingCallback
from .delay import CrawlDelayMechanism, create_delay_mechanism
from .events import (
    CrawlEvent, EventObject, NetworkErrorEvent, NonHtmlContentEvent, PageLoadEvent,
    PageLoadTimeoutEvent, RequestErrorEvent, RequestRedirectEvent
)
from .fetcher import Fetcher, RawResponse, WebFetcher
from .request import CrawlCandidate, CrawlRequest
from .url_frontier import OfferResult, URLFrontier


STATE_FORMAT_VERSION = 1

# Statistics logged when a run stops
FINAL_STATS = (
    'processed_candidate_count',
    'page_load_count',
    'request_error_count',
    'network_error_count',
    'filtered_duplicate_request_count',
    'elapsed_time',
    'urls_in_queue'
)


class RunState(Enum):
    """Run state of a crawler."""
    IDLE = 'idle'
    RUNNING = 'running'
    STOPPING = 'stopping'
    STOPPED = 'stopped'


def seed_request(seed: Union[str, Dict[str, Any], CrawlRequest]) -> CrawlRequest:
    """
    Build a crawl request from a seed (URL string, mapping or request).

    Raises:
        ConfigurationError: if the seed URL or priority is invalid
    """
    if isinstance(seed, CrawlRequest):
        request = seed
    elif isinstance(seed, str):
        request = CrawlRequest(url=seed)
    else:
        request = CrawlRequest(
            url=seed['url'],
            priority=seed.get('priority', 0),
            metadata=seed.get('metadata') or {},
            method=seed.get('method')
        )

    if not is_valid_url(request.url):
        raise ConfigurationError(f"Invalid seed URL: {request.url!r}")
    if isinstance(request.priority, bool) or not isinstance(request.priority, int):
        raise ConfigurationError(f"Seed priority must be an integer: {request.priority!r}")
    return request


class Crawler:
    """
    Drives the crawl: a single sequential loop with one fetch in flight.

    A control thread may call request_stop(), status() and get_stats() while
    the loop runs; stop requests are honoured between two fetches.
    Subclasses customize behaviour by overriding the on_* callbacks.
    """

    def __init__(self,
                 config: Optional[CrawlerConfig] = None,
                 fetcher: Optional[Fetcher] = None,
                 delay_mechanism: Optional[CrawlDelayMechanism] = None,
                 seeds: Optional[Iterable[CrawlRequest]] = None,
                 stats: Optional[StatsCounter] = None,
                 time_source: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config or CrawlerConfig()
        self.config.validate()

        self.logger = logging.getLogger(__name__)
        self.url_logger = get_crawler_logger(__name__, crawler=type(self).__name__)

        self.fetcher = fetcher if fetcher is not None else WebFetcher()
        self.stats = stats if stats is not None else StatsCounter()
        self.frontier = URLFrontier.from_config(self.config, self.stats)
        self.delay_mechanism = delay_mechanism or create_delay_mechanism(self.config)
        self.callback_manager = EventCallbackManager()

        self._time_source = time_source
        self._sleep = sleep
        self._stopwatch = Stopwatch(time_source)
        self._seeds: List[CrawlRequest] = [seed_request(s) for s in self.config.seed_urls]
        self._seeds.extend(seed_request(s) for s in seeds or [])

        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._current_candidate: Optional[CrawlCandidate] = None
        self._loop_thread: Optional[int] = None

        self._register_default_callbacks()

    def _register_default_callbacks(self):
        defaults = {
            CrawlEvent.PAGE_LOAD: self.on_page_load,
            CrawlEvent.NON_HTML_CONTENT: self.on_non_html_content,
            CrawlEvent.REQUEST_ERROR: self.on_request_error,
            CrawlEvent.NETWORK_ERROR: self.on_network_error,
            CrawlEvent.PAGE_LOAD_TIMEOUT: self.on_page_load_timeout,
            CrawlEvent.REQUEST_REDIRECT: self.on_request_redirect,
        }
        for event, callback in defaults.items():
            self.callback_manager.set_default_callback(event, callback)

    # Run state

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def stopwatch(self) -> Stopwatch:
        return self._stopwatch

    @property
    def current_candidate(self) -> Optional[CrawlCandidate]:
        return self._current_candidate

    def add_seed(self, request: CrawlRequest):
        """Add a crawl seed, used the next time a fresh run starts."""
        self._seeds.append(seed_request(request))

    async def start(self):
        """Start a fresh run: forget previous progress and feed the seeds."""
        self._begin_run(resume=False)
        await self._run()

    async def resume(self):
        """Continue a run with the frontier, stats and run time kept."""
        self._begin_run(resume=True)
        await self._run()

    def run(self, resume: bool = False):
        """Blocking helper running the crawl in a new event loop."""
        asyncio.run(self.resume() if resume else self.start())

    def request_stop(self):
        """
        Ask the crawler to stop after the current iteration.

        Never blocks and never interrupts an in-flight fetch.
        """
        with self._state_lock:
            if self._state is RunState.STOPPING:
                return
            if self._state is not RunState.RUNNING:
                raise CrawlerStateError("The crawler is not started.")
            self._state = RunState.STOPPING
        self.logger.info("Stop requested")

    def reset(self):
        """Make a stopped crawler startable again."""
        with self._state_lock:
            if self._state is not RunState.STOPPED:
                raise CrawlerStateError("Only a stopped crawler can be reset.")
            self._state = RunState.IDLE

    def _begin_run(self, resume: bool):
        with self._state_lock:
            if self._state is not RunState.IDLE:
                raise CrawlerStateError(f"The crawler cannot start from state {self._state.value}.")
            self._state = RunState.RUNNING

        if not resume:
            self.frontier.clear()
            self.stats.reset()
            self._stopwatch = Stopwatch(self._time_source)
            added_count = self.frontier.offer_all(self._seeds)
            self.logger.info(f"Added {added_count} seed URLs to frontier")

        self._stopwatch.start()
        self.logger.info(
            f"Crawler started (resuming: {resume}, queued: {self.frontier.size()}, "
            f"delay: {self.delay_mechanism!r})"
        )

    def _should_stop(self) -> bool:
        if self._state is RunState.STOPPING:
            self.logger.info("Stopping on request")
            return True

        if self.frontier.is_empty():
            self.logger.info("No crawl candidates left")
            return True

        max_duration = self.config.max_duration
        if max_duration is not None and self._stopwatch.elapsed().total_seconds() >= max_duration:
            self.logger.info(f"Reached max duration: {max_duration} seconds")
            return True

        return False

    async def _run(self):
        try:
            self._loop_thread = threading.get_ident()
            await self.fetcher.start()
            self.on_start()

            while not self._should_stop():
                candidate = self.frontier.poll()
                if candidate is None:
                    break

                await self._perform_delay()
                await self._process_candidate(candidate)
        finally:
            try:
                self.on_stop()
            finally:
                self._current_candidate = None
                self._loop_thread = None
                try:
                    await self.fetcher.close()
                finally:
                    self._stopwatch.stop()
                    with self._state_lock:
                        self._state = RunState.STOPPED
                    self._log_final_stats()

    async def _perform_delay(self):
        delay = self.delay_mechanism.get_delay()
        self.logger.debug(f"Performing delay of {delay:.3f}s")
        await self._sleep(delay)

    async def _process_candidate(self, candidate: CrawlCandidate):
        self._current_candidate = candidate
        self.url_logger.log_url_event(
            logging.DEBUG, candidate.url,
            f"Processing candidate (depth={candidate.depth}, priority={candidate.priority})"
        )

        try:
            response = await self.fetcher.fetch(candidate.request)
        except FetchTimeoutError:
            event, event_object = CrawlEvent.PAGE_LOAD_TIMEOUT, PageLoadTimeoutEvent(candidate)
        except FetchError as e:
            event = CrawlEvent.NETWORK_ERROR
            event_object = NetworkErrorEvent(candidate, error_message=str(e))
        else:
            self.delay_mechanism.observe(response)
            event, event_object = self._classify(candidate, response)

        if isinstance(event_object, RequestRedirectEvent):
            self.crawl(event_object.redirected_request)

        self.stats.record_outcome(event.value)
        self._dispatch(event, event_object)

    def _classify(self, candidate: CrawlCandidate,
                  response: RawResponse) -> Tuple[CrawlEvent, EventObject]:
        if self._is_redirect(candidate, response):
            redirected = CrawlRequest(
                url=response.final_url,
                priority=candidate.priority,
                metadata=candidate.metadata,
                method=candidate.request.method
            )
            self.logger.debug(f"Request redirected from {candidate.url} to {response.final_url}")
            return CrawlEvent.REQUEST_REDIRECT, RequestRedirectEvent(
                candidate, response, redirected_request=redirected
            )

        if response.is_error:
            self.logger.debug(f"Received response with error status code {response.status_code}")
            return CrawlEvent.REQUEST_ERROR, RequestErrorEvent(candidate, response)

        if not response.is_html:
            self.logger.debug(f"Received response with non-HTML content ({response.mime_type})")
            return CrawlEvent.NON_HTML_CONTENT, NonHtmlContentEvent(candidate, response)

        return CrawlEvent.PAGE_LOAD, PageLoadEvent(candidate, response)

    @staticmethod
    def _is_redirect(candidate: CrawlCandidate, response: RawResponse) -> bool:
        if not response.final_url or response.final_url == candidate.url:
            return False
        try:
            return fingerprint(response.final_url) != fingerprint(candidate.url)
        except MalformedUrlError:
            return False

    def _dispatch(self, event: CrawlEvent, event_object: EventObject):
        try:
            self.callback_manager.call(event, event_object)
        except Exception:
            self.stats.record_callback_error()
            if self.config.callback_error_policy == 'continue':
                self.logger.exception(
                    f"Callback for {event.value} failed on {event_object.url}, continuing"
                )
                return
            self.logger.error(f"Callback for {event.value} failed on {event_object.url}, stopping")
            raise

    # Requests and callbacks

    def crawl(self, request: CrawlRequest,
              parent: Optional[CrawlCandidate] = None) -> OfferResult:
        """
        Schedule a request during a run.

        Without an explicit parent, requests made from the crawl loop (that is,
        from callbacks) derive their depth and referer from the candidate being
        processed; requests from other threads are treated as new roots.
        """
        if self._state not in (RunState.RUNNING, RunState.STOPPING):
            raise CrawlerStateError(
                "The crawler is not started. Maybe you meant to add this request as a crawl seed?"
            )
        if parent is None and threading.get_ident() == self._loop_thread:
            parent = self._current_candidate
        return self.frontier.offer(request, parent=parent)

    def crawl_all(self, requests: Iterable[CrawlRequest]) -> int:
        return sum(1 for request in requests if self.crawl(request))

    def set_default_callback(self, event: CrawlEvent, callback: EventCallback):
        self.callback_manager.set_default_callback(event, callback)

    def register_callback(self, event: CrawlEvent, url_pattern: Union[str, Pattern],
                          callback: EventCallback) -> PatternMatchingCallback:
        """Register a callback for the event, limited to URLs fully matching url_pattern."""
        return self.callback_manager.add_custom_callback(event, url_pattern, callback)

    # Monitoring and persistence

    def status(self) -> Dict[str, Any]:
        """Compact status for a remote control surface."""
        return {
            'state': self._state.value,
            'queue_size': self.frontier.size(),
            'elapsed': self._stopwatch.elapsed().total_seconds(),
            'processed_count': self.stats.processed_count
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get current crawl statistics."""
        stats = self.stats.snapshot()
        stats.update({
            'state': self._state.value,
            'elapsed_time': self._stopwatch.elapsed().total_seconds(),
            'urls_in_queue': self.frontier.size(),
            'urls_seen': self.frontier.seen_count(),
            'fetcher': self.fetcher.get_stats()
        })
        return stats

    def get_state(self) -> Dict[str, Any]:
        """Snapshot of everything needed to resume the crawl later."""
        return {
            'version': STATE_FORMAT_VERSION,
            'frontier': self.frontier.snapshot(),
            'stopwatch': self._stopwatch.snapshot(),
            'stats': self.stats.snapshot()
        }

    def restore_state(self, state: Dict[str, Any]):
        """Load a snapshot taken by get_state(); call resume() afterwards."""
        if self._state is not RunState.IDLE:
            raise CrawlerStateError("State can only be restored before the crawler starts.")
        if state.get('version') != STATE_FORMAT_VERSION:
            raise CrawlerStateError(f"Unsupported crawler state version: {state.get('version')}")

        self.frontier.restore(state.get('frontier', {}))
        self._stopwatch.restore(state.get('stopwatch', {}))
        self.stats.restore(state.get('stats', {}))

    def _log_final_stats(self):
        stats = self.get_stats()
        self.logger.info("=== CRAWL STOPPED ===")
        for stat_name in FINAL_STATS:
            self.url_logger.log_crawler_stat(stat_name, stats[stat_name])
        for stat_name, value in stats['fetcher'].items():
            self.url_logger.log_crawler_stat(f"fetcher.{stat_name}", value)

    # Overridable hooks

    def on_start(self):
        self.logger.info("Crawler starting")

    def on_page_load(self, event: PageLoadEvent):
        self.logger.info(f"Page loaded: {event.url}")

    def on_non_html_content(self, event: NonHtmlContentEvent):
        self.logger.info(f"Non-HTML content: {event.url}")

    def on_request_error(self, event: RequestErrorEvent):
        self.logger.info(f"Request error: {event.url} ({event.response.status_code})")

    def on_network_error(self, event: NetworkErrorEvent):
        self.logger.info(f"Network error: {event.error_message}")

    def on_page_load_timeout(self, event: PageLoadTimeoutEvent):
        self.logger.info(f"Page load timeout: {event.url}")

    def on_request_redirect(self, event: RequestRedirectEvent):
        self.logger.info(f"Request redirected: {event.url} -> {event.redirected_request.url}")

    def on_stop(self):
        self.logger.info("Crawler stopping")
