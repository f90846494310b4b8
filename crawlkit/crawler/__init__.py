"""
Crawler core components.
"""

from .request import CrawlRequest, CrawlCandidate
from .url_frontier import URLFrontier, CrawlStrategy, OfferOutcome, OfferResult
from .delay import CrawlDelayMechanism, FixedDelay, RandomDelay, AdaptiveDelay, create_delay_mechanism
from .events import (
    CrawlEvent, EventObject, PageLoadEvent, NonHtmlContentEvent, RequestErrorEvent,
    NetworkErrorEvent, PageLoadTimeoutEvent, RequestRedirectEvent
)
from .callbacks import EventCallbackManager, PatternMatchingCallback
from .fetcher import Fetcher, WebFetcher, RawResponse
from .scheduler import Crawler, RunState
from .url_finder import UrlFinder
from .site_crawler import SiteCrawler

__all__ = [
    'CrawlRequest', 'CrawlCandidate',
    'URLFrontier', 'CrawlStrategy', 'OfferOutcome', 'OfferResult',
    'CrawlDelayMechanism', 'FixedDelay', 'RandomDelay', 'AdaptiveDelay', 'create_delay_mechanism',
    'CrawlEvent', 'EventObject', 'PageLoadEvent', 'NonHtmlContentEvent', 'RequestErrorEvent',
    'NetworkErrorEvent', 'PageLoadTimeoutEvent', 'RequestRedirectEvent',
    'EventCallbackManager', 'PatternMatchingCallback',
    'Fetcher', 'WebFetcher', 'RawResponse',
    'Crawler', 'RunState',
    'UrlFinder', 'SiteCrawler'
]
