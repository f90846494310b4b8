"""
Crawl lifecycle events passed to event callbacks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .fetcher import RawResponse
from .request import CrawlCandidate, CrawlRequest


class CrawlEvent(Enum):
    """Lifecycle events dispatched by the crawler."""
    PAGE_LOAD = 'page_load'
    NON_HTML_CONTENT = 'non_html_content'
    REQUEST_ERROR = 'request_error'
    NETWORK_ERROR = 'network_error'
    PAGE_LOAD_TIMEOUT = 'page_load_timeout'
    REQUEST_REDIRECT = 'request_redirect'


@dataclass(frozen=True)
class EventObject:
    """Base event; always carries the candidate being processed."""
    candidate: CrawlCandidate
    response: Optional[RawResponse] = None

    @property
    def url(self) -> str:
        return self.candidate.url


@dataclass(frozen=True)
class PageLoadEvent(EventObject):
    """An HTML page was loaded with a success status code."""


@dataclass(frozen=True)
class NonHtmlContentEvent(EventObject):
    """The response content is not HTML."""


@dataclass(frozen=True)
class RequestErrorEvent(EventObject):
    """The response status code indicates a client or server error."""


@dataclass(frozen=True)
class PageLoadTimeoutEvent(EventObject):
    """The page did not load within the timeout period."""


@dataclass(frozen=True)
class NetworkErrorEvent(EventObject):
    """The request was unsuccessful; no response is available."""
    error_message: str = ''


@dataclass(frozen=True)
class RequestRedirectEvent(EventObject):
    """The request was redirected; the target is scheduled as a new request."""
    redirected_request: Optional[CrawlRequest] = None
