"""
A ready-to-use crawler that follows the links found on loaded pages.
"""

from typing import Optional

from .events import PageLoadEvent, RequestRedirectEvent
from .request import CrawlRequest
from .scheduler import Crawler
from .url_finder import UrlFinder


class SiteCrawler(Crawler):
    """
    Follows every link found on HTML pages.

    Combine with offsite filtering and max_depth in the configuration to keep
    the crawl bounded.
    """

    def __init__(self, *args, url_finder: Optional[UrlFinder] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.url_finder = url_finder or UrlFinder()

    def on_page_load(self, event: PageLoadEvent):
        links = self.url_finder.find_all(event.response)
        added_count = self.crawl_all(
            CrawlRequest(url=link, priority=event.candidate.priority) for link in links
        )
        self.logger.info(f"Page loaded: {event.url} ({len(links)} links, {added_count} new)")

    def on_request_redirect(self, event: RequestRedirectEvent):
        self.logger.info(f"Followed redirect: {event.url} -> {event.redirected_request.url}")
