"""
Fetch collaborators used by the crawler to retrieve pages.

The crawler only depends on the Fetcher interface; WebFetcher is the default
aiohttp-based implementation with robots.txt support.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from ..exceptions import FetchError, FetchTimeoutError
from .request import CrawlRequest


HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')

TEXT_CONTENT_TYPES = (
    'text/html',
    'text/plain',
    'text/xml',
    'application/xml',
    'application/xhtml+xml',
    'application/json',
    'application/ld+json'
)


@dataclass
class RawResponse:
    """Response returned by a fetcher."""
    url: str
    status_code: int
    final_url: Optional[str] = None
    content_type: str = ''
    content: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    load_time: float = 0.0

    def __post_init__(self):
        if self.final_url is None:
            self.final_url = self.url

    @property
    def mime_type(self) -> str:
        """Content type without parameters; text/plain when absent."""
        mime_type = self.content_type.split(';')[0].strip().lower()
        return mime_type or 'text/plain'

    @property
    def is_html(self) -> bool:
        return self.mime_type in HTML_CONTENT_TYPES

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class Fetcher:
    """Interface of the fetch collaborator."""

    async def start(self):
        """Open any session needed before the first fetch."""
        pass

    async def close(self):
        """Release the resources opened by start()."""
        pass

    async def fetch(self, request: CrawlRequest) -> RawResponse:
        """
        Fetch a single request.

        Raises:
            FetchError: if the page could not be retrieved
            FetchTimeoutError: if the page did not load in time
        """
        raise NotImplementedError

    def get_stats(self) -> Dict[str, int]:
        """Fetch counters reported with the crawl statistics."""
        return {}


class RobotsChecker:
    """Manages robots.txt checking for domains."""

    def __init__(self, user_agent: str, cache_ttl: int = 3600):
        self.user_agent = user_agent
        self.robots_cache: Dict[str, RobotFileParser] = {}
        self.robots_check_time: Dict[str, float] = {}
        self.cache_ttl = cache_ttl
        self.logger = logging.getLogger(__name__)

    def _get_origin(self, url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}"

    async def can_fetch(self, url: str, session: ClientSession) -> bool:
        """Check if URL can be fetched according to robots.txt."""
        origin = self._get_origin(url)
        current_time = time.time()

        if (origin in self.robots_cache and
                current_time - self.robots_check_time.get(origin, 0) < self.cache_ttl):
            return self.robots_cache[origin].can_fetch(self.user_agent, url)

        robots_url = urljoin(origin, '/robots.txt')
        rp = RobotFileParser()
        rp.set_url(robots_url)
        try:
            async with session.get(robots_url, timeout=ClientTimeout(total=10)) as response:
                if response.status == 200:
                    rp.parse((await response.text()).splitlines())
                else:
                    # No robots.txt allows everything
                    rp.parse([])
        except (ClientError, asyncio.TimeoutError) as e:
            self.logger.warning(f"Could not fetch robots.txt for {origin}: {e}")
            return True

        self.robots_cache[origin] = rp
        self.robots_check_time[origin] = current_time
        return rp.can_fetch(self.user_agent, url)


class WebFetcher(Fetcher):
    """
    Fetches pages over HTTP with aiohttp.

    Redirects are followed, so RawResponse.final_url reveals them to the
    crawler. Only text content is downloaded.
    """

    def __init__(self, user_agent: str = 'crawlkit/1.0', request_timeout: int = 30,
                 respect_robots_txt: bool = True, max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.respect_robots_txt = respect_robots_txt
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)
        self.robots_checker = RobotsChecker(user_agent) if respect_robots_txt else None
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'robots_blocked': 0,
            'total_bytes_downloaded': 0
        }

    @classmethod
    def from_config(cls, config) -> 'WebFetcher':
        """Create a fetcher from a FetcherConfig."""
        return cls(
            user_agent=config.user_agent,
            request_timeout=config.request_timeout,
            respect_robots_txt=config.respect_robots_txt,
            max_content_size=config.max_content_size
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent}
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, request: CrawlRequest) -> RawResponse:
        if self.session is None:
            await self.start()

        url = request.url
        if self.robots_checker and not await self.robots_checker.can_fetch(url, self.session):
            self.stats['robots_blocked'] += 1
            self.logger.info(f"Robots.txt blocks access to: {url}")
            raise FetchError("Blocked by robots.txt", url=url)

        start_time = time.monotonic()
        self.stats['total_requests'] += 1
        try:
            async with self.session.request(request.method or 'GET', url) as response:
                content_type = response.headers.get('content-type', '').lower()
                content = None
                if any(text_type in content_type for text_type in TEXT_CONTENT_TYPES):
                    content = await self._read_content_safely(response)

                load_time = time.monotonic() - start_time
                self.stats['successful_requests'] += 1
                if content:
                    self.stats['total_bytes_downloaded'] += len(content)

                self.logger.debug(
                    f"Fetched {url}: {response.status} ({len(content) if content else 0} chars)"
                )
                return RawResponse(
                    url=url,
                    status_code=response.status,
                    final_url=str(response.url),
                    content_type=content_type,
                    content=content,
                    headers=dict(response.headers),
                    load_time=load_time
                )
        except asyncio.TimeoutError as e:
            self.stats['failed_requests'] += 1
            self.logger.warning(f"Timeout fetching {url}")
            raise FetchTimeoutError("Request timeout", url=url) from e
        except ClientError as e:
            self.stats['failed_requests'] += 1
            self.logger.warning(f"Client error fetching {url}: {e}")
            raise FetchError(f"Client error: {e}", url=url) from e

    async def _read_content_safely(self, response) -> Optional[str]:
        """Read the body up to max_content_size; None if it is larger."""
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
