import pytest

from crawlkit.crawler.fetcher import Fetcher, RawResponse


def html_response(url, status_code=200, content='<html></html>', final_url=None, load_time=0.0):
    return RawResponse(
        url=url,
        status_code=status_code,
        final_url=final_url,
        content_type='text/html; charset=utf-8',
        content=content,
        load_time=load_time
    )


class FakeFetcher(Fetcher):
    """Serves canned responses; unknown URLs get an empty HTML page."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.fetched = []
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True

    async def fetch(self, request):
        self.fetched.append(request.url)
        response = self.responses.get(request.url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return html_response(request.url)
        return response

    def get_stats(self):
        return {'requests': len(self.fetched)}


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSleep:
    def __init__(self, clock=None):
        self.delays = []
        self.clock = clock

    async def __call__(self, delay):
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()
