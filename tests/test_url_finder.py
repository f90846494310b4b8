import asyncio

import pytest

from conftest import FakeFetcher, RecordingSleep, html_response
from crawlkit.crawler.site_crawler import SiteCrawler
from crawlkit.crawler.url_finder import UrlFinder
from crawlkit.utils.config import CrawlerConfig


PAGE = """
<html><body>
  <a href="/about">About</a>
  <a href="https://example.com/news?id=1">News</a>
  <a href="mailto:team@example.com">Mail</a>
  <a href="#top">Top</a>
  <a>No link</a>
  <link rel="canonical" href="https://example.com/canonical">
  <img src="https://cdn.example.com/logo.png">
</body></html>
"""


def test_find_all_resolves_relative_links():
    response = html_response("https://example.com/index", content=PAGE)

    urls = UrlFinder().find_all(response)

    assert urls == [
        "https://example.com/about",
        "https://example.com/news?id=1",
        "https://example.com/index#top",
    ]


def test_links_resolve_against_final_url():
    response = html_response("https://example.com/old", content='<a href="next">n</a>',
                             final_url="https://example.com/docs/")

    assert UrlFinder().find_first(response) == "https://example.com/docs/next"


def test_custom_selectors_and_attribute():
    response = html_response("https://example.com/", content=PAGE)
    finder = UrlFinder(url_pattern=r"https://cdn\.example\.com/\S+", selectors=["img"], attribute_name="src")

    assert finder.find_all(response) == ["https://cdn.example.com/logo.png"]


def test_empty_or_missing_content():
    response = html_response("https://example.com/", content=None)

    assert UrlFinder().find_all(response) == []
    assert UrlFinder().find_first(response) is None


def test_invalid_finder_configuration():
    with pytest.raises(ValueError):
        UrlFinder(selectors=[])
    with pytest.raises(ValueError):
        UrlFinder(attribute_name=" ")


def test_site_crawler_follows_links_on_allowed_domains():
    fetcher = FakeFetcher({
        "https://example.com/": html_response(
            "https://example.com/",
            content='<a href="/a">a</a><a href="https://other.org/">o</a><a href="/b">b</a><a href="/a/">a</a>'
        ),
        "https://example.com/a": html_response(
            "https://example.com/a", content='<a href="/">home</a><a href="/a/deep">d</a>'
        ),
    })
    crawler = SiteCrawler(
        CrawlerConfig(
            seed_urls=["https://example.com/"],
            offsite_filter_enabled=True,
            allowed_domains=["example.com"],
            max_depth=1
        ),
        fetcher=fetcher,
        sleep=RecordingSleep()
    )

    asyncio.run(crawler.start())

    assert fetcher.fetched == ["https://example.com/", "https://example.com/a", "https://example.com/b"]
    stats = crawler.get_stats()
    assert stats["filtered_offsite_request_count"] == 1
    assert stats["filtered_depth_limit_request_count"] == 2
    assert stats["filtered_duplicate_request_count"] == 1
