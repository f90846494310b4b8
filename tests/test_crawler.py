import asyncio
import logging
import threading
import json

import pytest

from conftest import FakeFetcher, RecordingSleep, html_response
from crawlkit.crawler.events import CrawlEvent
from crawlkit.crawler.fetcher import RawResponse, WebFetcher
from crawlkit.crawler.request import CrawlRequest
from crawlkit.crawler.scheduler import Crawler, RunState
from crawlkit.exceptions import ConfigurationError, CrawlerStateError, FetchError, FetchTimeoutError
from crawlkit.utils.config import CrawlerConfig


def make_crawler(fetcher, sleep=None, clock=None, **config):
    kwargs = {}
    if clock is not None:
        kwargs['time_source'] = clock
    return Crawler(
        CrawlerConfig(**config),
        fetcher=fetcher,
        sleep=sleep or RecordingSleep(),
        **kwargs
    )


def record_events(crawler, events=tuple(CrawlEvent)):
    seen = []
    for event in events:
        crawler.set_default_callback(
            event, lambda e, name=event.value: seen.append((name, e.url))
        )
    return seen


def test_seeds_are_crawled_by_priority(fetcher):
    crawler = make_crawler(fetcher, seed_urls=[
        {'url': 'http://a.com/', 'priority': 1},
        {'url': 'http://b.com/', 'priority': 5},
    ])

    asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://b.com/', 'http://a.com/']
    assert fetcher.started and fetcher.closed
    assert crawler.state is RunState.STOPPED
    assert crawler.stats.processed_count == 2
    assert crawler.stats.remaining_count == 0


def test_zero_max_duration_fetches_nothing(fetcher):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/'], max_duration=0)

    asyncio.run(crawler.start())

    assert fetcher.fetched == []
    assert crawler.state is RunState.STOPPED
    assert crawler.frontier.size() == 1


def test_max_duration_is_checked_between_fetches(fetcher, clock):
    crawler = make_crawler(
        fetcher, sleep=RecordingSleep(clock), clock=clock,
        seed_urls=['http://a.com/1', 'http://a.com/2', 'http://a.com/3'],
        fixed_delay=10, max_duration=15
    )

    asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://a.com/1', 'http://a.com/2']
    assert crawler.status()['elapsed'] == 20


def test_delay_is_applied_before_every_fetch(fetcher, sleep):
    crawler = make_crawler(fetcher, sleep, seed_urls=['http://a.com/', 'http://b.com/'], fixed_delay=2)

    asyncio.run(crawler.start())

    assert sleep.delays == [2.0, 2.0]


def test_callbacks_can_schedule_requests(fetcher):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/'])
    depths = {}

    def follow(event):
        depths[event.url] = event.candidate.depth
        crawler.crawl(CrawlRequest('http://a.com/child'))
        crawler.crawl(CrawlRequest('http://a.com/'))

    crawler.register_callback(CrawlEvent.PAGE_LOAD, r'http://a\.com/.*', follow)

    asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://a.com/', 'http://a.com/child']
    assert depths == {'http://a.com/': 0, 'http://a.com/child': 1}
    assert crawler.stats.get('filtered_duplicate_request_count') == 3


def test_responses_are_classified_into_events():
    fetcher = FakeFetcher({
        'http://a.com/page': html_response('http://a.com/page'),
        'http://a.com/missing': html_response('http://a.com/missing', status_code=404),
        'http://a.com/doc.pdf': RawResponse('http://a.com/doc.pdf', 200, content_type='application/pdf'),
        'http://a.com/plain': RawResponse('http://a.com/plain', 200),
        'http://a.com/down': FetchError('Connection refused', url='http://a.com/down'),
        'http://a.com/slow': FetchTimeoutError('Request timeout', url='http://a.com/slow'),
    })
    crawler = make_crawler(fetcher, seed_urls=list(fetcher.responses))
    seen = record_events(crawler)

    asyncio.run(crawler.start())

    assert seen == [
        ('page_load', 'http://a.com/page'),
        ('request_error', 'http://a.com/missing'),
        ('non_html_content', 'http://a.com/doc.pdf'),
        ('non_html_content', 'http://a.com/plain'),
        ('network_error', 'http://a.com/down'),
        ('page_load_timeout', 'http://a.com/slow'),
    ]
    stats = crawler.get_stats()
    assert stats['page_load_count'] == 1
    assert stats['request_error_count'] == 1
    assert stats['non_html_content_count'] == 2
    assert stats['network_error_count'] == 1
    assert stats['page_load_timeout_count'] == 1


def test_network_error_carries_the_message():
    fetcher = FakeFetcher({'http://a.com/': FetchError('Connection refused')})
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/'])
    messages = []
    crawler.set_default_callback(CrawlEvent.NETWORK_ERROR, lambda e: messages.append(e.error_message))

    asyncio.run(crawler.start())

    assert messages == ['Connection refused']


def test_redirect_target_is_crawled_as_a_new_request():
    fetcher = FakeFetcher({
        'http://a.com/old': html_response('http://a.com/old', final_url='http://a.com/new'),
        'http://a.com/same': html_response('http://a.com/same', final_url='http://A.com/same#top'),
    })
    crawler = make_crawler(fetcher, seed_urls=[{'url': 'http://a.com/old', 'priority': 3}, 'http://a.com/same'])
    redirects = []
    crawler.set_default_callback(CrawlEvent.REQUEST_REDIRECT, redirects.append)
    seen = record_events(crawler, [CrawlEvent.PAGE_LOAD])

    asyncio.run(crawler.start())

    assert len(redirects) == 1
    assert redirects[0].redirected_request.url == 'http://a.com/new'
    assert redirects[0].redirected_request.priority == 3
    assert fetcher.fetched == ['http://a.com/old', 'http://a.com/new', 'http://a.com/same']
    assert seen == [('page_load', 'http://a.com/new'), ('page_load', 'http://a.com/same')]


def test_callback_error_stops_the_crawl_by_default(fetcher):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/', 'http://b.com/'])

    def broken(event):
        raise ValueError('callback failed')

    crawler.set_default_callback(CrawlEvent.PAGE_LOAD, broken)

    with pytest.raises(ValueError):
        asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://a.com/']
    assert fetcher.closed
    assert crawler.state is RunState.STOPPED
    assert crawler.stats.get('callback_error_count') == 1


def test_callback_error_can_be_skipped(fetcher):
    crawler = make_crawler(
        fetcher, seed_urls=['http://a.com/', 'http://b.com/'], callback_error_policy='continue'
    )

    def broken(event):
        raise ValueError('callback failed')

    crawler.set_default_callback(CrawlEvent.PAGE_LOAD, broken)

    asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://a.com/', 'http://b.com/']
    assert crawler.stats.get('callback_error_count') == 2


def test_request_stop_takes_effect_after_the_current_candidate(fetcher):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/', 'http://b.com/'])
    statuses = []

    def stop(event):
        crawler.request_stop()
        crawler.request_stop()
        statuses.append(crawler.status())

    crawler.set_default_callback(CrawlEvent.PAGE_LOAD, stop)

    asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://a.com/']
    assert statuses[0]['state'] == 'stopping'
    assert statuses[0]['processed_count'] == 1
    assert crawler.state is RunState.STOPPED
    assert crawler.frontier.size() == 1
    with pytest.raises(CrawlerStateError):
        crawler.request_stop()


def test_state_misuse_raises(fetcher):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/'])

    with pytest.raises(CrawlerStateError):
        crawler.request_stop()
    with pytest.raises(CrawlerStateError):
        crawler.crawl(CrawlRequest('http://a.com/'))
    with pytest.raises(CrawlerStateError):
        crawler.reset()

    asyncio.run(crawler.start())

    with pytest.raises(CrawlerStateError):
        asyncio.run(crawler.start())


def test_reset_allows_a_fresh_run(fetcher):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/'])
    asyncio.run(crawler.start())

    crawler.reset()
    assert crawler.state is RunState.IDLE
    asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://a.com/', 'http://a.com/']
    assert crawler.stats.processed_count == 1


def test_invalid_configuration_is_rejected(fetcher):
    with pytest.raises(ConfigurationError):
        make_crawler(fetcher, seed_urls=['not-a-url'])
    with pytest.raises(ConfigurationError):
        make_crawler(fetcher, delay_strategy='random', min_delay=5, max_delay=1)


def test_saved_state_resumes_the_crawl():
    first_fetcher = FakeFetcher()
    first = make_crawler(first_fetcher, seed_urls=['http://a.com/', 'http://b.com/', 'http://c.com/'])
    first.set_default_callback(CrawlEvent.PAGE_LOAD, lambda e: first.request_stop())
    asyncio.run(first.start())

    state = json.loads(json.dumps(first.get_state()))

    second_fetcher = FakeFetcher()
    second = make_crawler(second_fetcher)
    second.restore_state(state)
    second.set_default_callback(
        CrawlEvent.PAGE_LOAD, lambda e: second.crawl(CrawlRequest('http://a.com/'))
    )
    asyncio.run(second.resume())

    assert first_fetcher.fetched == ['http://a.com/']
    assert second_fetcher.fetched == ['http://b.com/', 'http://c.com/']
    assert second.stats.processed_count == 3
    assert second.stats.get('filtered_duplicate_request_count') == 2

    with pytest.raises(CrawlerStateError):
        second.restore_state(state)


def test_restore_rejects_unknown_state_version(fetcher):
    crawler = make_crawler(fetcher)

    with pytest.raises(CrawlerStateError):
        crawler.restore_state({'version': 99})


@pytest.mark.parametrize("seed", [
    CrawlRequest('not-a-url'),
    CrawlRequest('ftp://example.com/'),
    CrawlRequest('http://a.com/', priority='high'),
])
def test_invalid_seeds_are_rejected_at_setup(fetcher, seed):
    with pytest.raises(ConfigurationError):
        Crawler(CrawlerConfig(), fetcher=fetcher, seeds=[seed])

    crawler = make_crawler(fetcher)
    with pytest.raises(ConfigurationError):
        crawler.add_seed(seed)


def test_seeds_added_in_code_are_crawled(fetcher):
    crawler = Crawler(
        CrawlerConfig(seed_urls=['http://a.com/']), fetcher=fetcher,
        seeds=[CrawlRequest('http://b.com/', priority=2)], sleep=RecordingSleep()
    )
    crawler.add_seed('http://c.com/')

    asyncio.run(crawler.start())

    assert fetcher.fetched == ['http://b.com/', 'http://a.com/', 'http://c.com/']


def test_requests_from_other_threads_are_crawl_roots(fetcher):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/'])
    results = {}

    def from_control_thread():
        results['control'] = crawler.crawl(CrawlRequest('http://a.com/control'))

    def on_page_load(event):
        if event.url != 'http://a.com/':
            return
        results['callback'] = crawler.crawl(CrawlRequest('http://a.com/child'))
        thread = threading.Thread(target=from_control_thread)
        thread.start()
        thread.join()
        results['explicit'] = crawler.crawl(
            CrawlRequest('http://a.com/explicit'), parent=results['callback'].candidate
        )

    crawler.set_default_callback(CrawlEvent.PAGE_LOAD, on_page_load)

    asyncio.run(crawler.start())

    assert results['callback'].candidate.depth == 1
    assert results['callback'].candidate.referer_url == 'http://a.com/'
    assert results['control'].candidate.depth == 0
    assert results['control'].candidate.referer_url is None
    assert results['explicit'].candidate.depth == 2
    assert results['explicit'].candidate.referer_url == 'http://a.com/child'


def test_fetcher_counters_are_part_of_the_stats(fetcher, caplog):
    crawler = make_crawler(fetcher, seed_urls=['http://a.com/', 'http://b.com/'])

    with caplog.at_level(logging.INFO, logger='crawlkit.crawler.scheduler'):
        asyncio.run(crawler.start())

    assert crawler.get_stats()['fetcher'] == {'requests': 2}
    stat_records = {
        r.stat_name: r.stat_value for r in caplog.records
        if getattr(r, 'event_type', None) == 'crawler_stat'
    }
    assert stat_records['processed_candidate_count'] == 2
    assert stat_records['fetcher.requests'] == 2


def test_web_fetcher_counters_start_at_zero():
    crawler = Crawler(CrawlerConfig(), fetcher=WebFetcher(respect_robots_txt=False))

    fetcher_stats = crawler.get_stats()['fetcher']

    assert fetcher_stats['total_requests'] == 0
    assert fetcher_stats['robots_blocked'] == 0
