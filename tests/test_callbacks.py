import re

import pytest

from crawlkit.crawler.callbacks import EventCallbackManager
from crawlkit.crawler.events import CrawlEvent, PageLoadEvent
from crawlkit.crawler.request import CrawlCandidate, CrawlRequest


def _event(url):
    return PageLoadEvent(CrawlCandidate(CrawlRequest(url)))


def test_default_callback_runs_when_nothing_matches():
    manager = EventCallbackManager()
    calls = []
    manager.set_default_callback(CrawlEvent.PAGE_LOAD, lambda e: calls.append(('default', e.url)))
    manager.add_custom_callback(CrawlEvent.PAGE_LOAD, r'https://other\.com/.*', lambda e: calls.append('custom'))

    manager.call(CrawlEvent.PAGE_LOAD, _event('https://example.com/'))

    assert calls == [('default', 'https://example.com/')]


def test_all_matching_callbacks_run_in_registration_order_instead_of_default():
    manager = EventCallbackManager()
    calls = []
    manager.set_default_callback(CrawlEvent.PAGE_LOAD, lambda e: calls.append('default'))
    manager.add_custom_callback(CrawlEvent.PAGE_LOAD, r'.*example.*', lambda e: calls.append('first'))
    manager.add_custom_callback(CrawlEvent.PAGE_LOAD, r'https://nomatch/', lambda e: calls.append('skipped'))
    manager.add_custom_callback(CrawlEvent.PAGE_LOAD, re.compile(r'https://.*'), lambda e: calls.append('second'))

    manager.call(CrawlEvent.PAGE_LOAD, _event('https://example.com/'))

    assert calls == ['first', 'second']


def test_pattern_must_match_the_whole_url():
    manager = EventCallbackManager()
    calls = []
    manager.set_default_callback(CrawlEvent.PAGE_LOAD, lambda e: calls.append('default'))
    manager.add_custom_callback(CrawlEvent.PAGE_LOAD, r'example', lambda e: calls.append('custom'))

    manager.call(CrawlEvent.PAGE_LOAD, _event('https://example.com/'))

    assert calls == ['default']


def test_no_default_and_no_match_is_a_no_op():
    manager = EventCallbackManager()
    manager.add_custom_callback(CrawlEvent.PAGE_LOAD, r'https://other/', lambda e: 1 / 0)

    manager.call(CrawlEvent.PAGE_LOAD, _event('https://example.com/'))
    manager.call(CrawlEvent.NETWORK_ERROR, _event('https://example.com/'))


def test_callbacks_are_scoped_to_their_event():
    manager = EventCallbackManager()
    calls = []
    manager.add_custom_callback(CrawlEvent.REQUEST_ERROR, r'.*', lambda e: calls.append('error'))
    manager.set_default_callback(CrawlEvent.PAGE_LOAD, lambda e: calls.append('page'))

    manager.call(CrawlEvent.PAGE_LOAD, _event('https://example.com/'))

    assert calls == ['page']
    assert manager.get_default_callback(CrawlEvent.REQUEST_ERROR) is None


def test_callback_exception_propagates():
    manager = EventCallbackManager()

    def broken(event):
        raise KeyError('boom')

    manager.set_default_callback(CrawlEvent.PAGE_LOAD, broken)

    with pytest.raises(KeyError):
        manager.call(CrawlEvent.PAGE_LOAD, _event("https://example.com/"))
