"""
crawlkit

A crawl orchestration core: deduplicating priority frontier, politeness
delays and pattern-matched event callbacks.
"""

__version__ = "1.0.0"
__description__ = "Crawl frontier, pacing and event-callback dispatch for web crawlers"
