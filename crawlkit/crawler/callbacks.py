"""
Event callback manager routing crawl events to user callbacks.
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern, Union

from .events import CrawlEvent, EventObject


EventCallback = Callable[[EventObject], None]


@dataclass(frozen=True)
class PatternMatchingCallback:
    """A callback that applies only to URLs fully matching its pattern."""
    url_pattern: Pattern
    callback: EventCallback

    def matches(self, url: str) -> bool:
        return self.url_pattern.fullmatch(url) is not None


class EventCallbackManager:
    """
    Holds one default callback and any number of pattern matching callbacks
    per event.

    When an event is dispatched, every custom callback whose pattern matches
    the candidate URL is invoked in registration order. The default callback
    runs only when no custom callback matches.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._default_callbacks: Dict[CrawlEvent, EventCallback] = {}
        self._custom_callbacks: Dict[CrawlEvent, List[PatternMatchingCallback]] = {}

    def set_default_callback(self, event: CrawlEvent, callback: EventCallback):
        """Set the callback invoked when no custom callback applies."""
        with self._lock:
            self._default_callbacks[CrawlEvent(event)] = callback

    def get_default_callback(self, event: CrawlEvent) -> Optional[EventCallback]:
        with self._lock:
            return self._default_callbacks.get(CrawlEvent(event))

    def add_custom_callback(self, event: CrawlEvent,
                            url_pattern: Union[str, Pattern],
                            callback: EventCallback) -> PatternMatchingCallback:
        """Register a callback for URLs fully matching url_pattern."""
        if isinstance(url_pattern, str):
            url_pattern = re.compile(url_pattern)

        registration = PatternMatchingCallback(url_pattern, callback)
        with self._lock:
            self._custom_callbacks.setdefault(CrawlEvent(event), []).append(registration)
        return registration

    def call(self, event: CrawlEvent, event_object: EventObject):
        """
        Dispatch an event.

        Exceptions raised by callbacks are not caught here.
        """
        event = CrawlEvent(event)
        with self._lock:
            registrations = list(self._custom_callbacks.get(event, ()))
            default_callback = self._default_callbacks.get(event)

        url = event_object.candidate.url
        applicable = [r for r in registrations if r.matches(url)]

        if applicable:
            self.logger.debug(f"Invoking {len(applicable)} custom {event.value} callback(s) for {url}")
            for registration in applicable:
                registration.callback(event_object)
            return

        if default_callback is not None:
            default_callback(event_object)
