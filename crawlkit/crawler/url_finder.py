"""
Helper for event callbacks to find URLs in loaded HTML pages.
"""

import re
from typing import Callable, Iterable, List, Optional, Pattern, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..utils.urls import is_valid_url
from .fetcher import RawResponse


DEFAULT_URL_PATTERN = re.compile(r'https?://\S+')


class UrlFinder:
    """
    Finds URLs in the attribute values of selected HTML elements.

    By default it looks at the href attribute of anchors, resolves relative
    links against the final URL of the response and keeps values matching
    https?://\\S+ that have a valid host.
    """

    def __init__(self,
                 url_pattern: Union[str, Pattern] = DEFAULT_URL_PATTERN,
                 selectors: Iterable[str] = ('a',),
                 attribute_name: str = 'href',
                 validator: Callable[[str], bool] = is_valid_url):
        if isinstance(url_pattern, str):
            url_pattern = re.compile(url_pattern)
        selectors = list(selectors)
        if not selectors:
            raise ValueError("At least one CSS selector is required")
        if not attribute_name or not attribute_name.strip():
            raise ValueError("The attribute name cannot be blank")

        self.url_pattern = url_pattern
        self.selectors = selectors
        self.attribute_name = attribute_name
        self.validator = validator

    def _attribute_values(self, response: RawResponse) -> Iterable[str]:
        if not response.content:
            return
        soup = BeautifulSoup(response.content, 'html.parser')
        for selector in self.selectors:
            for element in soup.select(selector):
                value = element.get(self.attribute_name)
                if isinstance(value, list):
                    value = ' '.join(value)
                if value:
                    yield value

    def _find_in_attribute_value(self, value: str, base_url: str) -> Optional[str]:
        if not value.strip():
            return None
        value = urljoin(base_url, value.strip())
        match = self.url_pattern.search(value)
        if match:
            found_url = match.group().strip()
            if self.validator(found_url):
                return found_url
        return None

    def find_all(self, response: RawResponse) -> List[str]:
        """Return every URL found in the response, selector by selector."""
        urls = []
        for value in self._attribute_values(response):
            found_url = self._find_in_attribute_value(value, response.final_url)
            if found_url:
                urls.append(found_url)
        return urls

    def find_first(self, response: RawResponse) -> Optional[str]:
        """Return the first URL found in the response, or None."""
        for value in self._attribute_values(response):
            found_url = self._find_in_attribute_value(value, response.final_url)
            if found_url:
                return found_url
        return None
