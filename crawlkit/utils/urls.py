"""
URL canonicalization, fingerprinting and domain matching.
"""

import hashlib
from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..exceptions import MalformedUrlError


DEFAULT_PORTS = {'http': 80, 'https': 443}


def canonicalize_url(url: str) -> str:
    """
    Return the canonical form of a URL used for de-duplication.

    Scheme and host are lower-cased, default ports are dropped, an empty path
    becomes "/", a trailing slash on a non-root path is removed, query
    parameters are sorted by name and value and the fragment is discarded.

    Raises:
        MalformedUrlError: if the URL has no http(s) scheme or no host
    """
    if not isinstance(url, str) or not url.strip():
        raise MalformedUrlError(f"Empty or non-string URL: {url!r}")

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as e:
        raise MalformedUrlError(f"Invalid URL {url!r}: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise MalformedUrlError(f"Unsupported URL scheme in {url!r}")

    host = (parts.hostname or '').lower()
    if not host:
        raise MalformedUrlError(f"URL has no host: {url!r}")

    netloc = f"[{host}]" if ':' in host else host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parts.path or '/'
    if len(path) > 1 and path.endswith('/'):
        path = path.rstrip('/') or '/'

    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))

    return urlunsplit((scheme, netloc, path, query, ''))


def fingerprint(url: str) -> str:
    """Create the de-duplication fingerprint (sha256 hex) of a URL."""
    return hashlib.sha256(canonicalize_url(url).encode('utf-8')).hexdigest()


def is_valid_url(url: str) -> bool:
    try:
        canonicalize_url(url)
    except MalformedUrlError:
        return False
    return True


def get_domain(url: str) -> str:
    """Extract the lower-cased host of a URL, or an empty string."""
    try:
        return (urlsplit(url).hostname or '').lower()
    except ValueError:
        return ''


def domain_in(domain: str, allowed_domains: Iterable[str]) -> bool:
    """
    Check whether a domain equals, or is a subdomain of, one of the allowed
    domains. Comparison is label-wise, so "badexample.com" does not match
    "example.com".
    """
    labels = domain.lower().strip('.').split('.')
    for allowed in allowed_domains:
        allowed_labels = allowed.lower().strip('.').split('.')
        if len(allowed_labels) > len(labels):
            continue
        if labels[len(labels) - len(allowed_labels):] == allowed_labels:
            return True
    return False
