"""
Crawl request and crawl candidate value objects.
"""

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from ..utils.urls import get_domain


@dataclass(frozen=True)
class CrawlRequest:
    """A URL to crawl together with its scheduling metadata."""
    url: str
    priority: int = 0
    depth: Optional[int] = None
    metadata: Mapping[str, str] = field(default_factory=dict)
    method: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata or {})))

    @property
    def domain(self) -> str:
        return get_domain(self.url)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'priority': self.priority,
            'depth': self.depth,
            'metadata': dict(self.metadata),
            'method': self.method
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlRequest':
        """Create CrawlRequest from dictionary."""
        return cls(
            url=data['url'],
            priority=data.get('priority', 0),
            depth=data.get('depth'),
            metadata=data.get('metadata') or {},
            method=data.get('method')
        )


@dataclass(frozen=True)
class CrawlCandidate:
    """A request admitted to the frontier, waiting to be fetched."""
    request: CrawlRequest
    depth: int = 0
    enqueued_at: float = field(default_factory=time.time)
    sequence: int = 0
    referer_url: Optional[str] = None

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def priority(self) -> int:
        return self.request.priority

    @property
    def domain(self) -> str:
        return self.request.domain

    @property
    def metadata(self) -> Mapping[str, str]:
        return self.request.metadata

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'request': self.request.to_dict(),
            'depth': self.depth,
            'enqueued_at': self.enqueued_at,
            'sequence': self.sequence,
            'referer_url': self.referer_url
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlCandidate':
        """Create CrawlCandidate from dictionary."""
        return cls(
            request=CrawlRequest.from_dict(data['request']),
            depth=data.get('depth', 0),
            enqueued_at=data.get('enqueued_at', time.time()),
            sequence=data.get('sequence', 0),
            referer_url=data.get('referer_url')
        )
