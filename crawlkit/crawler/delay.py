"""
Crawl delay mechanisms producing the politeness delay before each fetch.
"""

import random
from typing import Optional

from ..exceptions import ConfigurationError


class CrawlDelayMechanism:
    """Base class for pacing policies. Delays are in seconds."""

    def get_delay(self) -> float:
        raise NotImplementedError

    def observe(self, response) -> None:
        """Feed the latest fetch response to the mechanism. No-op by default."""
        return None


class FixedDelay(CrawlDelayMechanism):
    """Always waits the same amount of time."""

    def __init__(self, delay: float = 0.0):
        if delay < 0:
            raise ConfigurationError("The fixed crawl delay cannot be negative.")
        self.delay = float(delay)

    def get_delay(self) -> float:
        return self.delay

    def __repr__(self) -> str:
        return f"FixedDelay(delay={self.delay})"


def _validate_range(min_delay: float, max_delay: float):
    if min_delay < 0:
        raise ConfigurationError("The minimum crawl delay cannot be negative.")
    if min_delay > max_delay:
        raise ConfigurationError(
            f"The minimum crawl delay ({min_delay}) cannot exceed the maximum ({max_delay})."
        )


class RandomDelay(CrawlDelayMechanism):
    """
    Waits a uniformly random time between min_delay and max_delay (inclusive).

    Pass a seed, or a random.Random instance, for reproducible pacing.
    """

    def __init__(self, min_delay: float, max_delay: float,
                 seed: Optional[int] = None, rng: Optional[random.Random] = None):
        _validate_range(min_delay, max_delay)
        self.min_delay = float(min_delay)
        self.max_delay = float(max_delay)
        self._random = rng if rng is not None else random.Random(seed)

    def get_delay(self) -> float:
        delay = self._random.uniform(self.min_delay, self.max_delay)
        # uniform() may round past the upper bound
        return min(max(delay, self.min_delay), self.max_delay)

    def __repr__(self) -> str:
        return f"RandomDelay(min_delay={self.min_delay}, max_delay={self.max_delay})"


class AdaptiveDelay(CrawlDelayMechanism):
    """
    Waits as long as the last page took to load, clamped to [min_delay, max_delay].

    Slow pages suggest a busy server, so the crawler backs off accordingly.
    """

    def __init__(self, min_delay: float, max_delay: float):
        _validate_range(min_delay, max_delay)
        self.min_delay = float(min_delay)
        self.max_delay = float(max_delay)
        self._last_load_time: Optional[float] = None

    def observe(self, response) -> None:
        load_time = getattr(response, 'load_time', None)
        if load_time is not None:
            self._last_load_time = float(load_time)

    def get_delay(self) -> float:
        if self._last_load_time is None:
            return self.min_delay
        return min(max(self._last_load_time, self.min_delay), self.max_delay)

    def __repr__(self) -> str:
        return f"AdaptiveDelay(min_delay={self.min_delay}, max_delay={self.max_delay})"


def create_delay_mechanism(config) -> CrawlDelayMechanism:
    """Create the delay mechanism selected by a CrawlerConfig."""
    strategy = config.delay_strategy
    if strategy == 'fixed':
        return FixedDelay(config.fixed_delay)
    if strategy == 'random':
        return RandomDelay(config.min_delay, config.max_delay, seed=config.random_seed)
    if strategy == 'adaptive':
        return AdaptiveDelay(config.min_delay, config.max_delay)
    raise ConfigurationError(f"Unsupported crawl delay strategy: {strategy}")
