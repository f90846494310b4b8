"""
Configuration management for the crawler.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..exceptions import ConfigurationError
from .urls import is_valid_url


CRAWL_STRATEGIES = ('priority', 'breadth_first', 'depth_first')
DELAY_STRATEGIES = ('fixed', 'random', 'adaptive')
CALLBACK_ERROR_POLICIES = ('fail_fast', 'continue')
STATE_STORE_TYPES = ('none', 'file', 'redis')


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: List[Union[str, Dict[str, Any]]] = field(default_factory=list)
    crawl_strategy: str = 'priority'
    max_depth: int = 0
    duplicate_filter_enabled: bool = True
    offsite_filter_enabled: bool = False
    allowed_domains: List[str] = field(default_factory=list)
    delay_strategy: str = 'fixed'
    fixed_delay: float = 0.0
    min_delay: float = 1.0
    max_delay: float = 60.0
    random_seed: Optional[int] = None
    max_duration: Optional[float] = None
    callback_error_policy: str = 'fail_fast'

    def validate(self):
        """Raise ConfigurationError if any value is invalid."""
        for seed in self.seed_urls:
            url = seed.get('url') if isinstance(seed, dict) else seed
            if not is_valid_url(url):
                raise ConfigurationError(f"Invalid seed URL: {url!r}")
            priority = seed.get('priority', 0) if isinstance(seed, dict) else 0
            if isinstance(priority, bool) or not isinstance(priority, int):
                raise ConfigurationError(f"Seed priority must be an integer: {priority!r}")

        if self.crawl_strategy not in CRAWL_STRATEGIES:
            raise ConfigurationError(f"crawl_strategy must be one of {CRAWL_STRATEGIES}")

        if self.max_depth < 0:
            raise ConfigurationError("max_depth cannot be negative (0 means unlimited)")

        if self.delay_strategy not in DELAY_STRATEGIES:
            raise ConfigurationError(f"delay_strategy must be one of {DELAY_STRATEGIES}")

        if self.fixed_delay < 0:
            raise ConfigurationError("fixed_delay must be non-negative")

        if self.min_delay < 0:
            raise ConfigurationError("min_delay must be non-negative")

        if self.min_delay > self.max_delay:
            raise ConfigurationError("min_delay cannot be greater than max_delay")

        if self.max_duration is not None and self.max_duration < 0:
            raise ConfigurationError("max_duration must be non-negative")

        if self.callback_error_policy not in CALLBACK_ERROR_POLICIES:
            raise ConfigurationError(
                f"callback_error_policy must be one of {CALLBACK_ERROR_POLICIES}"
            )


@dataclass
class FetcherConfig:
    """Configuration for the default web fetcher."""
    user_agent: str = 'crawlkit/1.0'
    request_timeout: int = 30
    respect_robots_txt: bool = True
    max_content_size: int = 10 * 1024 * 1024


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    state_key: str = 'crawler:state'


@dataclass
class StateConfig:
    """Configuration for persisting crawler state between runs."""
    type: str = 'none'
    file: str = 'data/crawler_state.json'
    redis: RedisConfig = field(default_factory=RedisConfig)


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    state: StateConfig = field(default_factory=StateConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _build_section(section_cls, data: Optional[Dict[str, Any]], name: str):
    try:
        return section_cls(**(data or {}))
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' configuration section: {e}") from e


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        self._config = self.parse(config_data)
        return self._config

    @staticmethod
    def parse(config_data: Dict[str, Any]) -> Config:
        """Build and validate a Config from a plain dictionary."""
        state_data = dict(config_data.get('state') or {})
        state_data['redis'] = _build_section(RedisConfig, state_data.get('redis'), 'state.redis')

        config = Config(
            crawler=_build_section(CrawlerConfig, config_data.get('crawler'), 'crawler'),
            fetcher=_build_section(FetcherConfig, config_data.get('fetcher'), 'fetcher'),
            state=_build_section(StateConfig, state_data, 'state'),
            logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
            monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring')
        )
        ConfigManager._validate_config(config)
        return config

    @staticmethod
    def _validate_config(config: Config):
        """Validate configuration values."""
        config.crawler.validate()

        if config.fetcher.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

        if config.state.type not in STATE_STORE_TYPES:
            raise ConfigurationError(f"State store type must be one of {STATE_STORE_TYPES}")

        logging.getLogger(__name__).info("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
