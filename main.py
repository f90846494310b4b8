#!/usr/bin/env python3
"""
Main entry point for the crawler.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from crawlkit import __version__
from crawlkit.crawler.fetcher import WebFetcher
from crawlkit.crawler.scheduler import RunState
from crawlkit.crawler.site_crawler import SiteCrawler
from crawlkit.exceptions import CrawlerError, StateStoreError
from crawlkit.storage import StateStore, create_state_store
from crawlkit.utils.config import Config, load_config
from crawlkit.utils.logger import log_system_info, setup_logging
from crawlkit.utils.monitoring import CrawlMetrics, StatsCounter, start_metrics_server


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.crawler: Optional[SiteCrawler] = None
        self.state_store: Optional[StateStore] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self.crawler and self.crawler.state is RunState.RUNNING:
                self.crawler.request_stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def build_crawler(self, config: Config) -> SiteCrawler:
        metrics = None
        if config.monitoring.metrics_enabled:
            metrics = CrawlMetrics()
            start_metrics_server(metrics, config.monitoring.prometheus_port)

        return SiteCrawler(
            config.crawler,
            fetcher=WebFetcher.from_config(config.fetcher),
            stats=StatsCounter(metrics)
        )

    async def run(self, config_path: str, max_duration: Optional[float] = None,
                  resume: bool = False, dry_run: bool = False) -> int:
        """Run the crawler."""
        state_saved = True
        try:
            config = load_config(config_path)
            if max_duration is not None:
                config.crawler.max_duration = max_duration
            setup_logging(config.logging)
            log_system_info()
            self.setup_signal_handlers()

            self.logger.info("=== CRAWLER STARTING ===")
            self.logger.info(f"Configuration loaded from: {config_path}")
            self.logger.info(f"Seed URLs: {config.crawler.seed_urls}")
            self.logger.info(f"Crawl strategy: {config.crawler.crawl_strategy}")
            self.logger.info(f"Delay strategy: {config.crawler.delay_strategy}")

            self.crawler = self.build_crawler(config)
            self.state_store = create_state_store(config.state)

            if dry_run:
                self.logger.info("DRY RUN MODE: No actual crawling will be performed")
                await self._dry_run(config)
                return 0

            if resume:
                if self.state_store is None:
                    self.logger.error("Cannot resume: no state store configured")
                    return 1
                state = await self.state_store.load()
                if state is None:
                    self.logger.error("Cannot resume: no saved crawler state")
                    return 1
                self.crawler.restore_state(state)
                await self.crawler.resume()
            else:
                await self.crawler.start()

        except CrawlerError as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            if self.state_store is not None:
                try:
                    state_saved = await self._save_state()
                finally:
                    await self.state_store.close()
            self.logger.info("=== CRAWLER FINISHED ===")

        return 0 if state_saved else 1

    async def _save_state(self) -> bool:
        """Persist the state of a stopped crawler, also after a failed run."""
        if self.crawler is None or self.crawler.state is not RunState.STOPPED:
            return True
        try:
            await self.state_store.save(self.crawler.get_state())
        except StateStoreError as e:
            self.logger.error(f"Could not save crawler state: {e}")
            return False
        return True

    async def _dry_run(self, config: Config):
        """Test the configuration and the state store without crawling."""
        self.logger.info(f"Seeds: {len(config.crawler.seed_urls)}, "
                         f"allowed domains: {config.crawler.allowed_domains or 'any'}")
        if self.state_store is not None:
            state = await self.state_store.load()
            self.logger.info(f"State store reachable (saved state present: {state is not None})")
        self.logger.info("Dry run completed")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="crawlkit crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                           # Run with default config.yaml
  python main.py --config my_config.yaml  # Run with custom config
  python main.py --max-duration 3600      # Run for 1 hour max
  python main.py --resume                 # Continue from the saved state
  python main.py --dry-run                # Test configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--max-duration',
        type=float,
        help='Maximum crawl duration in seconds'
    )

    parser.add_argument(
        '--resume',
        action='store_true',
        help='Resume from the crawler state saved by a previous run'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Test configuration without actually crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'crawlkit {__version__}'
    )

    args = parser.parse_args()

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(
            config_path=args.config,
            max_duration=args.max_duration,
            resume=args.resume,
            dry_run=args.dry_run
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
