"""
Utility modules for the crawler.
"""

from .config import Config, ConfigManager, load_config
from .stopwatch import Stopwatch

__all__ = ['Config', 'ConfigManager', 'load_config', 'Stopwatch']
