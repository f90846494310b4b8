"""
Storage layer for crawler state.
"""

from .state_store import StateStore, FileStateStore, RedisStateStore, create_state_store

__all__ = ['StateStore', 'FileStateStore', 'RedisStateStore', 'create_state_store']
