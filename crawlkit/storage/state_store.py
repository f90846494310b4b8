"""
Persistence of crawler state between runs.
Supports both Redis and file-based storage.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..exceptions import StateStoreError


class StateStore:
    """Abstract base class for crawler state stores."""

    async def save(self, state: Dict[str, Any]):
        """Persist a crawler state snapshot."""
        raise NotImplementedError

    async def load(self) -> Optional[Dict[str, Any]]:
        """Return the saved snapshot, or None if nothing was saved."""
        raise NotImplementedError

    async def clear(self):
        """Delete the saved snapshot."""
        raise NotImplementedError

    async def close(self):
        """Close store connections."""
        pass


def _encode(state: Dict[str, Any]) -> str:
    envelope = {
        'saved_at': datetime.now(timezone.utc).isoformat(),
        'state': state
    }
    return json.dumps(envelope, ensure_ascii=False)


def _decode(payload: str) -> Dict[str, Any]:
    try:
        envelope = json.loads(payload)
        return envelope['state']
    except (ValueError, KeyError, TypeError) as e:
        raise StateStoreError(f"Corrupt crawler state: {e}") from e


class FileStateStore(StateStore):
    """Stores the state as a JSON file, for development and single-host runs."""

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)
        self.logger = logging.getLogger(__name__)

    async def save(self, state: Dict[str, Any]):
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so a crash never leaves a half-written file
            tmp_path = self.file_path.with_suffix(self.file_path.suffix + '.tmp')
            tmp_path.write_text(_encode(state), encoding='utf-8')
            tmp_path.replace(self.file_path)
        except OSError as e:
            raise StateStoreError(f"Failed to save crawler state to {self.file_path}: {e}") from e

        self.logger.info(f"Crawler state saved to {self.file_path}")

    async def load(self) -> Optional[Dict[str, Any]]:
        if not self.file_path.exists():
            return None
        try:
            payload = self.file_path.read_text(encoding='utf-8')
        except OSError as e:
            raise StateStoreError(f"Failed to read crawler state from {self.file_path}: {e}") from e

        self.logger.info(f"Crawler state loaded from {self.file_path}")
        return _decode(payload)

    async def clear(self):
        try:
            self.file_path.unlink(missing_ok=True)
        except OSError as e:
            raise StateStoreError(f"Failed to delete {self.file_path}: {e}") from e


class RedisStateStore(StateStore):
    """Stores the state under a single Redis key."""

    def __init__(self, redis_client: redis.Redis, state_key: str = 'crawler:state'):
        self.redis_client = redis_client
        self.state_key = state_key
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config) -> 'RedisStateStore':
        """Create a store from a RedisConfig."""
        client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=False
        )
        return cls(client, config.state_key)

    async def save(self, state: Dict[str, Any]):
        try:
            await self.redis_client.set(self.state_key, _encode(state).encode('utf-8'))
        except RedisError as e:
            raise StateStoreError(f"Failed to save crawler state to Redis: {e}") from e

        self.logger.info(f"Crawler state saved to Redis key {self.state_key}")

    async def load(self) -> Optional[Dict[str, Any]]:
        try:
            payload = await self.redis_client.get(self.state_key)
        except RedisError as e:
            raise StateStoreError(f"Failed to load crawler state from Redis: {e}") from e

        if payload is None:
            return None
        if isinstance(payload, bytes):
            payload = payload.decode('utf-8')
        return _decode(payload)

    async def clear(self):
        try:
            await self.redis_client.delete(self.state_key)
        except RedisError as e:
            raise StateStoreError(f"Failed to delete crawler state from Redis: {e}") from e

    async def close(self):
        await self.redis_client.aclose()


def create_state_store(config) -> Optional[StateStore]:
    """Create the state store selected by a StateConfig; None when disabled."""
    if config.type == 'file':
        return FileStateStore(config.file)
    if config.type == 'redis':
        return RedisStateStore.from_config(config.redis)
    return None
