"""
Connection registry: server-assigned session ids mapped to open channels.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Owns the id -> channel map for every open signaling connection.

    Mutations are serialized by a lock; reads return a snapshot and never
    block. An id stays in the registry exactly as long as its channel is open.
    """

    def __init__(self):
        self._channels: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def register(self, channel) -> str:
        """Allocate a fresh id for a newly opened channel."""
        async with self._lock:
            peer_id = uuid.uuid4().hex
            while peer_id in self._channels:
                peer_id = uuid.uuid4().hex
            self._channels[peer_id] = channel
        logger.debug("[REGISTRY] %s registered. Total: %d", peer_id, len(self._channels))
        return peer_id

    async def unregister(self, peer_id: str) -> bool:
        """Drop an entry. Unknown ids are ignored (duplicate disconnects)."""
        async with self._lock:
            removed = self._channels.pop(peer_id, None) is not None
        if removed:
            logger.debug("[REGISTRY] %s removed. Total: %d", peer_id, len(self._channels))
        return removed

    def resolve(self, peer_id: str) -> Optional[Any]:
        return self._channels.get(peer_id)

    def list_others(self, excluding: Optional[str] = None) -> FrozenSet[str]:
        """Snapshot of every registered id except ``excluding``."""
        return frozenset(pid for pid in self._channels if pid != excluding)

    def __contains__(self, peer_id) -> bool:
        return peer_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)
