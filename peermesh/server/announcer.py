"""
Join/leave fan-out so every member converges on the same full mesh.
"""
import asyncio
import logging
from typing import FrozenSet, Iterable, Optional

from websockets.exceptions import ConnectionClosed

from peermesh import protocol
from peermesh.server.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class MeshAnnouncer:

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def announce_join(self, new_id: str,
                            roster: Optional[FrozenSet[str]] = None) -> frozenset:
        """Send the newcomer its roster, then tell everyone in it.

        Roster and broadcast share one snapshot, so of any two members exactly
        one sees the other in its roster: the one that registered later.
        Callers that await between ``register`` and this call must take the
        snapshot right after registering and pass it as ``roster``.
        """
        others = roster if roster is not None else self.registry.list_others(new_id)
        channel = self.registry.resolve(new_id)
        if channel is not None:
            await self._send(channel, protocol.peers(others), new_id)
        await self.broadcast(protocol.new_peer(new_id), others)
        logger.info("[JOIN] '%s' joined. Roster: %d, total: %d",
                    new_id, len(others), len(self.registry))
        return others

    async def announce_leave(self, peer_id: str) -> frozenset:
        remaining = self.registry.list_others(peer_id)
        await self.broadcast(protocol.peer_disconnected(peer_id), remaining)
        logger.info("[LEAVE] '%s' left. Remaining: %d", peer_id, len(remaining))
        return remaining

    async def announce_stream_ready(self, peer_id: str) -> frozenset:
        targets = self.registry.list_others(peer_id)
        await self.broadcast(protocol.peer_stream_ready(peer_id), targets)
        logger.info("[STREAM] '%s' stream ready", peer_id)
        return targets

    async def broadcast(self, frame: str, targets: Iterable[str]):
        """Fire-and-forget send of one frame to each target still registered."""
        sends = []
        for peer_id in targets:
            channel = self.registry.resolve(peer_id)
            if channel is not None:
                sends.append(self._send(channel, frame, peer_id))
        if sends:
            await asyncio.gather(*sends)

    async def _send(self, channel, frame: str, peer_id: str):
        try:
            await channel.send(frame)
        except ConnectionClosed:
            logger.debug("[DROP] broadcast to '%s': channel closed", peer_id)
