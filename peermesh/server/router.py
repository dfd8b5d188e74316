"""
Point-to-point relay of negotiation messages between registered peers.
"""
import logging

from websockets.exceptions import ConnectionClosed

from peermesh import protocol
from peermesh.server.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class SignalingRouter:
    """Forwards opaque payloads to one registered id, or drops them."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def forward(self, source_id: str, dest_id, message: dict) -> bool:
        """Deliver ``message`` to ``dest_id`` stamped with ``from: source_id``.

        Returns False when the destination is gone. That's not an error: the
        sender learns about it from the next peer-disconnected broadcast.
        """
        channel = self.registry.resolve(dest_id) if isinstance(dest_id, str) else None
        if channel is None:
            logger.debug("[DROP] %s from '%s': target '%s' not registered",
                         message.get("event"), source_id, dest_id)
            return False

        out = {k: v for k, v in message.items() if k != "to"}
        out["from"] = source_id
        event = out.pop("event")
        try:
            await channel.send(protocol.encode(event, **out))
        except ConnectionClosed:
            logger.debug("[DROP] %s from '%s': target '%s' closed mid-send",
                         event, source_id, dest_id)
            return False
        logger.debug("[RELAY] %s from '%s' to '%s'", event, source_id, dest_id)
        return True
