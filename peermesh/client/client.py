#!/usr/bin/env python3
"""Mesh client: joins the signaling server and connects to every other member."""
import argparse
import asyncio
import logging
import sys

import websockets
from websockets.exceptions import ConnectionClosed

from peermesh import protocol
from peermesh.client import events
from peermesh.client.media import MediaEngine
from peermesh.client.orchestrator import PeerOrchestrator
from peermesh.config import ClientConfig
from peermesh.errors import MediaAccessError, ProtocolError
from peermesh.log import setup_logging

logger = logging.getLogger(__name__)


def to_event(msg: dict):
    """Translate one server frame into an orchestrator event, or None."""
    t = msg.get("event")
    if t == protocol.PEERS:
        return events.RosterReceived(tuple(msg.get("peers") or ()))
    if t == protocol.NEW_PEER:
        return events.PeerJoined(msg.get("peer"))
    if t == protocol.PEER_DISCONNECTED:
        return events.PeerLeft(msg.get("peer"))
    if t == protocol.SIGNAL:
        if msg.get("type") == protocol.OFFER:
            return events.OfferReceived(msg.get("from"), msg.get("data"))
        if msg.get("type") == protocol.ANSWER:
            return events.AnswerReceived(msg.get("from"), msg.get("data"))
        logger.warning("[SIG] unknown signal type %r from '%s'", msg.get("type"), msg.get("from"))
        return None
    if t == protocol.ICE_CANDIDATE:
        return events.RemoteCandidate(msg.get("from"), msg.get("candidate"))
    if t == protocol.PEER_STREAM_READY:
        logger.info("[SIG] peer '%s' is streaming", msg.get("peer"))
        return None
    logger.warning("[SIG] unknown event %r", t)
    return None


class MeshClient:

    def __init__(self, config: ClientConfig, engine: MediaEngine, on_stream=None):
        self.config = config
        self.engine = engine
        self.ws = None
        self.peer_id = None
        self.orchestrator = PeerOrchestrator(engine, self._ws_send, on_stream=on_stream)

    async def run(self) -> int:
        """Join the mesh and serve until the channel closes. Returns an exit status."""
        try:
            await self.orchestrator.start()
        except MediaAccessError:
            return 1

        try:
            async with websockets.connect(self.config.server_url) as ws:
                self.ws = ws
                await self.handshake()
                await self._ws_send(protocol.stream_ready())
                await self.ws_loop()
        except ConnectionClosed:
            logger.info("[SIG] signaling channel closed")
        except ProtocolError as e:
            logger.error("[SIG] %s", e)
            return 1
        finally:
            await self.close()
        return 0

    async def handshake(self):
        msg = protocol.decode(await self.ws.recv())
        if msg["event"] != protocol.WELCOME or not msg.get("id"):
            raise ProtocolError("expected welcome from server", {"got": msg["event"]})
        self.peer_id = msg["id"]
        self.orchestrator.local_id = self.peer_id
        logger.info("[SIG] joined mesh as '%s'", self.peer_id)

    async def ws_loop(self):
        async for raw in self.ws:
            try:
                msg = protocol.decode(raw)
            except ProtocolError as e:
                logger.warning("[SIG] bad frame from server: %s", e)
                continue
            event = to_event(msg)
            if event is not None:
                # one slow negotiation must not hold up frames for other peers
                self.orchestrator.dispatch(event)

    async def stop(self):
        """Leave the session; run() returns once the channel is down."""
        if self.ws is not None:
            await self.ws.close()

    async def close(self):
        """Local teardown: close every peer connection, then the channel."""
        await self.orchestrator.handle(events.Teardown())
        self.engine.shutdown()
        if self.ws is not None:
            await self.ws.close()
            self.ws = None

    async def _ws_send(self, frame: str):
        if self.ws is None:
            return
        try:
            await self.ws.send(frame)
        except ConnectionClosed:
            logger.debug("[SIG] channel closed, frame dropped")


def parse_args(argv=None) -> ClientConfig:
    config = ClientConfig()
    ap = argparse.ArgumentParser(description="Full-mesh WebRTC client")
    ap.add_argument("--server", default=config.server_url, help="WS signaling URL")
    ap.add_argument("--no-camera", action="store_true", help="send a test pattern instead of the camera")
    ap.add_argument("--no-mic", action="store_true", help="send a test tone instead of the microphone")
    ap.add_argument("--stun", action="append", help="STUN server, e.g. stun://host:port")
    ap.add_argument("--log-level", default=config.log_level)
    args = ap.parse_args(argv)
    config.server_url = args.server
    config.use_camera = config.use_camera and not args.no_camera
    config.use_mic = config.use_mic and not args.no_mic
    if args.stun:
        config.stun_servers = args.stun
    config.log_level = args.log_level
    return config


def main(argv=None):
    config = parse_args(argv)
    setup_logging(config.log_level)
    from peermesh.client.gst_media import GstMediaEngine

    engine = GstMediaEngine(config.stun_servers, config.use_camera, config.use_mic)
    client = MeshClient(config, engine)
    try:
        status = asyncio.run(client.run())
    except KeyboardInterrupt:
        status = 0
    sys.exit(status)


if __name__ == "__main__":
    main()
