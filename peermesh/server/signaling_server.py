#!/usr/bin/env python3
"""Full-mesh signaling server.

Every websocket connection gets a server-assigned id, the roster of everyone
already present, and from then on a relay for offer/answer/ICE messages
addressed to other ids.
"""
import argparse
import asyncio
import http
import logging
import ssl

import websockets
from websockets.exceptions import ConnectionClosed

from peermesh import protocol
from peermesh.config import ServerConfig
from peermesh.errors import ProtocolError
from peermesh.log import setup_logging
from peermesh.server.announcer import MeshAnnouncer
from peermesh.server.registry import ConnectionRegistry
from peermesh.server.router import SignalingRouter

logger = logging.getLogger(__name__)


class SignalingServer:

    def __init__(self, registry: ConnectionRegistry = None):
        self.registry = registry or ConnectionRegistry()
        self.router = SignalingRouter(self.registry)
        self.announcer = MeshAnnouncer(self.registry)

    async def handler(self, ws):
        peer_id = await self.registry.register(ws)
        # no await between register and snapshot, see MeshAnnouncer.announce_join
        roster = self.registry.list_others(peer_id)
        logger.info("[NEW CONNECTION] '%s' from %s", peer_id, getattr(ws, "remote_address", None))
        try:
            await ws.send(protocol.welcome(peer_id))
            await self.announcer.announce_join(peer_id, roster)
            async for raw in ws:
                await self.dispatch(peer_id, raw)
        except ConnectionClosed:
            logger.debug("[DISCONNECT] connection closed for '%s'", peer_id)
        finally:
            if await self.registry.unregister(peer_id):
                await self.announcer.announce_leave(peer_id)

    async def dispatch(self, peer_id: str, raw):
        try:
            msg = protocol.decode(raw)
        except ProtocolError as e:
            logger.warning("[IGNORED] bad frame from '%s': %s", peer_id, e)
            return

        t = msg["event"]
        if t in (protocol.SIGNAL, protocol.ICE_CANDIDATE):
            await self.router.forward(peer_id, msg.get("to"), msg)
        elif t == protocol.STREAM_READY:
            await self.announcer.announce_stream_ready(peer_id)
        else:
            logger.warning("[IGNORED] unknown event '%s' from '%s'", t, peer_id)


def health_check(connection, request):
    """Answer plain HTTP health checks on /health without upgrading."""
    if request.path == "/health":
        return connection.respond(http.HTTPStatus.OK, "OK\n")
    return None


def build_ssl_context(config: ServerConfig):
    if not config.use_tls:
        return None
    ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ssl_context.load_cert_chain(certfile=config.certfile, keyfile=config.keyfile)
    return ssl_context


async def serve(config: ServerConfig, server: SignalingServer = None):
    server = server or SignalingServer()
    logger.info("=" * 50)
    logger.info("Signaling server listening on %s://%s:%d", config.scheme, config.host, config.port)
    logger.info("=" * 50)
    async with websockets.serve(server.handler, config.host, config.port,
                                ssl=build_ssl_context(config),
                                process_request=health_check):
        await asyncio.Future()


def parse_args(argv=None):
    config = ServerConfig()
    ap = argparse.ArgumentParser(description="Full-mesh WebRTC signaling server")
    ap.add_argument("--host", default=config.host, help="interface to bind")
    ap.add_argument("--port", type=int, default=config.port)
    ap.add_argument("--certfile", default=config.certfile, help="TLS certificate, enables wss://")
    ap.add_argument("--keyfile", default=config.keyfile, help="TLS private key")
    ap.add_argument("--log-level", default=config.log_level)
    args = ap.parse_args(argv)
    config.host = args.host
    config.port = args.port
    config.certfile = args.certfile
    config.keyfile = args.keyfile
    config.log_level = args.log_level
    return config


def main(argv=None):
    config = parse_args(argv)
    setup_logging(config.log_level)
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Signaling server stopped")


if __name__ == "__main__":
    main()
