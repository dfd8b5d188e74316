"""Signaling server: connection registry, router and mesh announcer."""

from .registry import ConnectionRegistry
from .router import SignalingRouter
from .announcer import MeshAnnouncer
from .signaling_server import SignalingServer

__all__ = [
    'ConnectionRegistry',
    'SignalingRouter',
    'MeshAnnouncer',
    'SignalingServer',
]
