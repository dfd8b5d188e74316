"""Mesh client: per-peer negotiation state machine and its media engine."""

from .peer import PeerRecord, PeerRole, PeerState
from .orchestrator import PeerOrchestrator
from .media import MediaEngine, MediaLink
from .client import MeshClient

__all__ = [
    'PeerRecord',
    'PeerRole',
    'PeerState',
    'PeerOrchestrator',
    'MediaEngine',
    'MediaLink',
    'MeshClient',
]
