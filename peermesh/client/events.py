"""
Events consumed by PeerOrchestrator.handle(), one transition each.

Signaling events come from the server channel; link events are raised by the
media engine for a single remote peer.
"""
from dataclasses import dataclass
from typing import Any, Tuple


# signaling channel

@dataclass(frozen=True)
class RosterReceived:
    peers: Tuple[str, ...]


@dataclass(frozen=True)
class PeerJoined:
    remote_id: str


@dataclass(frozen=True)
class PeerLeft:
    remote_id: str


@dataclass(frozen=True)
class OfferReceived:
    remote_id: str
    data: Any


@dataclass(frozen=True)
class AnswerReceived:
    remote_id: str
    data: Any


@dataclass(frozen=True)
class RemoteCandidate:
    remote_id: str
    candidate: Any


# media engine

@dataclass(frozen=True)
class LocalCandidate:
    remote_id: str
    candidate: dict


@dataclass(frozen=True)
class LinkStateChanged:
    remote_id: str
    state: str


@dataclass(frozen=True)
class RemoteStreamAdded:
    remote_id: str
    stream: Any


# local

@dataclass(frozen=True)
class Teardown:
    pass
