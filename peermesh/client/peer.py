"""
Per-remote-peer negotiation record kept by the orchestrator.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, List, Optional


class PeerRole(enum.Enum):
    """Who sends the offer. The newer member always initiates."""
    INITIATOR = "initiator"
    RESPONDER = "responder"


class PeerState(enum.Enum):
    UNKNOWN = "unknown"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(eq=False)
class PeerRecord:
    """One remote participant as seen from the local client.

    ``role`` is fixed when the record is created.
    """

    remote_id: str
    role: PeerRole
    link: Any = None
    state: PeerState = PeerState.UNKNOWN
    link_connected: bool = False
    streams: List[Any] = field(default_factory=list)
    # remote candidates held until the remote description is applied
    remote_description_set: bool = False
    pending_remote_candidates: List[dict] = field(default_factory=list)
    # local candidates held until our offer/answer is on the wire
    local_description_sent: bool = False
    pending_local_candidates: List[dict] = field(default_factory=list)
    error: Optional[BaseException] = None

    def __setattr__(self, name, value):
        if name == "role" and "role" in self.__dict__:
            raise AttributeError(f"role of peer '{self.remote_id}' is already {self.role.value}")
        super().__setattr__(name, value)

    @property
    def is_initiator(self) -> bool:
        return self.role is PeerRole.INITIATOR

    @property
    def is_open(self) -> bool:
        return self.state in (PeerState.NEGOTIATING, PeerState.CONNECTED)
