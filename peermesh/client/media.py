"""
Interface between the orchestrator and the WebRTC media engine.

The orchestrator only ever talks to these two classes, which lets it run
against a fake engine in tests.
"""
import abc
from typing import Callable

# link states reported through LinkStateChanged
LINK_CONNECTED = "connected"
LINK_FAILED = "failed"
LINK_CLOSED = "closed"


class MediaLink(abc.ABC):
    """Media connection to one remote peer.

    Session descriptions are dicts ``{"type": "offer"|"answer", "sdp": text}``
    and candidates are ``{"candidate": text, "sdpMLineIndex": int}``.
    Failures raise NegotiationError.
    """

    @abc.abstractmethod
    async def create_offer(self) -> dict:
        """Create an offer and install it as the local description."""

    @abc.abstractmethod
    async def accept_offer(self, offer: dict) -> dict:
        """Apply a remote offer and return the installed local answer."""

    @abc.abstractmethod
    async def apply_answer(self, answer: dict):
        """Apply the remote answer to our offer."""

    @abc.abstractmethod
    async def add_candidate(self, candidate: dict):
        pass

    @abc.abstractmethod
    def close(self):
        pass


class MediaEngine(abc.ABC):
    """Owns the local camera/microphone and makes one MediaLink per peer."""

    @abc.abstractmethod
    async def acquire_local_media(self):
        """Open local capture. Raises MediaAccessError if it is refused."""

    @abc.abstractmethod
    def create_link(self, remote_id: str, emit: Callable) -> MediaLink:
        """Build a link to ``remote_id``.

        ``emit`` takes LocalCandidate, LinkStateChanged and RemoteStreamAdded
        events and must be called from the event loop thread.
        """

    def shutdown(self):
        pass
