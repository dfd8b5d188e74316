"""Shared fakes: in-memory channels for the server, a scripted media engine for the client."""
import asyncio
import json

from websockets.exceptions import ConnectionClosedOK

from peermesh.client import events
from peermesh.client.media import LINK_CONNECTED, MediaEngine, MediaLink
from peermesh.errors import MediaAccessError, NegotiationError


class FakeChannel:
    """Stands in for a server-side websocket connection."""

    def __init__(self, name="chan"):
        self.name = name
        self.sent = []
        self.closed = False

    async def send(self, frame):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(frame))

    def events(self, name=None):
        return [m for m in self.sent if name is None or m["event"] == name]


class FakeLink(MediaLink):
    """Scripted MediaLink. Reports connected + a stream once both descriptions are set."""

    def __init__(self, remote_id, emit, fail_on=(), auto_connect=True, gate=None):
        self.remote_id = remote_id
        self.emit = emit
        self.fail_on = set(fail_on)
        self.auto_connect = auto_connect
        self.calls = []
        self.local = None
        self.remote = None
        self.candidates = []
        self.closed = False
        # accept_offer blocks until this asyncio.Event is set
        self.gate = gate

    async def create_offer(self):
        self.calls.append("create_offer")
        if "offer" in self.fail_on:
            raise NegotiationError("offer refused")
        self.local = {"type": "offer", "sdp": f"v=0 offer-to-{self.remote_id}"}
        self._gather()
        return self.local

    async def accept_offer(self, offer):
        self.calls.append("accept_offer")
        if self.gate is not None:
            await self.gate.wait()
        if "accept" in self.fail_on or not isinstance(offer, dict) or offer.get("type") != "offer":
            raise NegotiationError("bad offer", {"offer": offer})
        self.remote = offer
        self.local = {"type": "answer", "sdp": f"v=0 answer-to-{self.remote_id}"}
        self._gather()
        self._maybe_up()
        return self.local

    async def apply_answer(self, answer):
        self.calls.append("apply_answer")
        if "answer" in self.fail_on or not isinstance(answer, dict) or answer.get("type") != "answer":
            raise NegotiationError("bad answer", {"answer": answer})
        self.remote = answer
        self._maybe_up()

    async def add_candidate(self, candidate):
        self.calls.append("add_candidate")
        if "candidate" in self.fail_on:
            raise NegotiationError("bad candidate")
        self.candidates.append(candidate)

    def close(self):
        self.closed = True

    def _gather(self):
        self.emit(events.LocalCandidate(self.remote_id, {
            "candidate": f"candidate:1 1 udp 1 10.0.0.1 5000 typ host for {self.remote_id}",
            "sdpMLineIndex": 0,
        }))

    def _maybe_up(self):
        if self.auto_connect and self.local and self.remote:
            self.emit(events.LinkStateChanged(self.remote_id, LINK_CONNECTED))
            self.emit(events.RemoteStreamAdded(self.remote_id, f"stream-from-{self.remote_id}"))


class FakeEngine(MediaEngine):

    def __init__(self, deny=False, fail_on=(), auto_connect=True, gates=None):
        self.deny = deny
        self.fail_on = fail_on
        self.auto_connect = auto_connect
        self.gates = gates or {}
        self.links = {}
        self.created = []
        self.shut_down = False

    async def acquire_local_media(self):
        if self.deny:
            raise MediaAccessError("permission denied")
        return "local-media"

    def create_link(self, remote_id, emit):
        link = FakeLink(remote_id, emit, self.fail_on, self.auto_connect,
                        gate=self.gates.get(remote_id))
        self.links[remote_id] = link
        self.created.append(remote_id)
        return link

    def shutdown(self):
        self.shut_down = True


async def wait_for(predicate, timeout=5.0):
    """Poll until predicate() is truthy."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
