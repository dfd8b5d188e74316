"""
Client-side peer connection orchestrator.

One instance per connected client. It keeps a PeerRecord for every remote id
it knows about and moves each through UNKNOWN -> NEGOTIATING -> CONNECTED ->
CLOSED, driven by events. ``handle`` applies one event inline; ``dispatch``
runs it as a task queued behind earlier events for the same peer.

Roles come from join order: ids in the initial roster were here first, so we
offer to them; ids announced later offer to us. Nothing else breaks ties.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from peermesh import protocol
from peermesh.client import events
from peermesh.client.media import LINK_CONNECTED, MediaEngine
from peermesh.client.peer import PeerRecord, PeerRole, PeerState
from peermesh.errors import MediaAccessError

logger = logging.getLogger(__name__)

Sender = Callable[[str], Awaitable[Any]]
StreamCallback = Callable[[str, Any], Any]


class PeerOrchestrator:

    def __init__(self, engine: MediaEngine, send: Sender,
                 on_stream: Optional[StreamCallback] = None,
                 local_id: Optional[str] = None):
        self.engine = engine
        self.send = send
        self.on_stream = on_stream
        self.local_id = local_id
        self.records: Dict[str, PeerRecord] = {}
        self.local_media = None
        self.media_error: Optional[MediaAccessError] = None
        self.closed = False
        self._tasks = set()
        # last queued task per remote id
        self._tails: Dict[str, asyncio.Future] = {}
        self._handlers = {
            events.RosterReceived: self._on_roster,
            events.PeerJoined: self._on_peer_joined,
            events.PeerLeft: self._on_peer_left,
            events.OfferReceived: self._on_offer,
            events.AnswerReceived: self._on_answer,
            events.RemoteCandidate: self._on_remote_candidate,
            events.LocalCandidate: self._on_local_candidate,
            events.LinkStateChanged: self._on_link_state,
            events.RemoteStreamAdded: self._on_remote_stream,
            events.Teardown: self._on_teardown,
        }

    async def start(self):
        """Open local media. A refusal is final: no peer will ever negotiate."""
        try:
            self.local_media = await self.engine.acquire_local_media()
        except MediaAccessError as e:
            self.media_error = e
            logger.error("[MEDIA] could not access camera or microphone: %s", e)
            raise
        return self.local_media

    async def handle(self, event):
        """Apply one event. Events after teardown are ignored."""
        if self.closed:
            logger.debug("[SIG] ignoring %s after teardown", type(event).__name__)
            return
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"unsupported event {event!r}")
        await handler(event)

    def state_of(self, remote_id: str) -> PeerState:
        record = self.records.get(remote_id)
        return record.state if record else PeerState.UNKNOWN

    # ---------- record lifecycle ----------

    def _create_record(self, remote_id, role: PeerRole) -> Optional[PeerRecord]:
        """Create a record unless one exists. Never awaits, so it can't race."""
        if not isinstance(remote_id, str) or not remote_id or remote_id == self.local_id:
            logger.warning("[SIG] ignoring invalid peer id %r", remote_id)
            return None
        if remote_id in self.records:
            logger.debug("[SIG] peer '%s' already known, not creating another", remote_id)
            return None
        if self.local_media is None:
            logger.warning("[SIG] no local media, not negotiating with '%s'", remote_id)
            return None

        record = PeerRecord(remote_id=remote_id, role=role)
        self.records[remote_id] = record
        try:
            record.link = self.engine.create_link(remote_id, self._emit)
        except Exception as e:
            record.error = e
            logger.warning("[WEBRTC] could not create link to '%s': %s", remote_id, e)
            return record
        record.state = PeerState.NEGOTIATING
        logger.info("[SIG] peer '%s' negotiating as %s", remote_id, role.value)
        return record

    async def _start_initiator(self, remote_id):
        record = self._create_record(remote_id, PeerRole.INITIATOR)
        if record is None or record.state is not PeerState.NEGOTIATING:
            return
        try:
            offer = await record.link.create_offer()
        except Exception as e:
            self._stuck(record, "creating offer", e)
            return
        await self._send_description(record, protocol.OFFER, offer)

    def _close_record(self, record: PeerRecord):
        record.state = PeerState.CLOSED
        record.pending_remote_candidates.clear()
        record.pending_local_candidates.clear()
        if record.link is not None:
            try:
                record.link.close()
            except Exception as e:
                logger.warning("[WEBRTC] error closing link to '%s': %s", record.remote_id, e)

    def _stuck(self, record: PeerRecord, what: str, error: BaseException):
        # no retry and no timeout: the record stays NEGOTIATING until peer-left or teardown
        record.error = error
        logger.warning("[WEBRTC] error %s for '%s': %s", what, record.remote_id, error)

    def dispatch(self, event) -> asyncio.Future:
        """Run ``event`` as a task, after earlier events for the same peer.

        Events for different peers never wait on each other.
        """
        key = getattr(event, "remote_id", None)
        previous = self._tails.get(key) if key is not None else None
        task = asyncio.ensure_future(self._handle_after(previous, event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        if key is not None:
            self._tails[key] = task
            task.add_done_callback(lambda t, k=key: self._forget_tail(k, t))
        return task

    async def _handle_after(self, previous, event):
        if previous is not None:
            await asyncio.wait([previous])
        await self.handle(event)

    def _forget_tail(self, key, task):
        if self._tails.get(key) is task:
            del self._tails[key]

    def _emit(self, event):
        self.dispatch(event)

    # ---------- signaling events ----------

    async def _on_roster(self, event: events.RosterReceived):
        logger.info("[SIG] roster: %d peer(s)", len(event.peers))
        await asyncio.gather(*(self._start_initiator(pid) for pid in event.peers))

    async def _on_peer_joined(self, event: events.PeerJoined):
        logger.info("[SIG] new peer '%s'", event.remote_id)
        self._create_record(event.remote_id, PeerRole.RESPONDER)

    async def _on_peer_left(self, event: events.PeerLeft):
        record = self.records.pop(event.remote_id, None)
        if record is None:
            return
        self._close_record(record)
        logger.info("[SIG] peer '%s' left, connection closed", event.remote_id)

    async def _on_offer(self, event: events.OfferReceived):
        record = self.records.get(event.remote_id)
        if record is None:
            # offer overtook the new-peer announcement
            record = self._create_record(event.remote_id, PeerRole.RESPONDER)
            if record is None:
                return
        if record.is_initiator:
            logger.warning("[SIG] unexpected offer from '%s', we are the initiator", event.remote_id)
            return
        if record.state is not PeerState.NEGOTIATING:
            logger.debug("[SIG] offer from '%s' ignored in state %s", event.remote_id, record.state.value)
            return
        logger.info("[SIG] offer received from '%s'", event.remote_id)
        try:
            answer = await record.link.accept_offer(event.data)
        except Exception as e:
            self._stuck(record, "handling offer", e)
            return
        await self._flush_remote_candidates(record)
        await self._send_description(record, protocol.ANSWER, answer)

    async def _on_answer(self, event: events.AnswerReceived):
        record = self.records.get(event.remote_id)
        if record is None:
            logger.warning("[SIG] answer from unknown peer '%s' dropped", event.remote_id)
            return
        if not record.is_initiator or record.remote_description_set:
            logger.warning("[SIG] unexpected answer from '%s' dropped", event.remote_id)
            return
        logger.info("[SIG] answer received from '%s'", event.remote_id)
        try:
            await record.link.apply_answer(event.data)
        except Exception as e:
            self._stuck(record, "handling answer", e)
            return
        await self._flush_remote_candidates(record)

    async def _on_remote_candidate(self, event: events.RemoteCandidate):
        record = self.records.get(event.remote_id)
        if record is None:
            logger.warning("[SIG] ICE candidate from unknown peer '%s' dropped", event.remote_id)
            return
        if not record.is_open:
            return
        if not record.remote_description_set:
            record.pending_remote_candidates.append(event.candidate)
            return
        await self._add_candidate(record, event.candidate)

    # ---------- media engine events ----------

    async def _on_local_candidate(self, event: events.LocalCandidate):
        record = self.records.get(event.remote_id)
        if record is None or not record.is_open:
            return
        if not record.local_description_sent:
            record.pending_local_candidates.append(event.candidate)
            return
        await self.send(protocol.ice_candidate(record.remote_id, event.candidate))

    async def _on_link_state(self, event: events.LinkStateChanged):
        record = self.records.get(event.remote_id)
        if record is None:
            return
        logger.info("[WEBRTC] '%s' connection state: %s", event.remote_id, event.state)
        if event.state == LINK_CONNECTED:
            record.link_connected = True
            self._maybe_connected(record)
        elif record.state is PeerState.CONNECTED:
            logger.warning("[WEBRTC] '%s' link is %s", event.remote_id, event.state)

    async def _on_remote_stream(self, event: events.RemoteStreamAdded):
        record = self.records.get(event.remote_id)
        if record is None or not record.is_open:
            return
        logger.info("[WEBRTC] incoming stream from '%s'", event.remote_id)
        record.streams.append(event.stream)
        self._maybe_connected(record)

    def _maybe_connected(self, record: PeerRecord):
        if record.state is not PeerState.NEGOTIATING:
            return
        if not (record.link_connected and record.streams):
            return
        record.state = PeerState.CONNECTED
        logger.info("[WEBRTC] connected to '%s'", record.remote_id)
        if self.on_stream is not None:
            self.on_stream(record.remote_id, record.streams[0])

    async def _on_teardown(self, event: events.Teardown):
        self.closed = True
        records, self.records = self.records, {}
        for record in records.values():
            self._close_record(record)
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        logger.info("[SIG] teardown: closed %d peer connection(s)", len(records))

    # ---------- helpers ----------

    async def _send_description(self, record: PeerRecord, kind: str, description: dict):
        if not record.is_open:
            return
        await self.send(protocol.signal(record.remote_id, kind, description))
        logger.info("[SIG] %s sent to '%s'", kind, record.remote_id)
        record.local_description_sent = True
        while record.pending_local_candidates and record.is_open:
            candidate = record.pending_local_candidates.pop(0)
            await self.send(protocol.ice_candidate(record.remote_id, candidate))

    async def _flush_remote_candidates(self, record: PeerRecord):
        while record.pending_remote_candidates and record.is_open:
            await self._add_candidate(record, record.pending_remote_candidates.pop(0))
        record.remote_description_set = True

    async def _add_candidate(self, record: PeerRecord, candidate):
        try:
            await record.link.add_candidate(candidate)
        except Exception as e:
            self._stuck(record, "adding ICE candidate", e)
