"""
GStreamer webrtcbin media engine.

Local camera and microphone are captured once, encoded, and split with a tee;
every remote peer gets its own webrtcbin fed from a branch of each tee.
webrtcbin signals fire on GStreamer streaming threads, so everything that
reaches the orchestrator is handed over with call_soon_threadsafe.
"""
import asyncio
import logging
from typing import Callable, List

import gi
gi.require_version("Gst", "1.0")
gi.require_version("GstSdp", "1.0")
gi.require_version("GstWebRTC", "1.0")
from gi.repository import GLib, Gst, GstSdp, GstWebRTC

from peermesh.client import events
from peermesh.client.media import MediaEngine, MediaLink
from peermesh.errors import MediaAccessError, NegotiationError

logger = logging.getLogger(__name__)

SDP_TYPES = {
    "offer": GstWebRTC.WebRTCSDPType.OFFER,
    "answer": GstWebRTC.WebRTCSDPType.ANSWER,
}

BUS_POLL_INTERVAL = 0.5


class GstMediaEngine(MediaEngine):

    def __init__(self, stun_servers: List[str], use_camera=True, use_mic=True):
        self.stun_servers = stun_servers
        self.use_camera = use_camera
        self.use_mic = use_mic
        self.pipeline = None
        self.loop = None
        self._bus_task = None

    def build_pipeline_description(self) -> str:
        video_src = "autovideosrc" if self.use_camera else "videotestsrc is-live=true pattern=ball"
        audio_src = "autoaudiosrc" if self.use_mic else "audiotestsrc is-live=true"
        return f"""
            {video_src} !
              videoconvert ! queue ! vp8enc deadline=1 ! rtpvp8pay pt=96 !
              application/x-rtp,media=video,encoding-name=VP8,payload=96 !
              tee name=videotee allow-not-linked=true
            {audio_src} !
              audioconvert ! audioresample ! queue ! opusenc ! rtpopuspay pt=111 !
              application/x-rtp,media=audio,encoding-name=OPUS,payload=111 !
              tee name=audiotee allow-not-linked=true
        """

    async def acquire_local_media(self):
        self.loop = asyncio.get_running_loop()
        Gst.init(None)
        try:
            pipeline = Gst.parse_launch(self.build_pipeline_description())
        except GLib.Error as e:
            raise MediaAccessError("could not build capture pipeline", {"error": str(e)}) from e

        ret = pipeline.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            pipeline.set_state(Gst.State.NULL)
            raise MediaAccessError("capture device refused", {
                "camera": self.use_camera,
                "mic": self.use_mic,
            })
        self.pipeline = pipeline
        self._bus_task = asyncio.ensure_future(self.watch_bus())
        logger.info("[GST] local media capture started")
        return pipeline

    def create_link(self, remote_id: str, emit: Callable) -> MediaLink:
        if self.pipeline is None:
            raise MediaAccessError("local media not acquired")
        return GstMediaLink(self.pipeline, remote_id, self.stun_servers, emit, self.loop)

    async def watch_bus(self):
        """Log pipeline errors and state changes; there's no GLib main loop to do it."""
        bus = self.pipeline.get_bus()
        mask = Gst.MessageType.ERROR | Gst.MessageType.EOS | Gst.MessageType.STATE_CHANGED
        while self.pipeline is not None:
            msg = bus.timed_pop_filtered(0, mask)
            if msg is None:
                await asyncio.sleep(BUS_POLL_INTERVAL)
                continue
            self.on_bus_message(msg)

    def on_bus_message(self, msg):
        t = msg.type
        if t == Gst.MessageType.ERROR:
            err, dbg = msg.parse_error()
            logger.error("[GST] %s %s", err, dbg)
        elif t == Gst.MessageType.EOS:
            logger.info("[GST] End-of-Stream")
        elif t == Gst.MessageType.STATE_CHANGED:
            if msg.src == self.pipeline:
                old, new, pending = msg.parse_state_changed()
                logger.debug("[GST] Pipeline state: %s -> %s", old.value_nick, new.value_nick)

    def shutdown(self):
        if self._bus_task is not None:
            self._bus_task.cancel()
            self._bus_task = None
        if self.pipeline is not None:
            self.pipeline.set_state(Gst.State.NULL)
            self.pipeline = None


class GstMediaLink(MediaLink):
    """One webrtcbin inside the shared pipeline, talking to one remote peer."""

    def __init__(self, pipeline, remote_id, stun_servers, emit, loop):
        self.pipeline = pipeline
        self.remote_id = remote_id
        self.emit = emit
        self.loop = loop
        self._branches = []
        self._sinks = []

        self.webrtc = Gst.ElementFactory.make("webrtcbin", f"webrtc-{remote_id}")
        self.webrtc.set_property("bundle-policy", GstWebRTC.WebRTCBundlePolicy.MAX_BUNDLE)
        if stun_servers:
            # webrtcbin takes a single STUN server
            self.webrtc.set_property("stun-server", stun_servers[0])

        self.webrtc.connect("on-ice-candidate", self.on_ice_candidate)
        self.webrtc.connect("pad-added", self.on_incoming_stream)
        self.webrtc.connect("notify::connection-state", self.on_connection_state)

        pipeline.add(self.webrtc)
        for tee_name in ("videotee", "audiotee"):
            tee = pipeline.get_by_name(tee_name)
            q = Gst.ElementFactory.make("queue")
            pipeline.add(q)
            tee_pad = tee.request_pad_simple("src_%u")
            tee_pad.link(q.get_static_pad("sink"))
            q.link(self.webrtc)
            self._branches.append((tee, tee_pad, q))
        for _, _, q in self._branches:
            q.sync_state_with_parent()
        self.webrtc.sync_state_with_parent()

    # ---------- SDP/ICE ----------
    async def create_offer(self) -> dict:
        reply = await self._call("create-offer", None)
        offer = reply.get_value("offer")
        await self._call("set-local-description", offer)
        return {"type": "offer", "sdp": offer.sdp.as_text()}

    async def accept_offer(self, offer: dict) -> dict:
        await self._set_remote_description(offer, "offer")
        reply = await self._call("create-answer", None)
        answer = reply.get_value("answer")
        await self._call("set-local-description", answer)
        return {"type": "answer", "sdp": answer.sdp.as_text()}

    async def apply_answer(self, answer: dict):
        await self._set_remote_description(answer, "answer")

    async def add_candidate(self, candidate: dict):
        try:
            mline = int(candidate.get("sdpMLineIndex") or 0)
            text = candidate["candidate"]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise NegotiationError("malformed ICE candidate", {"candidate": candidate}) from e
        self.webrtc.emit("add-ice-candidate", mline, text)

    async def _set_remote_description(self, description: dict, expected: str):
        try:
            sdp_text = description["sdp"]
        except (KeyError, TypeError) as e:
            raise NegotiationError(f"malformed {expected}", {"peer": self.remote_id}) from e
        res, sdpmsg = GstSdp.SDPMessage.new_from_text(sdp_text)
        if res != GstSdp.SDPResult.OK:
            raise NegotiationError(f"unparseable {expected} SDP", {"peer": self.remote_id})
        desc = GstWebRTC.WebRTCSessionDescription.new(SDP_TYPES[expected], sdpmsg)
        await self._call("set-remote-description", desc)

    def _call(self, action, arg):
        """Emit a promise-based webrtcbin action and await its reply."""
        future = self.loop.create_future()

        def on_reply(promise, *_):
            reply = promise.get_reply()
            self.loop.call_soon_threadsafe(self._resolve, future, action, reply)

        promise = Gst.Promise.new_with_change_func(on_reply, None, None)
        self.webrtc.emit(action, arg, promise)
        return future

    def _resolve(self, future, action, reply):
        if future.done():
            return
        if reply is not None and reply.has_field("error"):
            future.set_exception(NegotiationError(f"{action} failed", {
                "peer": self.remote_id,
                "error": str(reply.get_value("error")),
            }))
        else:
            future.set_result(reply)

    # ---------- webrtcbin callbacks (streaming threads) ----------
    def on_ice_candidate(self, webrtc, mlineindex, candidate):
        self._post(events.LocalCandidate(self.remote_id, {
            "candidate": candidate,
            "sdpMLineIndex": int(mlineindex),
        }))

    def on_connection_state(self, webrtc, pspec):
        state = webrtc.get_property("connection-state")
        self._post(events.LinkStateChanged(self.remote_id, state.value_nick))

    def on_incoming_stream(self, webrtc, pad):
        """Decode and render a new inbound stream, then report it."""
        if pad.get_direction() != Gst.PadDirection.SRC:
            return
        caps = pad.get_current_caps()
        s = caps.to_string() if caps else ""
        logger.info("[WEBRTC] Incoming stream caps from '%s': %s", self.remote_id, s)

        if "video" in s:
            names = ("queue", "rtpvp8depay", "vp8dec", "videoconvert", "autovideosink")
        elif "audio" in s:
            names = ("queue", "rtpopusdepay", "opusdec", "audioconvert", "audioresample", "autoaudiosink")
        else:
            return
        chain = [Gst.ElementFactory.make(n) for n in names]
        for e in chain:
            self.pipeline.add(e)
        for e in chain:
            e.sync_state_with_parent()
        pad.link(chain[0].get_static_pad("sink"))
        Gst.Element.link_many(*chain)
        self._sinks.extend(chain)
        self._post(events.RemoteStreamAdded(self.remote_id, pad))

    def _post(self, event):
        self.loop.call_soon_threadsafe(self.emit, event)

    def close(self):
        self.webrtc.set_state(Gst.State.NULL)
        for tee, tee_pad, q in self._branches:
            tee_pad.unlink(q.get_static_pad("sink"))
            tee.release_request_pad(tee_pad)
            q.set_state(Gst.State.NULL)
            self.pipeline.remove(q)
        for e in self._sinks:
            e.set_state(Gst.State.NULL)
            self.pipeline.remove(e)
        self.pipeline.remove(self.webrtc)
        self._branches = []
        self._sinks = []
        logger.info("[WEBRTC] closed link to '%s'", self.remote_id)
