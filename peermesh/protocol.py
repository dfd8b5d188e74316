"""Wire vocabulary of the signaling channel.

Every websocket frame is a JSON object carrying an ``event`` key. The relay
never looks inside ``data`` or ``candidate`` payloads.
"""
import json

from peermesh.errors import ProtocolError

# client -> server
SIGNAL = "signal"
ICE_CANDIDATE = "ice-candidate"
STREAM_READY = "stream-ready"

# server -> client
WELCOME = "welcome"
PEERS = "peers"
NEW_PEER = "new-peer"
PEER_DISCONNECTED = "peer-disconnected"
PEER_STREAM_READY = "peer-stream-ready"

OFFER = "offer"
ANSWER = "answer"

INBOUND_EVENTS = frozenset((SIGNAL, ICE_CANDIDATE, STREAM_READY))


def encode(event, **fields):
    msg = {"event": event}
    msg.update(fields)
    return json.dumps(msg)


def decode(raw):
    """Parse one frame into a dict, raising ProtocolError if it isn't an event."""
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError("frame is not valid JSON", {"error": str(e)}) from e
    if not isinstance(msg, dict) or not isinstance(msg.get("event"), str):
        raise ProtocolError("frame has no event name", {"frame": str(raw)[:100]})
    return msg


def welcome(peer_id):
    return encode(WELCOME, id=peer_id)


def peers(peer_ids):
    return encode(PEERS, peers=sorted(peer_ids))


def new_peer(peer_id):
    return encode(NEW_PEER, peer=peer_id)


def peer_disconnected(peer_id):
    return encode(PEER_DISCONNECTED, peer=peer_id)


def peer_stream_ready(peer_id):
    return encode(PEER_STREAM_READY, peer=peer_id)


def signal(to, kind, data):
    return encode(SIGNAL, to=to, type=kind, data=data)


def ice_candidate(to, candidate):
    return encode(ICE_CANDIDATE, to=to, candidate=candidate)


def stream_ready():
    return encode(STREAM_READY)
