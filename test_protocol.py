"""Wire frames, frame-to-event translation and configuration."""
import json

import pytest

from peermesh import protocol
from peermesh.client import events
from peermesh.client.client import parse_args, to_event
from peermesh.config import DEFAULT_STUN_SERVERS, ClientConfig, ServerConfig
from peermesh.errors import ProtocolError


def test_outbound_frames():
    assert json.loads(protocol.peers({"b", "a"})) == {"event": "peers", "peers": ["a", "b"]}
    assert json.loads(protocol.new_peer("x")) == {"event": "new-peer", "peer": "x"}
    assert json.loads(protocol.signal("x", "offer", {"sdp": "v=0"})) == {
        "event": "signal", "to": "x", "type": "offer", "data": {"sdp": "v=0"}}
    assert json.loads(protocol.stream_ready()) == {"event": "stream-ready"}


@pytest.mark.parametrize("raw", ["", "{", "[]", "42", '{"type": "offer"}', '{"event": 7}', None])
def test_decode_rejects_non_events(raw):
    with pytest.raises(ProtocolError):
        protocol.decode(raw)


def test_protocol_error_carries_details():
    with pytest.raises(ProtocolError) as exc:
        protocol.decode("{")
    assert "error" in exc.value.details
    assert "frame is not valid JSON" in str(exc.value)


def test_to_event_maps_server_frames():
    assert to_event({"event": "peers", "peers": ["a", "b"]}) == events.RosterReceived(("a", "b"))
    assert to_event({"event": "peers"}) == events.RosterReceived(())
    assert to_event({"event": "new-peer", "peer": "c"}) == events.PeerJoined("c")
    assert to_event({"event": "peer-disconnected", "peer": "c"}) == events.PeerLeft("c")
    assert to_event({"event": "signal", "from": "c", "type": "offer", "data": 1}) == \
        events.OfferReceived("c", 1)
    assert to_event({"event": "signal", "from": "c", "type": "answer", "data": 2}) == \
        events.AnswerReceived("c", 2)
    assert to_event({"event": "ice-candidate", "from": "c", "candidate": 3}) == \
        events.RemoteCandidate("c", 3)


def test_to_event_ignores_informational_and_unknown_frames():
    assert to_event({"event": "peer-stream-ready", "peer": "c"}) is None
    assert to_event({"event": "signal", "from": "c", "type": "pranswer"}) is None
    assert to_event({"event": "mystery"}) is None


def test_server_config_reads_environment(monkeypatch):
    monkeypatch.setenv("PEERMESH_PORT", "9000")
    monkeypatch.setenv("PEERMESH_CERTFILE", "/tmp/cert.pem")
    config = ServerConfig()

    assert config.port == 9000
    assert config.host == "0.0.0.0"
    assert not config.use_tls
    assert config.scheme == "ws"

    monkeypatch.setenv("PEERMESH_KEYFILE", "/tmp/key.pem")
    assert ServerConfig().scheme == "wss"


def test_client_config_defaults_and_environment(monkeypatch):
    assert ClientConfig().stun_servers == DEFAULT_STUN_SERVERS

    monkeypatch.setenv("PEERMESH_STUN_SERVERS", "stun://one:1, stun://two:2")
    monkeypatch.setenv("PEERMESH_USE_CAMERA", "false")
    config = ClientConfig()

    assert config.stun_servers == ["stun://one:1", "stun://two:2"]
    assert config.use_camera is False
    assert config.use_mic is True


def test_explicit_values_win_over_environment(monkeypatch):
    monkeypatch.setenv("PEERMESH_PORT", "9000")
    monkeypatch.setenv("PEERMESH_HOST", "10.1.1.1")
    monkeypatch.setenv("PEERMESH_SERVER_URL", "ws://from-env:1")
    monkeypatch.setenv("PEERMESH_STUN_SERVERS", "stun://env:1")
    monkeypatch.setenv("PEERMESH_USE_MIC", "false")

    server = ServerConfig(port=7000)
    assert server.port == 7000
    assert server.host == "10.1.1.1"

    client = ClientConfig(server_url="ws://explicit:2", stun_servers=["stun://mine:3"])
    assert client.server_url == "ws://explicit:2"
    assert client.stun_servers == ["stun://mine:3"]
    assert client.use_mic is False


def test_client_flags_override_config():
    config = parse_args(["--server", "ws://example:1", "--no-mic",
                         "--stun", "stun://a:1", "--stun", "stun://b:2"])

    assert config.server_url == "ws://example:1"
    assert config.use_mic is False
    assert config.use_camera is True
    assert config.stun_servers == ["stun://a:1", "stun://b:2"]
