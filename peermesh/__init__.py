"""Full-mesh WebRTC signaling: relay server and per-peer negotiating client."""

__version__ = "0.3.0"
