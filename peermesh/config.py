"""
Configuration for the signaling server and the mesh client.

PEERMESH_* environment variables fill in fields left at their defaults;
values passed to the constructor win over the environment, and the command
line entry points override both with their flags.
"""
import os
from dataclasses import MISSING, dataclass, field, fields
from typing import List, Optional

DEFAULT_STUN_SERVERS = [
    "stun://stun.l.google.com:19302",
    "stun://stun1.l.google.com:19302",
]


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_list(value: str) -> List[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def _apply_env(config, env):
    """Set each field named in ``env`` from its variable, if the field is still at its default.

    ``env`` maps field name -> (variable name, parser). An explicit value that
    happens to equal the default is indistinguishable from the default.
    """
    for f in fields(config):
        if f.name not in env:
            continue
        var, parse = env[f.name]
        raw = os.environ.get(var)
        if not raw:
            continue
        default = f.default_factory() if f.default_factory is not MISSING else f.default
        if getattr(config, f.name) != default:
            continue
        setattr(config, f.name, parse(raw))


@dataclass
class ServerConfig:
    """Signaling server settings."""

    host: str = "0.0.0.0"
    port: int = 8765
    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self):
        _apply_env(self, {
            "host": ("PEERMESH_HOST", str),
            "port": ("PEERMESH_PORT", int),
            "certfile": ("PEERMESH_CERTFILE", str),
            "keyfile": ("PEERMESH_KEYFILE", str),
            "log_level": ("PEERMESH_LOG_LEVEL", str),
        })

    @property
    def use_tls(self) -> bool:
        return bool(self.certfile and self.keyfile)

    @property
    def scheme(self) -> str:
        return "wss" if self.use_tls else "ws"

    def __str__(self) -> str:
        return f"ServerConfig({self.scheme}://{self.host}:{self.port})"


@dataclass
class ClientConfig:
    """Mesh client settings."""

    server_url: str = "ws://localhost:8765"
    stun_servers: List[str] = field(default_factory=lambda: list(DEFAULT_STUN_SERVERS))
    use_camera: bool = True
    use_mic: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        _apply_env(self, {
            "server_url": ("PEERMESH_SERVER_URL", str),
            "stun_servers": ("PEERMESH_STUN_SERVERS", _parse_list),
            "use_camera": ("PEERMESH_USE_CAMERA", _parse_bool),
            "use_mic": ("PEERMESH_USE_MIC", _parse_bool),
            "log_level": ("PEERMESH_LOG_LEVEL", str),
        })
