"""
Exception classes for peermesh.
"""


class MeshError(Exception):
    """Base exception for peermesh."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{super().__str__()} - {self.details}"
        return super().__str__()


class ProtocolError(MeshError):
    """Raised when a signaling frame can't be parsed."""
    pass


class MediaAccessError(MeshError):
    """Raised when the local camera or microphone can't be opened."""
    pass


class NegotiationError(MeshError):
    """Raised when the media engine rejects a description or candidate."""
    pass
