"""
Logging setup shared by the server and client entry points.
"""
import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure console logging and return the package logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    # websockets logs every handshake at INFO
    logging.getLogger("websockets").setLevel(logging.WARNING)
    return logging.getLogger("peermesh")
