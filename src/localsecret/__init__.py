"""
localsecret - share a secret once over a local http server
"""

__version__ = "0.3.0"

from .logger import create_logger
from .counters import AbuseCounter, AbuseOutcome, Session, UseCounter, UseOutcome
from .orchestrator import ShutdownOrchestrator, ShutdownReason, ShutdownState
from .responders import BaseResponder, BufferResponder, FileResponder, create_responder
from .server import LocalSecretServer

__all__ = [
    "create_logger",
    "Session",
    "UseCounter",
    "UseOutcome",
    "AbuseCounter",
    "AbuseOutcome",
    "ShutdownOrchestrator",
    "ShutdownReason",
    "ShutdownState",
    "BaseResponder",
    "BufferResponder",
    "FileResponder",
    "create_responder",
    "LocalSecretServer"
]
