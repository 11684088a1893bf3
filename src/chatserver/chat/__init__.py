"""
Chat layer: sessions, the registry of live sessions, broadcast fan-out,
the per-session protocol loop and the scripted bot.
"""

from .bot import ReplyGenerator, generate_reply, normalize
from .broadcast import Broadcaster
from .handler import SessionHandler
from .outbox import Outbox
from .registry import Registry
from .session import Session, SessionState

__all__ = [
    "Broadcaster",
    "Outbox",
    "Registry",
    "ReplyGenerator",
    "Session",
    "SessionHandler",
    "SessionState",
    "generate_reply",
    "normalize",
]
