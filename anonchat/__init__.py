"""anonchat: a client for an anonymous long-polling chat service."""
from anonchat.client.chat_loop import ChatLoop
from anonchat.client.session import ChatSession, SessionIdentity
from anonchat.client.transport import HttpTransport
from anonchat.shared.errors import (
    ChatError,
    DecodeError,
    InvalidArgument,
    ProtocolError,
    StateError,
    TransportError,
)
from anonchat.shared.events import decode_events
from anonchat.shared.models import (
    ChatEvent,
    CollegeMode,
    EventKind,
    LogEntry,
    LogStyle,
    PlainMode,
    QuestionMode,
    SessionConfig,
    SpyMode,
    StatusRecord,
)

__version__ = "1.0.0"
