"""
MODULE OVERVIEW:
This module defines the strictly typed data structures used across the client, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
The service speaks in loosely shaped JSON tuples. Everything that leaves the decoder,
though, is one of the closed types below: a `ChatEvent` whose `kind` is drawn from
`EventKind`, carrying either string fields or a `StatusRecord`. On the way out, a
`SessionConfig` describes how a session should be established, with its matchmaking
mode modelled as a tagged union so only one mode's fields can ever be set.
"""
import json
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# WHAT IS HAPPENING HERE:
# The establishment modes are mutually exclusive on the wire. Rather than a flat bag of
# optional fields with an implicit if/elif priority, each mode is its own model and
# pydantic picks the right one from the `kind` discriminator.
class PlainMode(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["plain"] = "plain"


class SpyMode(BaseModel):
    """Offer to answer someone else's question (the 'spyee' side)."""
    model_config = ConfigDict(frozen=True)
    kind: Literal["spy"] = "spy"


class QuestionMode(BaseModel):
    """Ask a question and watch two strangers discuss it."""
    model_config = ConfigDict(frozen=True)
    kind: Literal["question"] = "question"
    question: str = Field(min_length=1)
    can_save_question: bool = False


class CollegeMode(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["college"] = "college"
    college: str = ""
    college_auth: str = Field(min_length=1)
    any_college: bool = False


SessionMode = Annotated[
    Union[PlainMode, SpyMode, QuestionMode, CollegeMode],
    Field(discriminator="kind"),
]


class SessionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    lang: str = "en"
    group: str = ""
    server: str = ""
    topics: tuple[str, ...] = ()
    mode: SessionMode = Field(default_factory=PlainMode)

    def topics_json(self) -> str:
        return json.dumps(list(self.topics), separators=(",", ":"))

    def start_params(self, randid: str) -> dict[str, str]:
        """Query parameters for `/start`. Only the active mode's fields are encoded."""
        params = {"lang": self.lang, "group": self.group, "randid": randid}
        mode = self.mode
        if isinstance(mode, SpyMode):
            params["wantsspy"] = "1"
        elif isinstance(mode, QuestionMode):
            params["ask"] = mode.question
            if mode.can_save_question:
                params["cansavequestion"] = "1"
        elif isinstance(mode, CollegeMode):
            params["college"] = mode.college
            params["college_auth"] = mode.college_auth
            if mode.any_college:
                params["any_college"] = "1"

        # Topic matching only applies to one-on-one chats
        if isinstance(mode, (PlainMode, CollegeMode)) and self.topics:
            params["topics"] = self.topics_json()
        return params


class StatusRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
    force_unmon: bool
    antinude_servers: list[str]
    antinude_percent: float
    spyee_queue_time: float
    spy_queue_time: float
    timestamp: float
    servers: list[str]

    @property
    def suggested_mode(self) -> str:
        # A longer spy queue means spies are waiting on spyees, so answering is quicker
        return "spy" if self.spy_queue_time > self.spyee_queue_time else "question"


class PayloadShape(str, Enum):
    NONE = "none"
    SINGLE = "single"
    PAIR = "pair"
    VARIADIC = "variadic"
    MESSAGES = "messages"
    STATUS = "status"


class EventKind(str, Enum):
    WAITING = "waiting"
    CONNECTED = "connected"
    PEER_DISCONNECTED = "peer_disconnected"
    PEER_TYPING = "peer_typing"
    PEER_STOPPED_TYPING = "peer_stopped_typing"
    MESSAGE_RECEIVED = "message_received"
    CONNECTION_ERROR = "connection_error"
    IDENTITY_DIGEST = "identity_digest"
    CONNECTION_DIED = "connection_died"
    BANNED = "banned"
    QUESTION = "question"
    COUNTERPART_TYPING = "counterpart_typing"
    COUNTERPART_STOPPED_TYPING = "counterpart_stopped_typing"
    COUNTERPART_DISCONNECTED = "counterpart_disconnected"
    COUNTERPART_MESSAGE = "counterpart_message"
    SERVER_MESSAGE = "server_message"
    ONLINE_COUNT = "online_count"
    SHARED_TOPICS = "shared_topics"
    CAPTCHA_REQUIRED = "captcha_required"
    CAPTCHA_REJECTED = "captcha_rejected"
    PEER_INSTITUTION = "peer_institution"
    STATUS_SNAPSHOT = "status_snapshot"

    @property
    def shape(self) -> PayloadShape:
        return PAYLOAD_SHAPES[self]

    @property
    def is_terminal(self) -> bool:
        """The session is over after this event; a new one must be established."""
        return self in (EventKind.PEER_DISCONNECTED, EventKind.CONNECTION_DIED, EventKind.BANNED)


class SessionPhase(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    CONNECTED = "connected"
    BANNED = "banned"


PAYLOAD_SHAPES: dict[EventKind, PayloadShape] = {
    EventKind.WAITING: PayloadShape.NONE,
    EventKind.CONNECTED: PayloadShape.NONE,
    EventKind.PEER_DISCONNECTED: PayloadShape.NONE,
    EventKind.PEER_TYPING: PayloadShape.NONE,
    EventKind.PEER_STOPPED_TYPING: PayloadShape.NONE,
    EventKind.MESSAGE_RECEIVED: PayloadShape.MESSAGES,
    EventKind.CONNECTION_ERROR: PayloadShape.SINGLE,
    EventKind.IDENTITY_DIGEST: PayloadShape.SINGLE,
    EventKind.CONNECTION_DIED: PayloadShape.NONE,
    EventKind.BANNED: PayloadShape.NONE,
    EventKind.QUESTION: PayloadShape.SINGLE,
    EventKind.COUNTERPART_TYPING: PayloadShape.SINGLE,
    EventKind.COUNTERPART_STOPPED_TYPING: PayloadShape.SINGLE,
    EventKind.COUNTERPART_DISCONNECTED: PayloadShape.SINGLE,
    EventKind.COUNTERPART_MESSAGE: PayloadShape.PAIR,
    EventKind.SERVER_MESSAGE: PayloadShape.SINGLE,
    EventKind.ONLINE_COUNT: PayloadShape.NONE,
    EventKind.SHARED_TOPICS: PayloadShape.VARIADIC,
    EventKind.CAPTCHA_REQUIRED: PayloadShape.SINGLE,
    EventKind.CAPTCHA_REJECTED: PayloadShape.SINGLE,
    EventKind.PEER_INSTITUTION: PayloadShape.SINGLE,
    EventKind.STATUS_SNAPSHOT: PayloadShape.STATUS,
}


# WHAT IS HAPPENING HERE:
# One decoded tuple (or one message out of a `gotMessage` batch). Events have no identity
# beyond their position in the poll response, so there is no id or timestamp here.
class ChatEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    payload: tuple[str, ...] = ()
    status: StatusRecord | None = None

    @property
    def text(self) -> str:
        """The last string field, which is the human-readable part for every shape."""
        return self.payload[-1] if self.payload else ""


class LogStyle(str, Enum):
    DEFAULT = "default"
    QUESTION = "question"
    STRANGER = "stranger"
    STRANGER_1 = "stranger_1"
    STRANGER_2 = "stranger_2"
    YOU = "you"
    NORMAL = "normal"


class LogEntry(BaseModel):
    style: LogStyle
    text: str
    extra: str = ""

    def to_row(self) -> list[str]:
        prefixes = {
            LogStyle.QUESTION: "Question to discuss:",
            LogStyle.STRANGER: "Stranger:",
            LogStyle.STRANGER_1: "Stranger 1:",
            LogStyle.STRANGER_2: "Stranger 2:",
            LogStyle.YOU: "You:",
        }
        if self.style is LogStyle.DEFAULT:
            return [self.text]
        if self.style is LogStyle.NORMAL:
            return [self.text, self.extra]
        return [prefixes[self.style], self.text]

    @staticmethod
    def rows_json(entries: list["LogEntry"]) -> str:
        return json.dumps([e.to_row() for e in entries], separators=(",", ":"))
