"""
MODULE OVERVIEW:
The session manager. Owns the session identifier and exposes every action the service offers.

WHAT IS HAPPENING HERE:
A session starts with `establish()`, which asks `/start` for an opaque identifier. Every other
action (typing indicators, sending, polling, disconnecting) is a POST carrying that identifier.
The poller and the sender run concurrently over the same `ChatSession`, so the identifier
lives inside `SessionIdentity` behind a lock and is only reachable through `get()`/`set()`.
Each action reads the identifier once and uses that snapshot for both the "is there a
session?" check and the request, so a concurrent re-establish can never give it a mix of both.

The manager never retries and never reconnects on its own: it reports what happened and
lets the chat loop decide.
"""
import re
import threading

from loguru import logger

from anonchat.client.transport import HttpTransport
from anonchat.shared.client_utils import process_randid
from anonchat.shared.errors import DecodeError, InvalidArgument, ProtocolError, StateError
from anonchat.shared.events import decode_events, parse_status_body
from anonchat.shared.models import ChatEvent, LogEntry, SessionConfig, StatusRecord

ACK = "win"
CAPTCHA_FAIL = "fail"
LOG_LINK_RE = re.compile(r"http://l\.[Oo]megle\.com/.*\.png")
_BAD_ID_CHARS = re.compile(r'[\s"\[\]{}]')


class SessionIdentity:
    """The current session identifier. Empty string means there is no session."""

    def __init__(self):
        self._lock = threading.Lock()
        self._id = ""

    def get(self) -> str:
        with self._lock:
            return self._id

    def set(self, session_id: str) -> None:
        with self._lock:
            self._id = session_id

    def __bool__(self) -> bool:
        return bool(self.get())


class ChatSession:
    def __init__(self, config: SessionConfig | None = None, transport: HttpTransport | None = None):
        self.config = config or SessionConfig()
        self.transport = transport or HttpTransport()
        self.identity = SessionIdentity()
        self.randid = process_randid()

    @property
    def session_id(self) -> str:
        return self.identity.get()

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "ChatSession":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def _require_id(self) -> str:
        session_id = self.identity.get()
        if not session_id:
            raise StateError("id is empty")
        return session_id

    async def _post_ack(self, cmd: str, data: dict[str, str]) -> None:
        body = await self.transport.post(cmd, data, server=self.config.server)
        if body != ACK:
            raise ProtocolError(f"{cmd} returned something other than {ACK}", body)

    async def establish(self, config: SessionConfig | None = None) -> str:
        """Request a new identifier and store it. Returns the identifier."""
        if config is not None:
            self.config = config
        params = self.config.start_params(self.randid)
        body = await self.transport.get("start", params, server=self.config.server)

        session_id = body.strip().strip('"')
        if not session_id or _BAD_ID_CHARS.search(session_id):
            raise DecodeError("start did not return a bare identifier", body)

        self.identity.set(session_id)
        logger.info(f"Session established mode={self.config.mode.kind} id={session_id}")
        return session_id

    async def show_typing(self) -> None:
        await self._post_ack("typing", {"id": self._require_id()})

    async def stop_typing(self) -> None:
        await self._post_ack("stoppedtyping", {"id": self._require_id()})

    async def send_message(self, text: str) -> None:
        if not text:
            raise InvalidArgument("msg is empty")
        await self._post_ack("send", {"id": self._require_id(), "msg": text})

    async def disconnect(self) -> None:
        """Leave the conversation. The stored identifier is kept; call establish() to resume."""
        session_id = self._require_id()
        await self._post_ack("disconnect", {"id": session_id})
        logger.info(f"Disconnected id={session_id}")

    async def poll(self) -> list[ChatEvent]:
        session_id = self._require_id()
        body = await self.transport.post(
            "events", {"id": session_id}, server=self.config.server, timeout=self.transport.config.POLL_TIMEOUT_S
        )
        return decode_events(body)

    async def fetch_status(self) -> StatusRecord:
        body = await self.transport.get("status", {"randid": self.randid}, server=self.config.server)
        return parse_status_body(body)

    async def stop_looking_for_common_likes(self) -> None:
        """Give up on topic matching and accept any stranger."""
        if not self.config.topics:
            raise InvalidArgument("topic list is empty")
        await self._post_ack("stoplookingforcommonlikes", {"id": self._require_id()})

    async def solve_captcha(self, challenge: str, response: str) -> None:
        """Answer a captcha-required or captcha-rejected event."""
        data = {"id": self._require_id(), "challenge": challenge, "response": response}
        body = await self.transport.post("recaptcha", data, server=self.config.server)
        if body == CAPTCHA_FAIL:
            raise ProtocolError(f'recaptcha returned "{CAPTCHA_FAIL}"', body)

    async def generate_log(self, ident_digests: str, entries: list[LogEntry]) -> str:
        """Render a conversation as an image on the log host. Returns the image link."""
        if not ident_digests.strip():
            raise InvalidArgument("identdigests is empty")
        self._require_id()

        data = {"randid": self.randid, "identdigests": ident_digests, "host": "1"}
        if self.config.topics:
            data["topics"] = self.config.topics_json()
        data["log"] = LogEntry.rows_json(entries)

        url = f"{self.transport.config.SCHEME}://{self.transport.config.LOG_HOST}/generate"
        body = await self.transport.post_url(url, data)
        match = LOG_LINK_RE.search(body)
        if match is None:
            raise DecodeError("can't find link to log picture", body)
        return match.group(0)
