"""
MODULE OVERVIEW:
The chat event loop. The session manager's main consumer.

WHAT IS HAPPENING HERE:
Two actors share one `ChatSession`:
  - the poller long-polls `/events`, dispatches every decoded event to the callbacks in
    the order the service sent them, and re-establishes the session after a terminal event;
  - the sender waits for outgoing text from an `OutgoingSource` and turns it into
    typing indicators, messages and disconnects.
They run as separate tasks so that waiting for the user to type never holds up incoming
events and a long poll never holds up a send. Nothing orders a send relative to events
from another poll.

This is also the only layer with a recovery policy: transport and decode failures are
retried with exponential backoff (after re-establishing the session), up to
`MAX_RETRIES` consecutive failures. A ban stops the loop for good.
"""
import asyncio
import sys
import threading
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable

from loguru import logger

from anonchat.client.session import ChatSession
from anonchat.shared.client_utils import make_client_stats, sleep_backoff
from anonchat.shared.config import Settings, settings as default_settings
from anonchat.shared.errors import ChatError, DecodeError, StateError, TransportError
from anonchat.shared.models import ChatEvent, EventKind, SessionPhase

OutgoingSource = Callable[[], Awaitable[str | None]]

QUIT_COMMAND = "/quit"
NEXT_COMMAND = "/next"

_PHASE_AFTER: dict[EventKind, SessionPhase] = {
    EventKind.WAITING: SessionPhase.WAITING,
    EventKind.CONNECTED: SessionPhase.CONNECTED,
    EventKind.PEER_DISCONNECTED: SessionPhase.IDLE,
    EventKind.CONNECTION_DIED: SessionPhase.IDLE,
    EventKind.BANNED: SessionPhase.BANNED,
}


def stdin_source(lines: Iterable[str] | None = None) -> OutgoingSource:
    """
    Read lines from stdin (or `lines`) on a daemon thread and hand them to the event loop.
    A daemon thread (rather than the default executor) lets the process exit while
    a read is still pending.
    """
    lines = sys.stdin if lines is None else lines
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    def hand_over(item: str | None) -> bool:
        # The loop may be gone by the time a pending read returns
        try:
            loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError:
            logger.debug("Event loop closed, stdin reader exiting")
            return False
        return True

    def reader():
        for line in lines:
            if not hand_over(line.rstrip("\n")):
                return
        hand_over(None)

    threading.Thread(target=reader, name="anonchat-stdin", daemon=True).start()
    return queue.get


class ChatLoop:
    def __init__(
        self,
        session: ChatSession,
        outgoing: OutgoingSource | None = None,
        config: Settings | None = None,
        client_id: str = "cli",
        reconnect_on_terminal: bool = True,
    ):
        self.session = session
        self.outgoing = outgoing
        self.config = config or default_settings
        self.client_id = client_id
        self.reconnect_on_terminal = reconnect_on_terminal

        self.on_event_callback: Callable[[ChatEvent], Awaitable[None]] | None = None
        self.on_status_change_callback: Callable[[str], Awaitable[None]] | None = None

        self.stats = make_client_stats()
        self.phase = SessionPhase.IDLE
        self._stopped = asyncio.Event()

    @property
    def events_received(self): return self.stats["events_received"]

    @property
    def reconnect_count(self): return self.stats["reconnect_count"]

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def set_callbacks(self, on_event, on_status_change):
        self.on_event_callback = on_event
        self.on_status_change_callback = on_status_change

    def stop(self) -> None:
        self._stopped.set()

    async def _emit_status(self, status: str):
        if self.on_status_change_callback:
            await self.on_status_change_callback(status)

    async def on_event(self, event: ChatEvent):
        self.stats["events_received"] += 1
        self.stats["last_event_at"] = datetime.now(timezone.utc).isoformat()
        if self.on_event_callback:
            await self.on_event_callback(event)

    async def establish(self) -> None:
        await self._emit_status("CONNECTING")
        await self.session.establish()
        self.phase = SessionPhase.WAITING

    async def poll_once(self) -> list[ChatEvent]:
        """One poll round: dispatch the batch in order, then handle any terminal event."""
        events = await self.session.poll()
        if not events:
            self.stats["empty_polls"] += 1
            return events

        terminal: EventKind | None = None
        for event in events:
            new_phase = _PHASE_AFTER.get(event.kind)
            if new_phase is not None and new_phase != self.phase:
                self.phase = new_phase
                await self._emit_status(new_phase.value.upper())
            if event.kind.is_terminal:
                terminal = event.kind
            await self.on_event(event)

        if terminal is EventKind.BANNED:
            logger.error(f"Client {self.client_id} banned, stopping the chat loop")
            self.stop()
        elif terminal is not None and self.reconnect_on_terminal:
            logger.info(f"Client {self.client_id} session ended ({terminal.value}), re-establishing")
            await self.establish()
        return events

    async def poller(self) -> None:
        attempt = 0
        while not self.stopped:
            try:
                await self.poll_once()
                attempt = 0
                # Always yield between polls, even when the service answers instantly
                await asyncio.sleep(self.config.POLL_INTERVAL_S)
            except (TransportError, DecodeError) as e:
                attempt += 1
                if attempt > self.config.MAX_RETRIES:
                    logger.error(f"Client {self.client_id} giving up after {attempt - 1} retries: {e}")
                    self.stop()
                    raise
                await sleep_backoff(
                    attempt,
                    self.stats,
                    e,
                    base_delay_s=self.config.RETRY_BASE_DELAY_S,
                    max_delay_s=self.config.RETRY_MAX_DELAY_S,
                    client_id=self.client_id,
                )
                try:
                    await self.establish()
                except (TransportError, DecodeError) as establish_error:
                    logger.warning(f"Client {self.client_id} re-establish failed: {establish_error}")

    async def handle_outgoing(self, text: str) -> None:
        """Act on one line of outgoing intent."""
        if text == QUIT_COMMAND:
            try:
                if self.session.session_id:
                    await self.session.disconnect()
            finally:
                self.stop()
            return
        if text == NEXT_COMMAND:
            await self.session.disconnect()
            self.phase = SessionPhase.IDLE
            await self.establish()
            return
        if not text:
            return

        await self.session.show_typing()
        await self.session.send_message(text)
        self.stats["messages_sent"] += 1

    async def sender(self) -> None:
        if self.outgoing is None:
            return
        while not self.stopped:
            text = await self.outgoing()
            if text is None:
                self.stop()
                return
            try:
                await self.handle_outgoing(text)
            except StateError as e:
                logger.warning(f"Client {self.client_id} not in a session yet: {e}")
            except ChatError as e:
                logger.warning(f"Client {self.client_id} outgoing action failed: {e}")

    async def run(self, duration_s: float | None = None) -> None:
        """Establish, then run poller and sender until stopped, banned or out of time."""
        await self.establish()
        tasks = [asyncio.create_task(self.poller(), name="poller")]
        if self.outgoing is not None:
            tasks.append(asyncio.create_task(self.sender(), name="sender"))
        stop_waiter = asyncio.create_task(self._stopped.wait())

        try:
            done, _ = await asyncio.wait(
                [*tasks, stop_waiter], timeout=duration_s, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is not stop_waiter and not task.cancelled() and task.exception():
                    raise task.exception()
        finally:
            self.stop()
            for task in [*tasks, stop_waiter]:
                task.cancel()
            await asyncio.gather(*tasks, stop_waiter, return_exceptions=True)
            await self._emit_status("CLOSED")
