import asyncio
import random
import secrets
import threading
from datetime import datetime, timezone

from loguru import logger

RANDID_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
RANDID_LENGTH = 8

_process_randid: str | None = None
_randid_lock = threading.Lock()


def new_randid() -> str:
    """8 characters from an alphabet without the look-alikes 0/1/O/I."""
    return "".join(secrets.choice(RANDID_ALPHABET) for _ in range(RANDID_LENGTH))


def process_randid() -> str:
    """
    The random id used for status and log-generation calls.
    Generated on first use and then reused for the life of the process.
    """
    global _process_randid
    with _randid_lock:
        if _process_randid is None:
            _process_randid = new_randid()
        return _process_randid


def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Every chat loop calls this once in __init__.
    Keys: events_received, empty_polls, reconnect_count, messages_sent,
          last_event_at, connected_at.
    """
    return {
        "events_received": 0,
        "empty_polls": 0,
        "reconnect_count": 0,
        "messages_sent": 0,
        "last_event_at": None,
        "connected_at": datetime.now(timezone.utc).isoformat(),
    }


def backoff_delay(attempt: int, base_delay_s: float = 1.0, max_delay_s: float = 32.0) -> float:
    """Exponential backoff with up to 10% jitter."""
    delay = min(base_delay_s * (2 ** attempt), max_delay_s)
    return delay + random.uniform(0, delay * 0.1)


async def sleep_backoff(
    attempt: int,
    stats: dict,
    error: Exception,
    base_delay_s: float = 1.0,
    max_delay_s: float = 32.0,
    client_id: str = "unknown",
) -> None:
    delay = backoff_delay(attempt, base_delay_s, max_delay_s)
    stats["reconnect_count"] += 1
    logger.warning(f"Client {client_id} Attempt {attempt} Delay {delay:.2f}s Error {error}")
    await asyncio.sleep(delay)
