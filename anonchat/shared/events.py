"""
MODULE OVERVIEW:
The event-stream decoder. Turns one raw `/events` body into an ordered list of `ChatEvent`s.

WHAT IS HAPPENING HERE:
The service answers a poll with a JSON array of tuples shaped `[discriminant, ...fields]`.
The fields vary per discriminant: nothing, one string, a sender and a text, a variable list
of topics, a nested array of messages, or a whole status object. We look the discriminant
up in `WIRE_KINDS`, then extract the payload according to that kind's `PayloadShape`.

Leniency policy: a single malformed tuple (not an array, no string discriminant, unknown
discriminant, too few fields, a field of the wrong type, an unparseable status object) is
dropped and logged at DEBUG. The batch as a whole only fails when the body is not an
array at all ("malformed root"), or when a non-trivial body yields no events whatsoever
("unknown shape"). The two "nothing happened" bodies, `[]` and `null`, are not errors.

Everything here is a pure function of its input, so it needs no locking.
"""
import json
from typing import Any

from loguru import logger

from anonchat.shared.errors import DecodeError
from anonchat.shared.models import ChatEvent, EventKind, PayloadShape, StatusRecord

EMPTY_BODIES = ("[]", "null")
ESCAPED_SLASH = "\\/"

WIRE_KINDS: dict[str, EventKind] = {
    "waiting": EventKind.WAITING,
    "connected": EventKind.CONNECTED,
    "strangerDisconnected": EventKind.PEER_DISCONNECTED,
    "typing": EventKind.PEER_TYPING,
    "stoppedTyping": EventKind.PEER_STOPPED_TYPING,
    "gotMessage": EventKind.MESSAGE_RECEIVED,
    "error": EventKind.CONNECTION_ERROR,
    "identDigests": EventKind.IDENTITY_DIGEST,
    "connectionDied": EventKind.CONNECTION_DIED,
    "antinudeBanned": EventKind.BANNED,
    "question": EventKind.QUESTION,
    "spyTyping": EventKind.COUNTERPART_TYPING,
    "spyStoppedTyping": EventKind.COUNTERPART_STOPPED_TYPING,
    "spyDisconnected": EventKind.COUNTERPART_DISCONNECTED,
    "spyMessage": EventKind.COUNTERPART_MESSAGE,
    "serverMessage": EventKind.SERVER_MESSAGE,
    "count": EventKind.ONLINE_COUNT,
    "commonLikes": EventKind.SHARED_TOPICS,
    "recaptchaRequired": EventKind.CAPTCHA_REQUIRED,
    "recaptchaRejected": EventKind.CAPTCHA_REJECTED,
    "partnerCollege": EventKind.PEER_INSTITUTION,
    "statusInfo": EventKind.STATUS_SNAPSHOT,
}


class _Malformed(Exception):
    """Internal signal: the tuple being decoded must be skipped."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_field(value: Any) -> str:
    """Render one scalar tuple field as a string. Numbers keep their decimal form."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    raise _Malformed(f"cannot render {type(value).__name__} as a field")


def unescape_message(raw: str) -> str | None:
    """
    Undo a second layer of slash escaping on one message.

    `json.loads` has already decoded the wire escapes, so most messages come through
    untouched, backslashes included. Only text that still carries a literal `\\/` is read
    back as a JSON string literal. Returns None when that second read fails.
    """
    if ESCAPED_SLASH not in raw:
        return raw
    try:
        return json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        return None


# WHAT IS HAPPENING HERE:
# Status records are all-or-nothing. The fields are checked in a fixed order and the
# first one that is missing or has the wrong type is named in the error.
def _number(data: dict, key: str) -> float:
    value = data.get(key)
    if not _is_number(value):
        raise DecodeError(f"failed to parse {key}")
    return float(value)


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    items = [v for v in value if isinstance(v, str)] if isinstance(value, list) else []
    if not items:
        raise DecodeError(f"failed to parse {key}")
    return items


def parse_status(data: Any) -> StatusRecord:
    if not isinstance(data, dict):
        raise DecodeError("failed to find a JSON object")

    count = data.get("count")
    if not _is_number(count):
        raise DecodeError("failed to parse count")
    force_unmon = data.get("force_unmon")
    if not isinstance(force_unmon, bool):
        raise DecodeError("failed to parse force_unmon")

    return StatusRecord(
        count=int(count),
        force_unmon=force_unmon,
        antinude_servers=_string_list(data, "antinudeservers"),
        antinude_percent=_number(data, "antinudepercent"),
        spyee_queue_time=_number(data, "spyeeQueueTime"),
        spy_queue_time=_number(data, "spyQueueTime"),
        timestamp=_number(data, "timestamp"),
        servers=_string_list(data, "servers"),
    )


def parse_status_body(body: str) -> StatusRecord:
    """Decode a standalone `/status` response."""
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {e}", body) from e
    try:
        return parse_status(data)
    except DecodeError as e:
        raise DecodeError(e.message, body) from None


def _field_at(entry: list, index: int) -> str:
    if len(entry) <= index:
        raise _Malformed(f"expected at least {index + 1} elements")
    return coerce_field(entry[index])


def _variadic_fields(entry: list) -> tuple[str, ...]:
    # Topics arrive either flat or as one nested array; nested non-strings are ignored
    fields = []
    for value in entry[1:]:
        if isinstance(value, list):
            fields.extend(v for v in value if isinstance(v, str))
        else:
            fields.append(coerce_field(value))
    return tuple(fields)


def _decode_messages(entry: list) -> list[ChatEvent]:
    if len(entry) < 2:
        raise _Malformed("gotMessage without messages")
    batch = entry[1]
    if isinstance(batch, str):
        batch = [batch]
    if not isinstance(batch, list):
        raise _Malformed("gotMessage payload is not an array")

    events = []
    for raw in batch:
        if not isinstance(raw, str):
            logger.debug(f"Dropping non-string message {raw!r}")
            continue
        text = unescape_message(raw)
        if text is None:
            logger.debug(f"Dropping message that failed unescaping: {raw!r}")
            continue
        events.append(ChatEvent(kind=EventKind.MESSAGE_RECEIVED, payload=(text,)))
    return events


def _decode_tuple(entry: Any) -> list[ChatEvent] | None:
    """
    Decode one tuple. Returns None when the tuple must be skipped, otherwise the events it
    produced (more than one only for a `gotMessage` batch).
    """
    if not isinstance(entry, list) or not entry or not isinstance(entry[0], str):
        logger.debug(f"Skipping tuple without a discriminant: {entry!r}")
        return None

    kind = WIRE_KINDS.get(entry[0])
    if kind is None:
        logger.debug(f"Skipping unknown event kind {entry[0]!r}")
        return None

    shape = kind.shape
    try:
        if shape is PayloadShape.NONE:
            return [ChatEvent(kind=kind)]
        if shape is PayloadShape.SINGLE:
            return [ChatEvent(kind=kind, payload=(_field_at(entry, 1),))]
        if shape is PayloadShape.PAIR:
            return [ChatEvent(kind=kind, payload=(_field_at(entry, 1), _field_at(entry, 2)))]
        if shape is PayloadShape.VARIADIC:
            return [ChatEvent(kind=kind, payload=_variadic_fields(entry))]
        if shape is PayloadShape.MESSAGES:
            return _decode_messages(entry)
        if shape is PayloadShape.STATUS:
            if len(entry) < 2:
                raise _Malformed("statusInfo without a record")
            return [ChatEvent(kind=kind, status=parse_status(entry[1]))]
    except (_Malformed, DecodeError) as e:
        logger.debug(f"Skipping malformed {entry[0]!r} tuple: {e}")
        return None

    raise AssertionError(f"unhandled payload shape {shape}")


def decode_events(body: str) -> list[ChatEvent]:
    """
    Decode one poll response into events, in the order their tuples appear.

    Raises DecodeError with the raw body attached when the root is not an array, or when
    a non-trivial body produced no events at all.
    """
    stripped = body.strip()
    if stripped in EMPTY_BODIES:
        return []

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        raise DecodeError("malformed root (invalid JSON)", body) from None
    if not isinstance(data, list):
        raise DecodeError("malformed root (root element must be an array)", body)

    events: list[ChatEvent] = []
    for entry in data:
        decoded = _decode_tuple(entry)
        if decoded:
            events.extend(decoded)

    if not events:
        raise DecodeError("unknown shape", body)
    return events
