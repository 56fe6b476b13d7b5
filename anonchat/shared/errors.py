"""
MODULE OVERVIEW:
The exception hierarchy shared by the transport, the session manager and the decoder.

WHAT IS HAPPENING HERE:
Every failure the core can report is a `ChatError`. The subclasses tell the caller
*what kind* of failure happened so the chat loop can decide what to do about it:
a `TransportError` or `DecodeError` is worth a re-establish and retry, a `StateError`
is a caller bug, and a `ProtocolError` means the service refused an action.
The raw response body travels with the error so it can be logged for diagnostics.
"""


class ChatError(Exception):
    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.message = message
        self.body = body

    def __str__(self) -> str:
        if not self.body:
            return f"anonchat: {self.message}"
        return f"anonchat ({self.body}): {self.message}"


class TransportError(ChatError):
    """Network or HTTP-level failure talking to the service."""


class StateError(ChatError):
    """An action needed a live session identifier and there was none."""


class ProtocolError(ChatError):
    """The service answered an action with something other than its acknowledgement."""


class DecodeError(ChatError):
    """A poll, status or start body did not have the expected shape."""


class InvalidArgument(ChatError, ValueError):
    pass
