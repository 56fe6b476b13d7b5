"""Shared fixtures: a fake chat service behind httpx.MockTransport."""

from collections import defaultdict, deque
from urllib.parse import parse_qs

import httpx
import pytest

from anonchat.client.session import ChatSession
from anonchat.client.transport import HttpTransport
from anonchat.shared.config import Settings
from anonchat.shared.models import SessionConfig

STATUS_OBJECT = {
    "count": 5,
    "force_unmon": False,
    "antinudeservers": ["a"],
    "antinudepercent": 0.1,
    "spyeeQueueTime": 1.0,
    "spyQueueTime": 2.0,
    "timestamp": 3.0,
    "servers": ["s1"],
}


class FakeService:
    """
    Answers each path from a queue of scripted bodies, falling back to a default.
    Every request is recorded as (method, host, path, params) for assertions.
    """

    def __init__(self):
        self.scripted: dict[str, deque] = defaultdict(deque)
        self.defaults = {
            "/start": '"central2:abc123"',
            "/typing": "win",
            "/stoppedtyping": "win",
            "/send": "win",
            "/disconnect": "win",
            "/events": "[]",
            "/stoplookingforcommonlikes": "win",
            "/recaptcha": "win",
        }
        self.requests: list[tuple[str, str, str, dict]] = []

    def script(self, path: str, *bodies):
        """Queue bodies (str, or an exception to raise) for the next calls to `path`."""
        self.scripted[path].extend(bodies)

    def calls(self, path: str) -> list[dict]:
        return [params for _, _, p, params in self.requests if p == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            params = dict(request.url.params)
        else:
            params = {k: v[0] for k, v in parse_qs(request.content.decode(), keep_blank_values=True).items()}
        path = request.url.path
        self.requests.append((request.method, request.url.host, path, params))

        if self.scripted[path]:
            body = self.scripted[path].popleft()
        else:
            body = self.defaults.get(path)
        if body is None:
            return httpx.Response(404, text="not found")
        if isinstance(body, Exception):
            raise body
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, text=body)


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def test_settings():
    return Settings(
        BASE_HOST="chat.test",
        LOG_HOST="logs.chat.test",
        MAX_RETRIES=2,
        RETRY_BASE_DELAY_S=0.0,
        RETRY_MAX_DELAY_S=0.0,
    )


@pytest.fixture
def transport(service, test_settings):
    client = httpx.AsyncClient(transport=httpx.MockTransport(service.handler))
    return HttpTransport(test_settings, client=client)


@pytest.fixture
async def session(transport):
    chat = ChatSession(SessionConfig(), transport=transport)
    yield chat
    await chat.aclose()
