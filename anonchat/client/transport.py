"""
MODULE OVERVIEW:
The HTTP transport. The only module that talks to the network.

WHAT IS HAPPENING HERE:
Every command the service understands is a path under one host (`/start`, `/events`, ...),
optionally on a pinned server subdomain such as `front3.omegle.com`. Commands either GET with
query parameters or POST with form parameters, and every answer we care about is plain text,
so this layer hands back the raw body and leaves interpretation to the session manager.
Any httpx failure, including a non-2xx status, surfaces as a `TransportError`.
"""
import httpx
from loguru import logger

from anonchat.shared.config import Settings, settings as default_settings
from anonchat.shared.errors import TransportError


class HttpTransport:
    def __init__(self, config: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.config = config or default_settings
        self.client = client or httpx.AsyncClient(
            timeout=self.config.REQUEST_TIMEOUT_S,
            headers={"User-Agent": self.config.USER_AGENT},
        )

    def build_url(self, cmd: str, server: str = "") -> str:
        host = f"{server}.{self.config.BASE_HOST}" if server else self.config.BASE_HOST
        return f"{self.config.SCHEME}://{host}/{cmd}"

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _send(self, method: str, url: str, timeout: float | None = None, **kwargs) -> str:
        logger.debug(f"{method} {url}")
        extra = {"timeout": timeout} if timeout is not None else {}
        try:
            response = await self.client.request(method, url, **kwargs, **extra)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        return response.text

    async def get(self, cmd: str, params: dict[str, str], server: str = "", timeout: float | None = None) -> str:
        return await self._send("GET", self.build_url(cmd, server), timeout=timeout, params=params)

    async def post(self, cmd: str, data: dict[str, str], server: str = "", timeout: float | None = None) -> str:
        return await self._send("POST", self.build_url(cmd, server), timeout=timeout, data=data)

    async def post_url(self, url: str, data: dict[str, str]) -> str:
        """POST to an absolute URL on another host (the chat-log renderer)."""
        return await self._send("POST", url, data=data)
