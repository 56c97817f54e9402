"""
HTTP transport for chat clients.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..config import settings
from ..exceptions import TransportError


logger = logging.getLogger(__name__)

COMMAND_PATH = "/api/marketplace"


class ChatTransport:
    """What a conversation session needs from the network."""

    async def post_command(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one command. Returns the response body; rejections come back
        as ``{"ok": False, "message": ...}``. Raises TransportError when
        the server could not be reached.
        """
        raise NotImplementedError

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        raise NotImplementedError

    async def close(self):
        pass


def normalize_body(status: int, body: Any) -> Dict[str, Any]:
    """Give every command response the ``{ok, message}`` shape."""
    if isinstance(body, dict) and "ok" in body:
        return body
    message = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
    return {"ok": False, "message": str(message or f"HTTP {status}")}


class AiohttpTransport(ChatTransport):
    """Talks to the chat API over HTTP with a bearer token."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.token = token
        self.timeout = timeout or settings.SEND_TIMEOUT_SECONDS
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def post_command(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        session = self._get_session()
        try:
            async with session.post(
                f"{self.base_url}{COMMAND_PATH}",
                json={"action": action, **payload},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                body = await response.json(content_type=None)
                return normalize_body(response.status, body)
        except aiohttp.ClientError as e:
            logger.warning("Command %s failed: %s", action, e)
            raise TransportError(f"Connection error: {e}")
        except asyncio.TimeoutError:
            raise TransportError("The server did not respond in time.")
        except ValueError:
            raise TransportError("The server sent an invalid response.")

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        session = self._get_session()
        try:
            async with session.get(
                f"{self.base_url}{path}",
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    body = await response.json(content_type=None)
                    raise TransportError(normalize_body(response.status, body)["message"])
                return await response.json()
        except aiohttp.ClientError as e:
            raise TransportError(f"Connection error: {e}")
        except asyncio.TimeoutError:
            raise TransportError("The server did not respond in time.")
        except ValueError:
            raise TransportError("The server sent an invalid response.")

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
