"""REST client for the Window protocol bootstrap.

Handles ``GET /status`` and ``GET /messages``. Every failure mode
(non-200, network error, timeout, bad payload) collapses to ``None``:
the caller's remedy is the same in all cases, treat the agent as
unreachable or start with an empty history.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

import aiohttp

from window.adapters.events import try_parse_timestamp
from window.shared.models.agent import AgentState, AgentStatus
from window.shared.models.message import Message, MessageRole

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def normalize_base_url(host: str) -> str:
    """Prefix ``http://`` when the host carries no scheme."""
    host = host.strip().rstrip("/")
    if host.startswith(("http://", "https://")):
        return host
    return f"http://{host}"


def _number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def status_from_dict(data: Any) -> AgentStatus | None:
    """Build an AgentStatus from a ``/status`` body, or None if malformed."""
    if not isinstance(data, dict):
        return None
    agent = data.get("agent")
    state = data.get("status")
    context = data.get("context_remaining")
    tokens = data.get("tokens_used", 0)
    version = data.get("version")
    if not isinstance(agent, str) or not isinstance(state, str) or not _number(context):
        return None
    if tokens is None:
        tokens = 0
    if isinstance(tokens, bool) or not isinstance(tokens, int):
        return None
    if version is not None and not isinstance(version, str):
        return None
    return AgentStatus(
        agent=agent,
        status=AgentState.parse(state),
        context_remaining=float(context),
        tokens_used=tokens,
        version=version,
    )


def message_from_dict(data: Any) -> Message | None:
    """Build a history Message, or None when the entry is malformed."""
    if not isinstance(data, dict):
        return None
    fields = {k: data.get(k) for k in ("id", "role", "content", "timestamp")}
    if not all(isinstance(v, str) for v in fields.values()):
        return None
    try:
        role = MessageRole(fields["role"])
    except ValueError:
        return None
    timestamp = try_parse_timestamp(fields["timestamp"])
    if timestamp is None:
        return None
    return Message(
        id=fields["id"],
        role=role,
        content=fields["content"],
        timestamp=timestamp,
    )


class RestClient:
    """Bearer-authenticated client for the agent's REST endpoints.

    Usage::

        async with RestClient("127.0.0.1:8080", "secret") as rest:
            status = await rest.fetch_status()
            history = await rest.fetch_messages(limit=20)
    """

    def __init__(
        self,
        host: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = normalize_base_url(host)
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout, headers=self._headers(),
            )
        return self._session

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET ``path`` and return the decoded body, or None on any failure."""
        url = f"{self.base_url}{path}"
        try:
            async with self._get_session().get(url, params=params) as resp:
                if resp.status != 200:
                    logger.warning("GET %s returned HTTP %d", url, resp.status)
                    return None
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("GET %s failed: %s", url, str(exc) or type(exc).__name__)
            return None

    async def fetch_status(self) -> AgentStatus | None:
        """``GET /status``. None when the agent cannot be reached."""
        data = await self._get_json("/status")
        if data is None:
            return None
        status = status_from_dict(data)
        if status is None:
            logger.warning("Malformed /status body from %s", self.base_url)
        return status

    async def fetch_messages(
        self,
        limit: int = 20,
        before: datetime | None = None,
    ) -> list[Message] | None:
        """``GET /messages``. Keeps server order, drops malformed entries."""
        params = {"limit": str(limit)}
        if before is not None:
            params["before"] = before.isoformat()
        data = await self._get_json("/messages", params=params)
        if data is None:
            return None
        raw_messages = data.get("messages") if isinstance(data, dict) else None
        if not isinstance(raw_messages, list):
            logger.warning("Malformed /messages body from %s", self.base_url)
            return None

        messages: list[Message] = []
        for raw in raw_messages:
            message = message_from_dict(raw)
            if message is None:
                logger.debug("Dropping malformed history entry: %.120r", raw)
                continue
            messages.append(message)
        return messages

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> RestClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
