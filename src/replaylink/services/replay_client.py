# src/replaylink/services/replay_client.py

"""HTTP client for the replay source."""

import logging
from types import TracebackType
from typing import Self

import httpx
from pydantic import ValidationError as PydanticValidationError

from replaylink.config import DEFAULT_REPLAY_BASE_URL
from replaylink.exceptions import (
    ReplayHTTPError,
    ReplayPayloadError,
    ReplayTimeoutError,
)
from replaylink.schemas.replay import ReplayPayload
from replaylink.services.replay_refs import ReplayRef

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20.0


class ReplayClient:
    """Fetches replay JSON documents, one request at a time.

    Each request is bounded by ``timeout``; there is no retry. Use as an async
    context manager::

        async with ReplayClient() as client:
            payload = await client.fetch_replay(ref)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REPLAY_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("ReplayClient not entered as context manager")
        return self._client

    async def fetch_replay(self, ref: ReplayRef) -> ReplayPayload:
        """Fetch and validate one replay document.

        Raises:
            ReplayTimeoutError: If the request exceeds the timeout.
            ReplayHTTPError: On transport failures and non-2xx responses.
            ReplayPayloadError: If the body is not a replay with id and log.
        """
        url = ref.json_url
        try:
            resp = await self.client.get(url)
        except httpx.TimeoutException as exc:
            raise ReplayTimeoutError(url, self.timeout) from exc
        except httpx.HTTPError as exc:
            raise ReplayHTTPError(url, None, type(exc).__name__) from exc

        if not resp.is_success:
            raise ReplayHTTPError(url, resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise ReplayPayloadError(url, "body is not JSON") from exc

        if not isinstance(data, dict) or not data.get("id") or not data.get("log"):
            raise ReplayPayloadError(url, "missing id/log")

        try:
            payload = ReplayPayload.model_validate(data)
        except PydanticValidationError as exc:
            raise ReplayPayloadError(url, str(exc)) from exc

        logger.debug(
            "Fetched replay",
            extra={"replay_id": payload.id, "bytes": len(resp.content)},
        )
        return payload
