from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple
from urllib.parse import quote

import httpx

from .errors import PayloadError, TransportError
from .models import QueueKind

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Delivers one queued operation to the remote service."""

    @abstractmethod
    async def send(self, kind: QueueKind, payload: Any) -> None:
        """Return on confirmed delivery; raise TransportError or PayloadError otherwise."""

    async def aclose(self) -> None:
        """Release network resources."""


class HttpTransport(Transport):
    """Replays queued operations against the verification REST API."""

    RETRYABLE_STATUS = frozenset({408, 429})

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def send(self, kind: QueueKind, payload: Any) -> None:
        path, body = self._route(QueueKind(kind), payload)
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc

        if response.is_success:
            logger.debug("Delivered %s operation to %s", QueueKind(kind).value, path)
            return
        status = response.status_code
        if status >= 500 or status in self.RETRYABLE_STATUS:
            raise TransportError(f"POST {path} returned {status}")
        raise PayloadError(f"POST {path} rejected with {status}: {response.text[:200]}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _route(kind: QueueKind, payload: Any) -> Tuple[str, Any]:
        if kind is QueueKind.ANALYSIS:
            return "/api/analyze", payload
        if kind is QueueKind.REPORT:
            return "/api/reports", payload
        if not isinstance(payload, dict) or payload.get("quizId") in (None, ""):
            raise PayloadError("quiz submission requires a quizId")
        if "selectedAnswer" not in payload:
            raise PayloadError("quiz submission requires a selectedAnswer")
        quiz_id = quote(str(payload["quizId"]), safe="")
        return f"/api/quizzes/{quiz_id}/submit", {"selectedAnswer": payload["selectedAnswer"]}
