from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Union

import httpx

from . import config
from .errors import CompletionError
from .models import ChatCompletionRequest
from .utils import get_logger


logger = get_logger(__name__)

SSE_DONE = "[DONE]"

Answer = Dict[str, Any]
AnswerStream = AsyncIterator[str]


class ChatCompleter(Protocol):
    async def complete(self, request: ChatCompletionRequest) -> Union[Answer, AnswerStream]: ...


class ChatCompletionClient:
    """Talks to an OpenAI-compatible inference server."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.CHAT_API_BASE).rstrip("/")
        self.api_key = api_key if api_key is not None else config.CHAT_API_KEY
        self.model = model or config.CHAT_MODEL
        self.timeout = timeout or config.CHAT_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout, transport=self._transport)

    def _payload(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        payload = request.to_payload()
        payload.setdefault("model", self.model)
        return payload

    async def complete(self, request: ChatCompletionRequest) -> Union[Answer, AnswerStream]:
        """
        Non-streaming requests return the answer object. Streaming requests
        return an async iterator of SSE data fragments, ending with "[DONE]";
        the HTTP call starts on first iteration.
        """
        payload = self._payload(request)
        if request.stream:
            return self._stream(payload)

        async with self._client() as client:
            try:
                resp = await client.post("/chat/completions", json=payload)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as e:
                raise CompletionError(f"Chat completion failed ({e.response.status_code}): {e.response.text}") from e
            except (httpx.HTTPError, json.JSONDecodeError) as e:
                raise CompletionError(f"Chat completion failed: {e}") from e

    async def _stream(self, payload: Dict[str, Any]) -> AsyncIterator[str]:
        async with self._client() as client:
            try:
                async with client.stream("POST", "/chat/completions", json=payload) as resp:
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="ignore")
                        raise CompletionError(f"Chat completion failed ({resp.status_code}): {body}")
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        yield data
                        if data == SSE_DONE:
                            return
            except httpx.HTTPError as e:
                raise CompletionError(f"Chat completion stream failed: {e}") from e
        yield SSE_DONE

    async def list_models(self) -> Dict[str, Any]:
        async with self._client() as client:
            try:
                resp = await client.get("/models")
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPError as e:
                raise CompletionError(f"Failed to list models: {e}") from e
