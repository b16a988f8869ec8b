"""
OpenAI-compatible model client.

Provides model listing and chat completions over HTTP, with completions
cached on disk when caching is enabled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..cache import DiskCache
from ..exceptions import ExecutionError
from ..shared import ClientOptions

__all__ = ["ModelClient"]

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_S = 300


class ModelClient:
    """HTTP client for an OpenAI-compatible API."""

    def __init__(self, options: ClientOptions, cache: DiskCache):
        """
        Initialize the model client.

        Args:
            options: API key, base URL and default model
            cache: Disk cache for completion responses
        """
        self.options = options
        self.cache = cache
        self.base_url = options.base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if not self._session or self._session.closed:
            headers = {}
            if self.options.api_key:
                headers["Authorization"] = f"Bearer {self.options.api_key}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=_REQUEST_TIMEOUT_S),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def list_models(self, base_url: Optional[str] = None) -> List[str]:
        """
        List model identifiers.

        Args:
            base_url: Alternate provider endpoint; defaults to the configured one

        Returns:
            Sorted model identifiers
        """
        url = f"{(base_url or self.base_url).rstrip('/')}/models"
        session = await self._ensure_session()
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise ExecutionError(
                        f"listing models from {url}: HTTP {resp.status}: {body}"
                    )
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ExecutionError(f"listing models from {url}: {e}") from e
        return sorted(str(m.get("id")) for m in data.get("data", []) if m.get("id"))

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: str = "",
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Request a chat completion.

        Returns:
            The first choice's message object
        """
        request: Dict[str, Any] = {
            "model": model or self.options.default_model,
            "messages": messages,
        }
        if tools:
            request["tools"] = tools

        cached = self.cache.get("completions", {"url": self.base_url, **request})
        if isinstance(cached, dict):
            logger.debug("completion cache hit (model=%s)", request["model"])
            return cached

        session = await self._ensure_session()
        url = f"{self.base_url}/chat/completions"
        try:
            async with session.post(url, json=request) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise ExecutionError(
                        f"model call failed: HTTP {resp.status}: {body}"
                    )
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ExecutionError(f"model call failed: {e}") from e

        choices = data.get("choices") or []
        if not choices:
            raise ExecutionError("model returned no choices")
        message = choices[0].get("message") or {}
        self.cache.put("completions", {"url": self.base_url, **request}, message)
        return message
