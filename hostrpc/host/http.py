"""HTTP host client (one-shot calls only)."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
from loguru import logger

from hostrpc.config.schema import ClientConfig
from hostrpc.host.protocol import Unsubscribe
from hostrpc.utils.exceptions import HostCallError, UnsupportedOperationError, sanitize_error_message


class HttpHostClient:
    """Calls host functions with ``POST {url}/api/{query|mutation|action}``.

    Request body: ``{"path": ..., "args": ..., "format": "json"}``.
    Response body: ``{"status": "success", "value": ...}`` or
    ``{"status": "error", "errorMessage": ...}``.
    """

    def __init__(self, config: ClientConfig, *, http_client: httpx.AsyncClient | None = None):
        self.config = config
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._base_url = config.url.rstrip("/")

    async def query(self, path: str, args: dict[str, Any]) -> Any:
        return await self._call("query", path, args)

    async def mutation(self, path: str, args: dict[str, Any]) -> Any:
        return await self._call("mutation", path, args)

    async def action(self, path: str, args: dict[str, Any]) -> Any:
        return await self._call("action", path, args)

    def on_update(
        self,
        path: str,
        args: dict[str, Any],
        callback: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Unsubscribe:
        raise UnsupportedOperationError("live subscriptions", type(self).__name__)

    async def close(self) -> None:
        await self._http.aclose()

    async def _call(self, kind: str, path: str, args: dict[str, Any]) -> Any:
        full_path = f"{self.config.function_prefix}{path}"
        try:
            response = await self._http.post(
                f"{self._base_url}/api/{kind}",
                json={"path": full_path, "args": args, "format": "json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Host {} {} transport error: {}", kind, full_path, type(exc).__name__)
            raise HostCallError(full_path, sanitize_error_message(str(exc)) or type(exc).__name__) from exc

        try:
            body = response.json()
        except ValueError:
            raise HostCallError(full_path, f"HTTP {response.status_code} with non-JSON body", response.status_code) from None
        if not isinstance(body, dict):
            raise HostCallError(full_path, "response body is not an object", response.status_code)

        status = body.get("status")
        if status == "success":
            return body.get("value")
        if status == "error":
            message = str(body.get("errorMessage") or "unknown error")
            raise HostCallError(full_path, sanitize_error_message(message), response.status_code)
        raise HostCallError(full_path, f"unexpected response status {status!r}", response.status_code)
