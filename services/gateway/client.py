import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from runtime import version as runtime_version
from shared.config.client import ApiConfig
from shared.logging.logger import get_logger

log = get_logger("gateway.client")


class TransportError(Exception):
    """
    Raised when the backend stream cannot be opened or breaks mid-flight.

    Covers connection failures, timeouts (owned by the httpx transport) and
    non-200 responses. ``status_code`` is set when the server answered.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendStreamClient:
    """
    POSTs user events to the backend and exposes the SSE reply as lines.

    Rules:
    - One HTTP request per call; no reconnects (a chat turn is not resumable)
    - Lines are yielded undecoded; framing belongs to the SSE parser
    - Any httpx failure surfaces as TransportError
    """

    def __init__(
        self,
        config: ApiConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config

        # Allow caller to supply a shared client; otherwise own lifecycle
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(
                config.connect_timeout_seconds,
                read=config.stream_read_timeout_seconds,
            ),
            follow_redirects=True,
        )
        self._client_owned = client is None

    def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "Content-Type": "application/json",
            "User-Agent": runtime_version.user_agent(),
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        return headers

    async def stream_user_event(
        self,
        endpoint: str,
        payload: Dict[str, Any],
    ) -> AsyncIterator[str]:
        """
        Submit ``payload`` to ``endpoint`` and yield the response body lines.

        The request is issued when iteration starts.
        """
        log.info(f"Opening SSE stream {endpoint}")
        try:
            async with self._client.stream(
                "POST",
                endpoint,
                content=json.dumps(payload),
                headers=self._build_headers(),
            ) as resp:
                status = resp.status_code
                if status != 200:
                    body_preview = ""
                    try:
                        raw = await resp.aread()
                        body_preview = raw.decode(errors="ignore")[:500]
                    except httpx.HTTPError:
                        body_preview = "<unreadable>"
                    log.error(
                        "SSE request failed [%s] endpoint=%s body=%s",
                        status,
                        endpoint,
                        body_preview,
                    )
                    raise TransportError(
                        f"{endpoint} returned HTTP {status}: {body_preview}",
                        status_code=status,
                    )

                ct = resp.headers.get("content-type")
                if ct and "text/event-stream" not in ct:
                    log.warning(f"Unexpected content-type for SSE stream: {ct}")

                async for line in resp.aiter_lines():
                    yield line

        except httpx.HTTPError as e:
            log.warning(f"SSE stream error ({endpoint}): {e!r}")
            raise TransportError(f"{endpoint} stream failed: {e!r}") from e

        log.debug(f"SSE stream completed ({endpoint})")

    async def aclose(self) -> None:
        if self._client_owned:
            await self._client.aclose()


__all__ = ["BackendStreamClient", "TransportError"]
