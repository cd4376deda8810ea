"""
Request Log Module

In-memory record of HTTP exchanges shown by the demo UI, and the httpx
wrapper that feeds it.

Key responsibilities:
- Keep the most recent MAX_LOGS exchanges, newest first
- Redact Authorization and Cookie header values before storing
- Record every outbound call (discovery, token, userinfo, Altinn APIs),
  including transport failures
"""

import itertools
import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Mapping, Optional

import httpx

from altinn_auth.models import LogEntry

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SENSITIVE_HEADERS = ("authorization", "cookie")


def redact_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy headers, replacing sensitive values with a redaction marker."""
    if not headers:
        return {}
    return {
        key: REDACTED if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


class RequestLog:
    """
    Bounded, newest-first log of HTTP exchanges.

    Not locked: appends from concurrent requests may interleave, which only
    affects ordering of the displayed log.
    """

    def __init__(self, max_entries: int = 1000):
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._ids = itertools.count(1)
        self.max_entries = max_entries

    def record(
        self,
        type: str,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, Any]] = None,
        request_body: Any = None,
        response_body: Any = None,
        status_code: Optional[int] = None,
        started_at: Optional[datetime] = None,
    ) -> LogEntry:
        """
        Append an exchange to the log.

        Args:
            type: "outgoing" for calls this service makes, "incoming" for
                  requests it receives
            started_at: When the exchange started; used for timestamp and
                        duration. Defaults to now.

        Returns:
            The stored entry
        """
        now = datetime.now(timezone.utc)
        started = started_at or now

        entry = LogEntry(
            id=next(self._ids),
            type=type,
            timestamp=started.isoformat(),
            method=(method or "GET").upper(),
            url=url,
            headers=redact_headers(headers),
            request_body=request_body,
            response_body=response_body,
            status_code=status_code,
            duration=int((now - started).total_seconds() * 1000),
        )

        self._entries.appendleft(entry)
        return entry

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class LoggedHttpClient:
    """
    httpx.AsyncClient wrapper that records each call in a RequestLog.

    Non-2xx responses are returned to the caller; transport errors are
    recorded with status 500 and re-raised.
    """

    def __init__(self, client: httpx.AsyncClient, request_log: RequestLog):
        self.client = client
        self.request_log = request_log

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        started_at = datetime.now(timezone.utc)
        request_body = data if data is not None else json
        start = time.monotonic()

        try:
            response = await self.client.request(
                method,
                url,
                headers=headers,
                params=params,
                data=data,
                json=json,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.request_log.record(
                "outgoing",
                url,
                method,
                headers,
                request_body,
                {"error": str(e) or type(e).__name__},
                500,
                started_at,
            )
            logger.warning(
                f"Outgoing {method} failed: {type(e).__name__}",
                extra={"url": url},
            )
            raise

        self.request_log.record(
            "outgoing",
            str(response.request.url),
            method,
            headers,
            request_body,
            _response_body(response),
            response.status_code,
            started_at,
        )
        logger.debug(
            f"Outgoing {method} {url} -> {response.status_code}",
            extra={"elapsed_ms": int((time.monotonic() - start) * 1000)},
        )
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self.client.aclose()
