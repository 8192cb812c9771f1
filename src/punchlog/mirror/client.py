"""
Spreadsheet mirror webhook client.

The sheet side is a script endpoint that accepts one day's row as JSON and
answers with a `result` discriminator ("success", "not_found", ...) plus an
optional list of diagnostic log lines.

requests is synchronous; calls run in the thread pool executor.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

# Script results that mean the row was not written.
FAILURE_RESULTS = frozenset({"not_found", "error"})


class MirrorError(RuntimeError):
    """Raised when the webhook call fails at the transport, HTTP or JSON level."""


@dataclass
class MirrorResponse:
    result: Optional[str]
    logs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """
        The script wrote the row. "not_found", "error" and a body with no
        result at all count as failures; any other result is a success.
        """
        return bool(self.result) and self.result not in FAILURE_RESULTS


class SheetMirrorClient:
    """Posts daily rows to the spreadsheet webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            url: Webhook endpoint.
            timeout: Per-request timeout in seconds.
            session: Optional requests.Session (a MagicMock in tests).
        """
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    async def send(self, payload: Dict[str, Any]) -> MirrorResponse:
        """
        POST one row to the sheet.

        Raises:
            MirrorError: on connection errors, timeouts, non-2xx responses or
                a body that is not JSON.
        """
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: self._send_sync(payload))

    def _send_sync(self, payload: Dict[str, Any]) -> MirrorResponse:
        logger.info("Sending %s to sheet", payload.get("dateKey"))
        try:
            resp = self._session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.exceptions.RequestException as exc:
            raise MirrorError(f"Sheet webhook request failed: {exc}") from exc
        except ValueError as exc:
            raise MirrorError("Sheet webhook returned a non-JSON body") from exc

        if not isinstance(body, dict):
            raise MirrorError(f"Unexpected sheet response: {body!r}")
        logs = body.get("logs") or []
        return MirrorResponse(result=body.get("result"), logs=[str(line) for line in logs])
