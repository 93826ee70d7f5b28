"""HTTP client for the remote browser manager."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import SessionStartFailure, SessionStopFailure
from .models import SessionDescriptor


class RemoteSessionClient:
    """
    Request and release persistent sessions from the browser manager.

    Contract:
        POST {manager}/start  {"sessionId"} -> {"wsEndpoint", "pageId", "sessionId"}
        POST {manager}/stop   {"sessionId"} -> acknowledgement

    One attempt per call. Any non-2xx response or transport error is fatal
    to the calling operation.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Any = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

    async def start(self, session_id: str, browser_manager_url: str) -> SessionDescriptor:
        base_url = str(browser_manager_url or "").rstrip("/")
        try:
            payload = await self._post(f"{base_url}/start", {"sessionId": session_id})
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            self.logger.error("Browser manager start failed for session=%s: %s", session_id, e)
            raise SessionStartFailure(
                f"Failed to start browser session '{session_id}': {e}",
                description="Failed to start browser session from manager.",
            ) from e

        ws_endpoint = str(payload.get("wsEndpoint") or "")
        page_id = str(payload.get("pageId") or "")
        if not ws_endpoint or not page_id:
            raise SessionStartFailure(
                f"Browser manager returned an incomplete session for '{session_id}'.",
                description="The start response must contain wsEndpoint and pageId.",
            )

        descriptor = SessionDescriptor(
            ws_endpoint=ws_endpoint,
            page_id=page_id,
            session_id=str(payload.get("sessionId") or session_id),
            browser_manager_url=base_url,
        )
        self.logger.info(
            "Started persistent session=%s page=%s via %s",
            descriptor.session_id,
            descriptor.page_id,
            base_url,
        )
        return descriptor

    async def stop(self, session_id: str, browser_manager_url: str) -> Dict[str, Any]:
        base_url = str(browser_manager_url or "").rstrip("/")
        try:
            payload = await self._post(f"{base_url}/stop", {"sessionId": session_id})
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            self.logger.error("Browser manager stop failed for session=%s: %s", session_id, e)
            raise SessionStopFailure(
                f"Failed to stop browser session '{session_id}': {e}",
                description="Failed to stop browser session.",
            ) from e
        self.logger.info("Stopped persistent session=%s via %s", session_id, base_url)
        return payload

    async def _post(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(url, json=body, headers=headers)
            response.raise_for_status()
            if not response.content:
                return {}
            try:
                parsed = response.json()
            except ValueError:
                return {"text": response.text}
            return parsed if isinstance(parsed, dict) else {"data": parsed}
