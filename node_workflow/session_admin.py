from __future__ import annotations

import logging
from typing import Any, Dict

from browser_runtime.models import ItemResult
from browser_runtime.session import BrowserSessionManager


class SessionAdminNode:
    """Start and stop persistent sessions on the remote browser manager."""

    def __init__(self, *, session_manager: BrowserSessionManager, logger: Any = None) -> None:
        self._session_manager = session_manager
        self._logger = logger or logging.getLogger(__name__)

    async def start(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Request a session and store it as the workflow's ambient session."""
        context = state["context"]
        params = state["parameters"]
        descriptor = await self._session_manager.start_persistent(
            context.session_context,
            params.session_id(context.execution_id),
            params.browser_manager_url(),
        )
        return {"results": [ItemResult(json=descriptor.to_json(), paired_item=0)]}

    async def stop(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Stop the ambient session, or the fallback one when none is stored."""
        context = state["context"]
        params = state["parameters"]
        stop_session_id, stop_manager_url = params.stop_fallback()
        message = await self._session_manager.stop_persistent(
            context.session_context,
            stop_session_id,
            stop_manager_url,
        )
        return {"results": [ItemResult(json=message, paired_item=0)]}
