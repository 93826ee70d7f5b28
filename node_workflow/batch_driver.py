from __future__ import annotations

import logging
import textwrap
from typing import Any, Dict, List, Optional

from browser_runtime.context import InvocationContext
from browser_runtime.errors import BrowserNodeError
from browser_runtime.event_logger import NodeEventLogger
from browser_runtime.models import ItemResult, Operation
from browser_runtime.page_actions import PageActionsFeature
from browser_runtime.parameters import NodeParameters
from browser_runtime.script_sandbox import ScriptBindings, ScriptSandbox
from browser_runtime.session import BrowserHandle, BrowserSessionManager


class BatchDriverNode:
    """Run a script or page action over every input item with one browser."""

    def __init__(
        self,
        *,
        session_manager: BrowserSessionManager,
        page_actions: PageActionsFeature,
        sandbox: ScriptSandbox,
        event_logger: Optional[NodeEventLogger] = None,
        logger: Any = None,
    ) -> None:
        self._session_manager = session_manager
        self._page_actions = page_actions
        self._sandbox = sandbox
        self._event_logger = event_logger
        self._logger = logger or logging.getLogger(__name__)

    async def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        results = await self.run_items(
            state["context"],
            state["parameters"],
            state["operation"],
            run_id=str(state.get("run_id") or ""),
        )
        return {"results": results}

    async def run_items(
        self,
        context: InvocationContext,
        params: NodeParameters,
        operation: Operation,
        *,
        run_id: str = "",
    ) -> List[ItemResult]:
        """Resolve the browser once, then run items strictly in input order.

        The browser handle is released exactly once, whatever happens to
        the items.
        """
        items = list(context.items)
        if not items:
            return []

        self._logger.info(
            "Running %s on %s item(s), batch_size=%s",
            operation.value,
            len(items),
            params.batch_size(),
        )
        handle = await self._session_manager.resolve(
            context.session_context,
            params.manual_override(),
            params.launch_options(),
        )

        results: List[ItemResult] = []
        try:
            for index in range(len(items)):
                try:
                    item_results = await self._run_item(handle, context, params, operation, index)
                except Exception as e:
                    if isinstance(e, BrowserNodeError) and e.item_index is None:
                        e.item_index = index
                    self._record(run_id, index, "item_failed", {"error": str(e)})
                    if not context.continue_on_fail:
                        raise
                    self._logger.warning("Item %s failed, continuing: %s", index, e)
                    results.append(ItemResult(json={"error": str(e)}, paired_item=index))
                    continue
                self._record(run_id, index, "item_succeeded", {"outputs": len(item_results)})
                results.extend(item_results)
        finally:
            await self._release(handle)
        return results

    async def _run_item(
        self,
        handle: BrowserHandle,
        context: InvocationContext,
        params: NodeParameters,
        operation: Operation,
        index: int,
    ) -> List[ItemResult]:
        if operation is not Operation.RUN_SCRIPT:
            return [await self._page_actions.run(handle, operation, params, index)]

        script_code = textwrap.dedent(str(params.get("script_code", index, "") or ""))
        async with self._session_manager.page_scope(handle) as page_handle:
            bindings = ScriptBindings(
                page=page_handle.page,
                browser=handle.browser,
                items=context.items,
                item_index=index,
                page_id=handle.session.page_id if handle.session is not None else None,
                manual=context.is_manual,
                send_message_to_ui=context.send_message_to_ui,
            )
            return await self._sandbox.run(script_code, bindings)

    async def _release(self, handle: BrowserHandle) -> None:
        try:
            policy = await handle.release()
        except Exception as e:
            self._logger.warning("Failed to release browser (%s): %s", handle.release_policy.value, e)
            return
        self._logger.info("Released browser (%s)", policy.value)

    def _record(self, run_id: str, index: int, event_type: str, payload: Dict[str, Any]) -> None:
        if self._event_logger is None or not run_id:
            return
        self._event_logger.log_item_event(run_id, index, event_type, payload)
