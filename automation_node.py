"""Browser automation workflow node."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, TypedDict, Union

from langchain_core.tools import StructuredTool
from langgraph.graph import END, START, StateGraph

from browser_runtime.capabilities import capability, export_tools
from browser_runtime.context import InvocationContext, SessionContext
from browser_runtime.event_logger import NodeEventLogger
from browser_runtime.models import ItemResult, Operation
from browser_runtime.page_actions import PageActionsFeature
from browser_runtime.parameters import NodeParameters
from browser_runtime.script_sandbox import ScriptSandbox
from browser_runtime.session import BrowserSessionManager
from node_workflow.batch_driver import BatchDriverNode
from node_workflow.session_admin import SessionAdminNode


class NodeState(TypedDict, total=False):
    context: Any
    parameters: Any
    operation: Any
    run_id: str
    results: List[Any]


class BrowserAutomationNode:
    """Run one browser operation over a batch of workflow items."""

    name = "browser_automation"
    description = "Browser automation node using Playwright"

    def __init__(
        self,
        *,
        session_manager: Optional[BrowserSessionManager] = None,
        sandbox: Optional[ScriptSandbox] = None,
        activity_db_path: Optional[Union[str, Path]] = None,
        event_logger: Optional[NodeEventLogger] = None,
        logger: Any = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.session_manager = session_manager or BrowserSessionManager(logger=self.logger)
        self.event_logger = event_logger
        if self.event_logger is None and activity_db_path:
            self.event_logger = NodeEventLogger(Path(activity_db_path))

        self.page_actions = PageActionsFeature(self.session_manager, logger=self.logger)
        self.session_admin_node_impl = SessionAdminNode(
            session_manager=self.session_manager,
            logger=self.logger,
        )
        self.batch_driver_node_impl = BatchDriverNode(
            session_manager=self.session_manager,
            page_actions=self.page_actions,
            sandbox=sandbox or ScriptSandbox(logger=self.logger),
            event_logger=self.event_logger,
            logger=self.logger,
        )

    async def execute(
        self,
        context: InvocationContext,
        parameters: Union[NodeParameters, Mapping[str, Any]],
    ) -> List[ItemResult]:
        """Run the configured operation and return the output items in order."""
        params = parameters if isinstance(parameters, NodeParameters) else NodeParameters(parameters)
        operation = params.operation()
        run_id = uuid.uuid4().hex
        if self.event_logger is not None:
            self.event_logger.init_run(run_id, context.execution_id, operation.value)

        state: NodeState = {
            "context": context,
            "parameters": params,
            "operation": operation,
            "run_id": run_id,
            "results": [],
        }

        graph = StateGraph(NodeState)
        graph.add_node("start_persistent", self._start_persistent_node)
        graph.add_node("stop_persistent", self._stop_persistent_node)
        graph.add_node("run_batch", self._run_batch_node)
        graph.add_conditional_edges(
            START,
            self._route_operation,
            {
                "start_persistent": "start_persistent",
                "stop_persistent": "stop_persistent",
                "run_batch": "run_batch",
            },
        )
        graph.add_edge("start_persistent", END)
        graph.add_edge("stop_persistent", END)
        graph.add_edge("run_batch", END)
        app = graph.compile()

        try:
            final_state = await app.ainvoke(state)
        except Exception as e:
            self.logger.error("Operation %s failed: %s", operation.value, e)
            if self.event_logger is not None:
                self.event_logger.complete_run(run_id, status="failed", error=str(e))
            raise

        if self.event_logger is not None:
            self.event_logger.complete_run(run_id, status="completed")
        return list(final_state.get("results") or [])

    def get_tools(
        self,
        session_context: Optional[SessionContext] = None,
        base_parameters: Optional[Mapping[str, Any]] = None,
    ) -> List[StructuredTool]:
        """Export page-action tools for LLM tool calling."""
        return export_tools(NodeToolset(self, session_context or SessionContext(), base_parameters))

    @staticmethod
    def _route_operation(state: Dict[str, Any]) -> str:
        operation = state["operation"]
        if operation is Operation.START_PERSISTENT:
            return "start_persistent"
        if operation is Operation.STOP_PERSISTENT:
            return "stop_persistent"
        return "run_batch"

    async def _start_persistent_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return await self.session_admin_node_impl.start(state)

    async def _stop_persistent_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return await self.session_admin_node_impl.stop(state)

    async def _run_batch_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return await self.batch_driver_node_impl.run(state)


class NodeToolset:
    """Page actions of one node bound to a session context, as tools."""

    def __init__(
        self,
        node: BrowserAutomationNode,
        session_context: SessionContext,
        base_parameters: Optional[Mapping[str, Any]] = None,
    ):
        self._node = node
        self._session_context = session_context
        self._base_parameters = dict(base_parameters or {})

    @capability(
        name="browser_get_page_content",
        examples=["browser_get_page_content(url='https://example.com')"],
    )
    async def get_page_content(self, url: str) -> Dict[str, Any]:
        """Open a URL in the browser and return its rendered HTML as ``body``."""
        result = await self._run_one(Operation.GET_CONTENT, {"url": url})
        return dict(result.json)

    @capability(
        name="browser_get_screenshot",
        examples=["browser_get_screenshot(url='https://example.com', image_type='jpeg', quality=80)"],
    )
    async def get_screenshot(
        self,
        url: str,
        image_type: str = "png",
        full_page: bool = True,
        quality: int = 100,
    ) -> Dict[str, Any]:
        """Open a URL and capture a screenshot, returned base64 encoded."""
        result = await self._run_one(
            Operation.GET_SCREENSHOT,
            {"url": url, "image_type": image_type, "full_page": full_page, "quality": quality},
        )
        return _binary_summary(result)

    @capability(
        name="browser_get_pdf",
        examples=["browser_get_pdf(url='https://example.com', paper_format='A4')"],
    )
    async def get_pdf(self, url: str, paper_format: str = "", landscape: bool = False) -> Dict[str, Any]:
        """Open a URL and render it as a PDF, returned base64 encoded.

        With a paper format the page is laid out at that size, otherwise the
        page's own CSS page size is used.
        """
        overrides: Dict[str, Any] = {"url": url, "landscape": landscape}
        if paper_format:
            overrides.update({"prefer_css_page_size": False, "format": paper_format})
        result = await self._run_one(Operation.GET_PDF, overrides)
        return _binary_summary(result)

    async def _run_one(self, operation: Operation, overrides: Dict[str, Any]) -> ItemResult:
        params = {**self._base_parameters, **overrides, "operation": operation.value}
        context = InvocationContext(session_context=self._session_context)
        results = await self._node.execute(context, params)
        return results[0]


def _binary_summary(result: ItemResult) -> Dict[str, Any]:
    summary: Dict[str, Any] = dict(result.json)
    for name, payload in result.binary.items():
        summary[name] = {
            "mime_type": payload.mime_type,
            "file_size": payload.file_size,
            "base64": payload.data,
        }
    return summary
