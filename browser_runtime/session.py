"""Browser session resolution and handle lifecycle."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from playwright.async_api import async_playwright

from .context import SessionContext
from .errors import (
    ConnectFailure,
    IncompleteManualOverride,
    LaunchFailure,
    NoSessionToStop,
    PageNotFound,
)
from .models import (
    MANUAL_OVERRIDE_SESSION_ID,
    LaunchOptions,
    ManualOverride,
    SessionDescriptor,
)
from .remote_sessions import RemoteSessionClient

CONTAINER_LAUNCH_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
)


class BrowserProvenance(str, Enum):
    CONNECTED = "connected"
    LAUNCHED = "launched"


class PageProvenance(str, Enum):
    ATTACHED = "attached"
    CREATED = "created"


class ReleasePolicy(str, Enum):
    DISCONNECT = "disconnect"
    CLOSE = "close"


@dataclass
class BrowserHandle:
    """A browser connection plus the rule for letting go of it.

    Connected handles point at a process someone else owns: they are only
    ever disconnected. Launched handles own their process and are closed.
    """

    browser: Any
    playwright: Any
    provenance: BrowserProvenance
    session: Optional[SessionDescriptor] = None
    released: bool = False

    @property
    def release_policy(self) -> ReleasePolicy:
        if self.provenance is BrowserProvenance.LAUNCHED:
            return ReleasePolicy.CLOSE
        return ReleasePolicy.DISCONNECT

    @property
    def is_manual_override(self) -> bool:
        return self.session is not None and self.session.is_manual_override

    async def release(self) -> ReleasePolicy:
        """Disconnect or close, at most once."""
        policy = self.release_policy
        if self.released:
            return policy
        self.released = True
        if policy is ReleasePolicy.CLOSE:
            try:
                await self.browser.close()
            finally:
                await self.playwright.stop()
        else:
            # Stopping the driver drops the CDP connection and leaves the
            # remote browser running.
            await self.playwright.stop()
        return policy


@dataclass
class PageHandle:
    """A page plus whether this invocation may close it."""

    page: Any
    provenance: PageProvenance
    page_id: Optional[str] = None

    @property
    def owned(self) -> bool:
        return self.provenance is PageProvenance.CREATED

    async def release(self) -> bool:
        """Close a created page that is still open. Returns True if closed."""
        if not self.owned:
            return False
        try:
            if self.page.is_closed():
                return False
        except Exception:
            return False
        await self.page.close()
        return True


@dataclass(frozen=True)
class LaunchConfig:
    """Resolved keyword arguments for ``chromium.launch``."""

    headless: bool = True
    args: Tuple[str, ...] = ()
    executable_path: Optional[str] = None

    def to_launch_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headless": self.headless, "args": list(self.args)}
        if self.executable_path:
            kwargs["executable_path"] = self.executable_path
        return kwargs


def merge_container_args(args: Sequence[str]) -> List[str]:
    """Append the recommended container arguments that are not present yet."""
    merged = list(args)
    for arg in CONTAINER_LAUNCH_ARGS:
        if arg not in merged:
            merged.append(arg)
    return merged


def build_launch_config(options: LaunchOptions) -> LaunchConfig:
    args = [arg for arg in options.launch_arguments if arg]
    if options.add_container_args:
        args = merge_container_args(args)
    return LaunchConfig(
        headless=options.headless is not False,
        args=tuple(args),
        executable_path=options.executable_path or None,
    )


@dataclass
class StopTarget:
    """Which session StopPersistent releases and where it came from."""

    session_id: str
    browser_manager_url: str
    from_ambient: bool = False


class BrowserSessionManager:
    """Decide per invocation how to obtain a browser, and obtain it.

    Modes, mutually exclusive per invocation:
    - start/stop a persistent session on the remote browser manager
    - attach to the ambient persistent session (connected)
    - attach to a manually supplied endpoint and page (connected)
    - launch a temporary browser (launched)
    """

    def __init__(
        self,
        session_client: Optional[RemoteSessionClient] = None,
        playwright_factory: Optional[Callable[[], Any]] = None,
        logger: Any = None,
    ):
        self.session_client = session_client or RemoteSessionClient()
        self.playwright_factory = playwright_factory or async_playwright
        self.logger = logger or logging.getLogger(__name__)

    # Administrative operations.

    async def start_persistent(
        self,
        session_context: SessionContext,
        session_id: str,
        browser_manager_url: str,
    ) -> SessionDescriptor:
        descriptor = await self.session_client.start(session_id, browser_manager_url)
        session_context.set(descriptor)
        return descriptor

    def select_stop_target(
        self,
        session_context: SessionContext,
        fallback_session_id: str = "",
        fallback_manager_url: str = "",
    ) -> StopTarget:
        ambient = session_context.current
        if ambient is not None:
            target = StopTarget(
                session_id=ambient.session_id,
                browser_manager_url=ambient.browser_manager_url,
                from_ambient=True,
            )
        else:
            target = StopTarget(
                session_id=str(fallback_session_id or "").strip(),
                browser_manager_url=str(fallback_manager_url or "").strip(),
            )
        if not target.session_id or not target.browser_manager_url:
            raise NoSessionToStop(
                "Could not find a session to stop. Provide a fallback session id "
                "or make sure a start operation ran in this workflow."
            )
        return target

    async def stop_persistent(
        self,
        session_context: SessionContext,
        fallback_session_id: str = "",
        fallback_manager_url: str = "",
    ) -> Dict[str, Any]:
        target = self.select_stop_target(session_context, fallback_session_id, fallback_manager_url)
        await self.session_client.stop(target.session_id, target.browser_manager_url)
        if target.from_ambient:
            session_context.clear()
        return {"message": "Session stopped."}

    # Resolution for actions and scripts.

    def select_session(
        self,
        session_context: SessionContext,
        manual: ManualOverride,
    ) -> Optional[SessionDescriptor]:
        """Return the session to attach to, or ``None`` to launch."""
        ambient = session_context.current
        if ambient is not None:
            return ambient
        if not manual.requested:
            return None
        if not manual.ws_endpoint or not manual.page_id:
            raise IncompleteManualOverride(
                "For manual session override, both the WebSocket endpoint and "
                "the page id are required."
            )
        return SessionDescriptor(
            ws_endpoint=manual.ws_endpoint,
            page_id=manual.page_id,
            session_id=MANUAL_OVERRIDE_SESSION_ID,
            browser_manager_url="",
        )

    async def resolve(
        self,
        session_context: SessionContext,
        manual: ManualOverride,
        launch: LaunchOptions,
    ) -> BrowserHandle:
        session = self.select_session(session_context, manual)
        if session is not None:
            return await self.connect(session)
        return await self.launch(build_launch_config(launch))

    async def connect(self, session: SessionDescriptor) -> BrowserHandle:
        pw = await self.playwright_factory().start()
        try:
            browser = await pw.chromium.connect_over_cdp(session.ws_endpoint)
        except Exception as e:
            await self._stop_quietly(pw)
            raise ConnectFailure(
                f"Failed to connect to persistent browser at {session.ws_endpoint}: {e}",
                description="Failed to connect to persistent browser.",
            ) from e
        self.logger.info(
            "Connected to browser session=%s page=%s",
            session.session_id,
            session.page_id,
        )
        return BrowserHandle(
            browser=browser,
            playwright=pw,
            provenance=BrowserProvenance.CONNECTED,
            session=session,
        )

    async def launch(self, config: LaunchConfig) -> BrowserHandle:
        pw = await self.playwright_factory().start()
        try:
            browser = await pw.chromium.launch(**config.to_launch_kwargs())
        except Exception as e:
            await self._stop_quietly(pw)
            raise LaunchFailure(
                f"Failed to launch temporary browser: {e}",
                description="Failed to launch temporary browser.",
            ) from e
        self.logger.info(
            "Launched temporary browser headless=%s args=%s",
            config.headless,
            list(config.args),
        )
        return BrowserHandle(
            browser=browser,
            playwright=pw,
            provenance=BrowserProvenance.LAUNCHED,
        )

    # Pages.

    async def acquire_page(self, handle: BrowserHandle) -> PageHandle:
        if handle.session is not None:
            page_id = handle.session.page_id
            page = await find_page_by_target_id(handle.browser, page_id)
            if page is None:
                raise PageNotFound(f"Could not find persistent page with ID '{page_id}'.")
            return PageHandle(page=page, provenance=PageProvenance.ATTACHED, page_id=page_id)

        page = await handle.browser.new_page()
        return PageHandle(page=page, provenance=PageProvenance.CREATED)

    @asynccontextmanager
    async def page_scope(self, handle: BrowserHandle) -> AsyncIterator[PageHandle]:
        """Yield a page for one item and release it on every path."""
        page_handle = await self.acquire_page(handle)
        try:
            yield page_handle
        except BaseException:
            try:
                await page_handle.release()
            except Exception as e:
                self.logger.warning("Failed to close page after error: %s", e)
            raise
        else:
            await page_handle.release()

    async def _stop_quietly(self, pw: Any) -> None:
        try:
            await pw.stop()
        except Exception as e:
            self.logger.warning("Failed to stop Playwright driver: %s", e)


async def read_target_id(page: Any) -> str:
    """Return the CDP target id of a page, or an empty string."""
    cdp = await page.context.new_cdp_session(page)
    try:
        info = await cdp.send("Target.getTargetInfo")
    finally:
        try:
            await cdp.detach()
        except Exception:
            pass
    return str((info or {}).get("targetInfo", {}).get("targetId", ""))


async def find_page_by_target_id(browser: Any, page_id: str) -> Optional[Any]:
    for context in browser.contexts:
        for page in context.pages:
            try:
                target_id = await read_target_id(page)
            except Exception:
                target_id = ""
            if target_id == page_id:
                return page
    return None
