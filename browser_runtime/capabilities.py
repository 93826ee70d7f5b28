"""Closed capability surface handed to user scripts and tool callers."""

from __future__ import annotations

import inspect
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from langchain_core.tools import StructuredTool

from .models import BinaryPayload


def capability(
    _func: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    examples: Optional[List[str]] = None,
) -> Any:
    """Decorator to mark a method as part of a capability surface."""

    def _decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, "_is_capability", True)
        setattr(func, "_capability_name", name or func.__name__)
        setattr(func, "_capability_examples", examples or [])
        return func

    if _func is None:
        return _decorate
    return _decorate(_func)


def collect_capabilities(owner: Any) -> Dict[str, Callable[..., Any]]:
    """Return the decorator-marked bound methods of ``owner`` by name."""
    found: Dict[str, Callable[..., Any]] = {}
    for attr in dir(owner):
        if attr.startswith("_"):
            continue
        method = getattr(owner, attr, None)
        if not callable(method) or not getattr(method, "_is_capability", False):
            continue
        found[str(getattr(method, "_capability_name", attr))] = method
    return found


def capability_namespace(owner: Any) -> SimpleNamespace:
    """Expose only the marked methods of ``owner``, nothing else."""
    return SimpleNamespace(**collect_capabilities(owner))


def export_tools(owner: Any) -> List[StructuredTool]:
    """Export marked coroutine methods as tools for LLM tool calling."""
    tools: List[StructuredTool] = []
    for tool_name, method in sorted(collect_capabilities(owner).items()):
        doc = inspect.getdoc(method) or f"Tool: {tool_name}"
        examples = list(getattr(method, "_capability_examples", []) or [])
        if examples:
            doc = f"{doc}\n\nExamples:\n" + "\n".join(f"- {x}" for x in examples)
        tools.append(
            StructuredTool.from_function(
                name=tool_name,
                description=doc,
                coroutine=method,
            )
        )
    return tools


class PageCapabilities:
    """Page operations a script may perform."""

    def __init__(self, page: Any):
        self._page = page

    @capability(examples=["await page.goto('https://example.com')"])
    async def goto(self, url: str, wait_until: str = "networkidle") -> Dict[str, Any]:
        """Navigate the page and return the final URL and HTTP status."""
        valid_wait_until = {"load", "domcontentloaded", "networkidle", "commit"}
        wait_mode = wait_until if wait_until in valid_wait_until else "networkidle"
        response = await self._page.goto(str(url), wait_until=wait_mode)
        status = getattr(response, "status", None) if response is not None else None
        return {"url": self._page.url, "status": status}

    @capability
    async def content(self) -> str:
        """Return the rendered HTML of the page."""
        return await self._page.content()

    @capability
    async def title(self) -> str:
        return await self._page.title()

    @capability
    async def current_url(self) -> str:
        return str(self._page.url or "")

    @capability(examples=["await page.evaluate('() => document.title')"])
    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run JavaScript inside the page and return its JSON-serialisable result."""
        if arg is None:
            return await self._page.evaluate(expression)
        return await self._page.evaluate(expression, arg)

    @capability
    async def click(self, selector: str) -> None:
        await self._page.locator(selector).first.click()

    @capability
    async def fill(self, selector: str, text: str) -> None:
        await self._page.locator(selector).first.fill(str(text))

    @capability
    async def press(self, key: str, selector: Optional[str] = None) -> None:
        if selector:
            await self._page.locator(selector).first.press(key)
        else:
            await self._page.keyboard.press(key)

    @capability
    async def wait_for_selector(self, selector: str, timeout_ms: Optional[int] = None) -> bool:
        kwargs = {"timeout": timeout_ms} if timeout_ms else {}
        handle = await self._page.wait_for_selector(selector, **kwargs)
        return handle is not None

    @capability
    async def inner_text(self, selector: str) -> str:
        return await self._page.locator(selector).first.inner_text()

    @capability
    async def get_attribute(self, selector: str, name: str) -> Optional[str]:
        return await self._page.locator(selector).first.get_attribute(name)

    @capability
    async def screenshot(self, full_page: bool = True, image_type: str = "png") -> bytes:
        """Capture the page as png or jpeg bytes."""
        kind = image_type if image_type in ("png", "jpeg") else "png"
        return await self._page.screenshot(type=kind, full_page=bool(full_page))

    @capability
    async def pdf(self, landscape: bool = False, print_background: bool = False) -> bytes:
        return await self._page.pdf(landscape=bool(landscape), print_background=bool(print_background))


class BrowserCapabilities:
    """Browser-level facts a script may read."""

    def __init__(self, browser: Any):
        self._browser = browser

    @capability
    async def version(self) -> str:
        return str(getattr(self._browser, "version", "") or "")

    @capability
    async def page_urls(self) -> List[str]:
        urls: List[str] = []
        for context in self._browser.contexts:
            for page in context.pages:
                urls.append(str(page.url or ""))
        return urls


def make_binary(data: Any, mime_type: str, file_name: Optional[str] = None) -> BinaryPayload:
    """Wrap bytes produced by a script as a binary output payload."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return BinaryPayload.from_bytes(bytes(data), str(mime_type), file_name)
