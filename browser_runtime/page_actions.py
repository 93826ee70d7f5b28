"""Content, screenshot and PDF actions on a single page."""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ActionFailure, BrowserNodeError, UnknownOperation
from .models import BinaryPayload, ItemResult, Operation
from .parameters import DEFAULT_DATA_PROPERTY, NodeParameters
from .render_options import (
    PDF_MIME_TYPE,
    PdfOptions,
    ScreenshotOptions,
    build_navigation_url,
    build_pdf_options,
    build_screenshot_options,
)
from .session import BrowserHandle, BrowserSessionManager

NAVIGATION_WAIT_UNTIL = "networkidle"
_TRANSPARENT = {"r": 0, "g": 0, "b": 0, "a": 0}


class PageActionsFeature:
    """Navigate to a URL and extract content, a screenshot or a PDF."""

    def __init__(
        self,
        session_manager: BrowserSessionManager,
        logger: Any = None,
    ):
        self.session_manager = session_manager
        self.logger = logger or logging.getLogger(__name__)

    async def run(
        self,
        handle: BrowserHandle,
        operation: Operation,
        params: NodeParameters,
        item_index: int,
    ) -> ItemResult:
        """Run one page action for one item.

        Options are validated before the page is touched. The result is
        paired to ``item_index`` and carries the session page id when the
        browser is a persistent session.
        """
        try:
            result = await self._run(handle, operation, params, item_index)
        except BrowserNodeError as e:
            if e.item_index is None:
                e.item_index = item_index
            raise
        except Exception as e:
            raise ActionFailure(
                f"{operation.value} failed: {e}",
                description=f"The {operation.value} action failed.",
                item_index=item_index,
            ) from e

        result.paired_item = item_index
        if handle.session is not None:
            result = result.with_page_id(handle.session.page_id)
        return result

    async def _run(
        self,
        handle: BrowserHandle,
        operation: Operation,
        params: NodeParameters,
        item_index: int,
    ) -> ItemResult:
        url = build_navigation_url(
            params.get_str("url", item_index),
            params.query_parameters(item_index),
        )
        screenshot_options = None
        pdf_options = None
        if operation is Operation.GET_SCREENSHOT:
            screenshot_options = build_screenshot_options(params, item_index)
        elif operation is Operation.GET_PDF:
            pdf_options = build_pdf_options(params, item_index)
        elif operation is not Operation.GET_CONTENT:
            raise UnknownOperation(f"The operation '{operation.value}' is not a page action.")

        async with self.session_manager.page_scope(handle) as page_handle:
            page = page_handle.page
            await page.goto(url, wait_until=NAVIGATION_WAIT_UNTIL)
            self.logger.info("Navigated item=%s to %s", item_index, url)

            if screenshot_options is not None:
                raw = await self.screenshot(page, screenshot_options)
                payload = BinaryPayload.from_bytes(
                    raw,
                    screenshot_options.mime_type,
                    _display_name(screenshot_options.file_name),
                )
                return self._binary_result(params, item_index, url, payload)

            if pdf_options is not None:
                raw = await self.pdf(page, pdf_options)
                payload = BinaryPayload.from_bytes(raw, PDF_MIME_TYPE, _display_name(pdf_options.file_name))
                return self._binary_result(params, item_index, url, payload)

            return ItemResult(json={"body": await page.content()})

    async def screenshot(self, page: Any, options: ScreenshotOptions) -> bytes:
        if options.image_type != "webp":
            image = await page.screenshot(**options.to_playwright_kwargs())
            return bytes(image)

        # Playwright has no webp encoder; ask Chromium directly.
        cdp = await page.context.new_cdp_session(page)
        try:
            params: Dict[str, Any] = {"format": "webp", "fromSurface": True}
            if options.quality is not None:
                params["quality"] = options.quality
            if options.full_page:
                metrics = await cdp.send("Page.getLayoutMetrics")
                size = (metrics or {}).get("cssContentSize") or (metrics or {}).get("contentSize") or {}
                width = float(size.get("width") or 0)
                height = float(size.get("height") or 0)
                params["captureBeyondViewport"] = True
                # Chromium rejects an empty clip.
                if width > 0 and height > 0:
                    params["clip"] = {"x": 0, "y": 0, "width": width, "height": height, "scale": 1}
            response = await cdp.send("Page.captureScreenshot", params)
        finally:
            await _detach_quietly(cdp)

        image_b64 = (response or {}).get("data")
        if not image_b64:
            raise ActionFailure("Browser returned empty webp screenshot data.")
        image = base64.b64decode(image_b64)
        if options.file_name:
            Path(options.file_name).write_bytes(image)
        return image

    async def pdf(self, page: Any, options: PdfOptions) -> bytes:
        if not options.omit_background:
            return bytes(await page.pdf(**options.to_playwright_kwargs()))

        cdp = await page.context.new_cdp_session(page)
        try:
            await cdp.send("Emulation.setDefaultBackgroundColorOverride", {"color": _TRANSPARENT})
            try:
                return bytes(await page.pdf(**options.to_playwright_kwargs()))
            finally:
                try:
                    await cdp.send("Emulation.setDefaultBackgroundColorOverride", {})
                except Exception as e:
                    self.logger.warning("Failed to restore page background: %s", e)
        finally:
            await _detach_quietly(cdp)

    def _binary_result(
        self,
        params: NodeParameters,
        item_index: int,
        url: str,
        payload: BinaryPayload,
    ) -> ItemResult:
        property_name = params.get_str("data_property_name", item_index, DEFAULT_DATA_PROPERTY)
        return ItemResult(
            json={"url": url},
            binary={property_name or DEFAULT_DATA_PROPERTY: payload},
        )


def _display_name(file_name: Optional[str]) -> Optional[str]:
    return Path(file_name).name if file_name else None


async def _detach_quietly(cdp: Any) -> None:
    try:
        await cdp.detach()
    except Exception:
        pass
