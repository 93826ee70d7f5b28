"""Tests for content, screenshot and PDF actions."""

from __future__ import annotations

import pytest

from fakes import PDF_BYTES, PNG_BYTES, WEBP_BYTES, FakeBrowser, FakePage, FakePlaywright

from browser_runtime.errors import ActionFailure, InvalidURL, RenderOptionsInvalid
from browser_runtime.models import Operation, SessionDescriptor
from browser_runtime.page_actions import PageActionsFeature
from browser_runtime.parameters import NodeParameters
from browser_runtime.render_options import ScreenshotOptions
from browser_runtime.session import BrowserHandle, BrowserProvenance, BrowserSessionManager


def _launched(browser: FakeBrowser) -> BrowserHandle:
    return BrowserHandle(browser=browser, playwright=FakePlaywright(), provenance=BrowserProvenance.LAUNCHED)


@pytest.fixture
def actions() -> PageActionsFeature:
    manager = BrowserSessionManager(playwright_factory=FakePlaywright().factory)
    return PageActionsFeature(manager)


class TestContent:
    @pytest.mark.asyncio
    async def test_content_navigates_and_closes_page(self, actions):
        browser = FakeBrowser()
        params = NodeParameters(
            {"url": "https://example.test/", "query_parameters": [{"name": "lang", "value": "en"}]}
        )

        result = await actions.run(_launched(browser), Operation.GET_CONTENT, params, 0)

        page = browser.created_pages[0]
        assert result.json == {"body": page.html}
        assert result.paired_item == 0
        assert page.goto_calls == [("https://example.test/?lang=en", "networkidle")]
        assert page.close_calls == 1

    @pytest.mark.asyncio
    async def test_invalid_url_is_tagged_with_item(self, actions):
        browser = FakeBrowser()
        with pytest.raises(InvalidURL) as exc_info:
            await actions.run(_launched(browser), Operation.GET_CONTENT, NodeParameters({"url": "nope"}), 4)
        assert exc_info.value.item_index == 4
        assert browser.created_pages == []

    @pytest.mark.asyncio
    async def test_navigation_error_becomes_action_failure(self, actions):
        browser = FakeBrowser(fail_urls=["https://down.test/"])
        with pytest.raises(ActionFailure) as exc_info:
            await actions.run(
                _launched(browser), Operation.GET_CONTENT, NodeParameters({"url": "https://down.test/"}), 2
            )
        assert exc_info.value.item_index == 2
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert browser.created_pages[0].close_calls == 1

    @pytest.mark.asyncio
    async def test_session_results_carry_page_id(self, actions):
        session_page = FakePage(target_id="p1")
        browser = FakeBrowser(pages=[session_page])
        handle = BrowserHandle(
            browser=browser,
            playwright=FakePlaywright(),
            provenance=BrowserProvenance.CONNECTED,
            session=SessionDescriptor(ws_endpoint="ws://x", page_id="p1", session_id="abc"),
        )

        result = await actions.run(handle, Operation.GET_CONTENT, NodeParameters({"url": "https://a.test/"}), 0)

        assert result.json["pageId"] == "p1"
        assert session_page.close_calls == 0
        assert browser.created_pages == []


class TestScreenshot:
    @pytest.mark.asyncio
    async def test_png_screenshot(self, actions):
        browser = FakeBrowser()
        params = NodeParameters({"url": "https://example.test/", "data_property_name": "shot"})

        result = await actions.run(_launched(browser), Operation.GET_SCREENSHOT, params, 0)

        payload = result.binary["shot"]
        assert payload.mime_type == "image/png"
        assert payload.to_bytes() == PNG_BYTES
        assert result.json == {"url": "https://example.test/"}
        assert browser.created_pages[0].screenshot_calls == [{"type": "png", "full_page": True}]

    @pytest.mark.asyncio
    async def test_webp_goes_through_cdp(self, actions):
        browser = FakeBrowser()
        params = NodeParameters({"url": "https://example.test/", "image_type": "webp", "quality": 70})

        result = await actions.run(_launched(browser), Operation.GET_SCREENSHOT, params, 0)

        payload = result.binary["data"]
        assert payload.mime_type == "image/webp"
        assert payload.to_bytes() == WEBP_BYTES
        assert browser.created_pages[0].screenshot_calls == []

        calls = dict(browser.cdp_calls())
        assert calls["Page.captureScreenshot"]["format"] == "webp"
        assert calls["Page.captureScreenshot"]["quality"] == 70
        assert calls["Page.captureScreenshot"]["clip"]["height"] == 2400.0

    @pytest.mark.asyncio
    async def test_webp_without_layout_size_skips_clip(self, actions):
        """An unknown content size captures beyond the viewport without a clip."""
        page = FakePage()
        page.content_size = {}
        browser = FakeBrowser(pages=[page])

        image = await actions.screenshot(page, ScreenshotOptions(image_type="webp", full_page=True))

        assert image == WEBP_BYTES
        capture = dict(browser.cdp_calls())["Page.captureScreenshot"]
        assert capture["captureBeyondViewport"] is True
        assert "clip" not in capture

    @pytest.mark.asyncio
    async def test_bad_options_fail_before_navigation(self, actions):
        browser = FakeBrowser()
        params = NodeParameters({"url": "https://example.test/", "image_type": "bmp"})
        with pytest.raises(RenderOptionsInvalid):
            await actions.run(_launched(browser), Operation.GET_SCREENSHOT, params, 0)
        assert browser.created_pages == []


class TestPdf:
    @pytest.mark.asyncio
    async def test_pdf_payload(self, actions):
        browser = FakeBrowser()
        params = NodeParameters({"url": "https://example.test/", "print_background": True})

        result = await actions.run(_launched(browser), Operation.GET_PDF, params, 0)

        payload = result.binary["data"]
        assert payload.mime_type == "application/pdf"
        assert payload.to_bytes() == PDF_BYTES
        assert payload.file_extension == "pdf"
        pdf_kwargs = browser.created_pages[0].pdf_calls[0]
        assert pdf_kwargs["print_background"] is True
        assert pdf_kwargs["prefer_css_page_size"] is True

    @pytest.mark.asyncio
    async def test_invalid_sizing_is_rejected_before_render(self, actions):
        browser = FakeBrowser()
        params = NodeParameters({"url": "https://example.test/", "prefer_css_page_size": False})

        with pytest.raises(RenderOptionsInvalid):
            await actions.run(_launched(browser), Operation.GET_PDF, params, 0)
        assert browser.created_pages == []

    @pytest.mark.asyncio
    async def test_omit_background_is_restored(self, actions):
        browser = FakeBrowser()
        params = NodeParameters({"url": "https://example.test/", "omit_background": True})

        await actions.run(_launched(browser), Operation.GET_PDF, params, 0)

        overrides = [p for m, p in browser.cdp_calls() if m == "Emulation.setDefaultBackgroundColorOverride"]
        assert overrides == [{"color": {"r": 0, "g": 0, "b": 0, "a": 0}}, {}]
        assert len(browser.created_pages[0].pdf_calls) == 1
