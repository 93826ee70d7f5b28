"""Tests for session resolution and handle release."""

from __future__ import annotations

import pytest

from fakes import FakeBrowser, FakeChromium, FakePage, FakePlaywright, FakeSessionClient

from browser_runtime.context import SESSION_SLOT, SessionContext
from browser_runtime.errors import (
    ConnectFailure,
    IncompleteManualOverride,
    LaunchFailure,
    NoSessionToStop,
    PageNotFound,
    SessionStopFailure,
)
from browser_runtime.models import LaunchOptions, ManualOverride, SessionDescriptor
from browser_runtime.parameters import NodeParameters
from browser_runtime.session import (
    CONTAINER_LAUNCH_ARGS,
    BrowserHandle,
    BrowserProvenance,
    BrowserSessionManager,
    PageProvenance,
    ReleasePolicy,
    build_launch_config,
    merge_container_args,
)

AMBIENT = SessionDescriptor(
    ws_endpoint="ws://ambient/devtools/browser/1",
    page_id="p1",
    session_id="abc",
    browser_manager_url="http://manager:3001",
)


def _manager(playwright=None, session_client=None) -> BrowserSessionManager:
    pw = playwright or FakePlaywright()
    return BrowserSessionManager(
        session_client=session_client or FakeSessionClient(),
        playwright_factory=pw.factory,
    )


def _ambient_context() -> SessionContext:
    context = SessionContext()
    context.set(AMBIENT)
    return context


class TestResolve:
    @pytest.mark.asyncio
    async def test_ambient_session_always_connects(self):
        """Ambient sessions win over manual override and never launch."""
        pw = FakePlaywright()
        manual = ManualOverride(requested=True, ws_endpoint="ws://manual", page_id="m1")

        handle = await _manager(pw).resolve(_ambient_context(), manual, LaunchOptions())

        assert handle.provenance is BrowserProvenance.CONNECTED
        assert handle.session == AMBIENT
        assert pw.chromium.connect_calls == [AMBIENT.ws_endpoint]
        assert pw.chromium.launch_calls == []

    @pytest.mark.asyncio
    async def test_manual_override_connects_with_synthetic_descriptor(self):
        pw = FakePlaywright()
        context = SessionContext()
        manual = ManualOverride(requested=True, ws_endpoint="ws://manual", page_id="m1")

        handle = await _manager(pw).resolve(context, manual, LaunchOptions())

        assert handle.is_manual_override
        assert handle.session.session_id == "manual-override"
        assert pw.chromium.connect_calls == ["ws://manual"]
        assert context.current is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ws_endpoint,page_id",
        [("ws://manual", ""), ("", "m1"), ("", "")],
    )
    async def test_incomplete_manual_override_fails(self, ws_endpoint, page_id):
        pw = FakePlaywright()
        manual = ManualOverride(requested=True, ws_endpoint=ws_endpoint, page_id=page_id)

        with pytest.raises(IncompleteManualOverride):
            await _manager(pw).resolve(SessionContext(), manual, LaunchOptions())
        assert pw.start_calls == 0

    def test_manual_override_requested_when_flag_absent_and_field_given(self):
        params = NodeParameters({"options": {"manual_ws_endpoint": "ws://manual"}})
        manual = params.manual_override()
        assert manual.requested is True

        with pytest.raises(IncompleteManualOverride):
            _manager().select_session(SessionContext(), manual)

    def test_explicit_false_flag_ignores_fields(self):
        params = NodeParameters(
            {"options": {"manual_session_override": False, "manual_ws_endpoint": "ws://manual"}}
        )
        assert _manager().select_session(SessionContext(), params.manual_override()) is None

    @pytest.mark.asyncio
    async def test_no_session_launches(self):
        pw = FakePlaywright()
        options = LaunchOptions(
            executable_path="/usr/bin/chromium",
            launch_arguments=("--lang=de",),
            add_container_args=False,
        )

        handle = await _manager(pw).resolve(SessionContext(), ManualOverride(), options)

        assert handle.provenance is BrowserProvenance.LAUNCHED
        assert pw.chromium.launch_calls == [
            {"headless": True, "args": ["--lang=de"], "executable_path": "/usr/bin/chromium"}
        ]

    @pytest.mark.asyncio
    async def test_connect_failure_stops_driver(self):
        boom = RuntimeError("ECONNREFUSED")
        pw = FakePlaywright(FakeChromium(connect_error=boom))

        with pytest.raises(ConnectFailure) as exc_info:
            await _manager(pw).resolve(_ambient_context(), ManualOverride(), LaunchOptions())

        assert exc_info.value.__cause__ is boom
        assert pw.stop_calls == 1

    @pytest.mark.asyncio
    async def test_launch_failure_stops_driver(self):
        pw = FakePlaywright(FakeChromium(launch_error=RuntimeError("no chromium")))

        with pytest.raises(LaunchFailure):
            await _manager(pw).resolve(SessionContext(), ManualOverride(), LaunchOptions())
        assert pw.stop_calls == 1


class TestLaunchConfig:
    def test_container_args_are_not_duplicated(self):
        merged = merge_container_args(["--no-sandbox", "--window-size=800,600"])
        assert merged.count("--no-sandbox") == 1
        assert merged[:2] == ["--no-sandbox", "--window-size=800,600"]
        assert set(CONTAINER_LAUNCH_ARGS) <= set(merged)
        assert len(merged) == len(set(merged))

    def test_container_args_only_when_enabled(self):
        config = build_launch_config(LaunchOptions(launch_arguments=("--a",), add_container_args=False))
        assert config.args == ("--a",)

    def test_headless_unless_explicitly_false(self):
        assert build_launch_config(LaunchOptions(add_container_args=False)).headless is True
        assert build_launch_config(LaunchOptions(headless=False, add_container_args=False)).headless is False

    def test_executable_path_omitted_when_empty(self):
        kwargs = build_launch_config(LaunchOptions(add_container_args=False)).to_launch_kwargs()
        assert "executable_path" not in kwargs

    def test_launch_arguments_accept_collection_shape(self):
        params = NodeParameters(
            {"options": {"launch_arguments": {"args": [{"arg": "--a"}, {"arg": ""}, {"arg": "--b"}]},
                         "add_container_args": False}}
        )
        options = params.launch_options()
        assert options.launch_arguments == ("--a", "--b")
        assert options.add_container_args is False

    @pytest.mark.parametrize(
        "raw, expected",
        [("false", False), (" True ", True), ("", None), (None, None), (False, False)],
    )
    def test_headless_is_parsed_like_other_flags(self, raw, expected):
        params = NodeParameters({"options": {"headless": raw, "add_container_args": False}})
        assert params.launch_options().headless is expected


class TestRelease:
    @pytest.mark.asyncio
    async def test_launched_handle_closes_once(self):
        browser = FakeBrowser()
        pw = FakePlaywright()
        handle = BrowserHandle(browser=browser, playwright=pw, provenance=BrowserProvenance.LAUNCHED)

        assert await handle.release() is ReleasePolicy.CLOSE
        await handle.release()

        assert browser.close_calls == 1
        assert pw.stop_calls == 1

    @pytest.mark.asyncio
    async def test_connected_handle_disconnects_and_never_closes(self):
        browser = FakeBrowser()
        pw = FakePlaywright()
        handle = BrowserHandle(
            browser=browser,
            playwright=pw,
            provenance=BrowserProvenance.CONNECTED,
            session=AMBIENT,
        )

        assert await handle.release() is ReleasePolicy.DISCONNECT
        await handle.release()

        assert browser.close_calls == 0
        assert pw.stop_calls == 1

    @pytest.mark.asyncio
    async def test_driver_stops_even_when_close_fails(self):
        browser = FakeBrowser(close_error=RuntimeError("already gone"))
        pw = FakePlaywright()
        handle = BrowserHandle(browser=browser, playwright=pw, provenance=BrowserProvenance.LAUNCHED)

        with pytest.raises(RuntimeError):
            await handle.release()
        assert pw.stop_calls == 1


class TestPages:
    @pytest.mark.asyncio
    async def test_attached_page_found_by_target_id(self):
        session_page = FakePage(target_id="p1")
        browser = FakeBrowser(pages=[FakePage(target_id="other"), session_page])
        handle = BrowserHandle(
            browser=browser,
            playwright=FakePlaywright(),
            provenance=BrowserProvenance.CONNECTED,
            session=AMBIENT,
        )

        async with _manager().page_scope(handle) as page_handle:
            assert page_handle.page is session_page
            assert page_handle.provenance is PageProvenance.ATTACHED

        assert session_page.close_calls == 0
        assert all(session.detached for session in browser.contexts[0].cdp_sessions)

    @pytest.mark.asyncio
    async def test_missing_session_page(self):
        handle = BrowserHandle(
            browser=FakeBrowser(pages=[FakePage(target_id="other")]),
            playwright=FakePlaywright(),
            provenance=BrowserProvenance.CONNECTED,
            session=AMBIENT,
        )
        with pytest.raises(PageNotFound):
            await _manager().acquire_page(handle)

    @pytest.mark.asyncio
    async def test_created_page_closed_on_error(self):
        browser = FakeBrowser()
        handle = BrowserHandle(browser=browser, playwright=FakePlaywright(), provenance=BrowserProvenance.LAUNCHED)

        with pytest.raises(ValueError):
            async with _manager().page_scope(handle):
                raise ValueError("item failed")

        assert browser.created_pages[0].close_calls == 1


class TestPersistentAdmin:
    @pytest.mark.asyncio
    async def test_start_sets_slot(self):
        context = SessionContext()
        client = FakeSessionClient(descriptor=AMBIENT)

        descriptor = await _manager(session_client=client).start_persistent(context, "abc", "http://manager:3001")

        assert descriptor == AMBIENT
        assert context.current == AMBIENT
        assert client.start_calls == [("abc", "http://manager:3001")]

    @pytest.mark.asyncio
    async def test_stop_without_any_session_fails(self):
        client = FakeSessionClient()
        with pytest.raises(NoSessionToStop):
            await _manager(session_client=client).stop_persistent(SessionContext(), "", "http://manager")
        assert client.stop_calls == []

    @pytest.mark.asyncio
    async def test_stop_ambient_clears_slot(self):
        store = {}
        context = SessionContext(store)
        context.set(AMBIENT)
        client = FakeSessionClient()

        result = await _manager(session_client=client).stop_persistent(context, "ignored", "http://ignored")

        assert result == {"message": "Session stopped."}
        assert client.stop_calls == [("abc", "http://manager:3001")]
        assert SESSION_SLOT not in store

    @pytest.mark.asyncio
    async def test_stop_with_fallback_leaves_slot_alone(self):
        store = {"other": 1}
        client = FakeSessionClient()

        await _manager(session_client=client).stop_persistent(SessionContext(store), "old", "http://manager")

        assert client.stop_calls == [("old", "http://manager")]
        assert store == {"other": 1}

    @pytest.mark.asyncio
    async def test_failed_stop_keeps_slot(self):
        context = _ambient_context()
        client = FakeSessionClient(stop_error=SessionStopFailure("manager down"))

        with pytest.raises(SessionStopFailure):
            await _manager(session_client=client).stop_persistent(context)
        assert context.current == AMBIENT
