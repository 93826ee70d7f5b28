"""Tests for the SQLite activity log."""

from __future__ import annotations

from browser_runtime.event_logger import NodeEventLogger


class TestNodeEventLogger:
    def test_run_lifecycle(self, tmp_path):
        event_logger = NodeEventLogger(tmp_path / "logs" / "activity.db")
        try:
            event_logger.init_run("r1", "exec-1", "getPDF")
            event_logger.log_item_event("r1", 0, "item_succeeded", {"outputs": 1})
            event_logger.complete_run("r1", status="failed", error="boom")

            runs = event_logger.list_runs()
            events = event_logger.fetch_item_events("r1")
        finally:
            event_logger.close()

        assert len(runs) == 1
        assert runs[0]["status"] == "failed"
        assert runs[0]["error"] == "boom"
        assert runs[0]["ended_at"] is not None
        assert events == [{"item_index": 0, "event_type": "item_succeeded", "payload": {"outputs": 1}}]

    def test_unusable_database_never_raises(self, tmp_path):
        """Logging into a path that cannot be created is silently skipped."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        event_logger = NodeEventLogger(blocker / "activity.db")

        event_logger.init_run("r1", "exec-1", "getPDF")
        event_logger.log_item_event("r1", 0, "item_failed", {"error": object()})
        event_logger.complete_run("r1", status="completed")

        assert event_logger.list_runs() == []
        event_logger.close()
