"""Unit tests for acervo.engine.logging — JSONL event log and queue."""

import json

import acervo.engine.logging as log_mod
from acervo.engine.logging import (
    AsyncLogQueue,
    FileLogger,
    LogEntry,
    init_logging,
    log,
    log_record_operation,
    log_storage_call,
    log_storage_performance,
    log_system_event,
    log_upload_event,
    log_upload_performance,
    shutdown_logging,
)


class TestLogEntry:

    def test_to_json_compact(self):
        entry = LogEntry("uploads", "execution", {"event": "x", "n": 1})
        assert entry.to_json() == '{"event":"x","n":1}'


class TestFileLogger:

    def test_creates_category_dirs(self, tmp_path):
        FileLogger(log_dir=str(tmp_path / "logs"))
        for obj_type in ("uploads", "storage", "records", "system"):
            assert (tmp_path / "logs" / obj_type / "execution").is_dir()

    def test_write_and_read_day(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        file_logger.write_batch([
            LogEntry("records", "execution", {"n": i}) for i in range(3)
        ])
        assert [e["n"] for e in file_logger.read_day("records", "execution")] == [0, 1, 2]

    def test_read_day_skips_bad_lines(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        path = file_logger.path_for("system", "execution")
        path.write_text('{"ok": 1}\nnot json\n\n', encoding="utf-8")
        assert file_logger.read_day("system", "execution") == [{"ok": 1}]


class TestAsyncLogQueue:

    def test_push_and_stop_drains(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        queue = AsyncLogQueue(file_logger, flush_interval_ms=10)
        queue.start()
        for i in range(5):
            assert queue.push(LogEntry("uploads", "execution", {"n": i}))
        queue.stop()
        assert len(file_logger.read_day("uploads", "execution")) == 5
        assert queue.pending_count == 0

    def test_full_queue_drops(self, tmp_path):
        queue = AsyncLogQueue(FileLogger(log_dir=str(tmp_path / "logs")), max_queue_size=1)
        assert queue.push(LogEntry("system", "execution", {}))
        assert not queue.push(LogEntry("system", "execution", {}))
        assert queue.dropped_count == 1


class TestBuilders:

    def test_upload_event(self):
        entry = log_upload_event("upload_failed", None, "failed", original_name="a.jpg", error="boom")
        assert entry.object_type == "uploads"
        assert entry.data["level"] == "ERROR"
        assert entry.data["original_name"] == "a.jpg"
        assert "file_path" not in entry.data

    def test_storage_call(self):
        entry = log_storage_call("authorize", "https://api", 200, 12.3456, True)
        assert entry.object_type == "storage"
        assert entry.data["duration_ms"] == 12.35
        assert entry.data["level"] == "INFO"

    def test_performance_entries(self):
        storage = log_storage_performance("get_upload_url", 8.123, 200)
        assert (storage.object_type, storage.category) == ("storage", "performance")
        assert storage.data["duration_ms"] == 8.12

        upload = log_upload_performance("00_ENTRADA/a.jpg", 40.0, size=None)
        assert (upload.object_type, upload.category) == ("uploads", "performance")
        assert "size" not in upload.data

    def test_record_operation(self):
        entry = log_record_operation("updated", "a_jpg", 3, ["status"])
        assert entry.data["event"] == "record_updated"
        assert entry.data["fields_changed"] == ["status"]

    def test_system_event(self):
        entry = log_system_event("cli_command", details={"command": "stats"})
        assert entry.object_type == "system"
        assert entry.data["details"] == {"command": "stats"}


class TestGlobalQueue:

    def test_log_without_queue_is_dropped(self):
        assert log(log_system_event("x")) is False

    def test_init_log_shutdown(self, tmp_path):
        init_logging(log_dir=str(tmp_path / "logs"), flush_interval_ms=10)
        assert log(log_record_operation("created", "a_jpg", 1))
        shutdown_logging()
        assert log_mod.get_log_queue() is None

        lines = (tmp_path / "logs" / "records" / "execution").glob("*.jsonl")
        content = "".join(p.read_text(encoding="utf-8") for p in lines)
        assert json.loads(content.strip())["record_id"] == "a_jpg"
