import json
import logging

from chatgate.gateway.logging_utils import RequestLog
from chatgate.logging_utils import configure_logging


def test_request_log_rotates(tmp_path, monkeypatch):
    log_file = tmp_path / "logs" / "chatgate.jsonl"
    request_log = RequestLog(str(log_file), max_bytes=5)

    monkeypatch.setattr(
        "chatgate.gateway.logging_utils.time.strftime",
        lambda *_: "19700101-000000",
    )

    request_log.log({"a": 1})
    assert log_file.exists()

    request_log.log({"payload": "123456"})

    rotated = log_file.with_name(log_file.name + ".19700101-000000")
    assert rotated.exists(), "Rotated file missing"
    with open(log_file, encoding="utf-8") as fh:
        entry = json.loads(fh.read().strip())
    assert entry["payload"] == "123456"


def test_request_log_disabled_writes_nothing(tmp_path):
    log_file = tmp_path / "missing" / "chatgate.jsonl"
    RequestLog(str(log_file), enabled=False).log({"event": "ignored"})
    assert not log_file.exists()
    assert not log_file.parent.exists()


def test_configure_logging_honours_env_override(monkeypatch, tmp_path):
    target_dir = tmp_path / "logs"
    monkeypatch.setenv("CHATGATE_LOG_DIR", str(target_dir))

    log_path = configure_logging("unit_test", include_console=False)
    logging.getLogger(__name__).info("env override works")

    assert log_path == target_dir / "unit_test.log"
    assert "env override works" in log_path.read_text()


def test_configure_logging_replaces_previous_handlers(tmp_path):
    first_path = configure_logging("first_run", log_dir=tmp_path / "a", include_console=False)
    logging.getLogger(__name__).info("first run entry")
    second_path = configure_logging("second_run", log_dir=tmp_path / "b", include_console=False)
    logging.getLogger(__name__).info("second run entry")

    assert "first run entry" in first_path.read_text()
    assert "second run entry" in second_path.read_text()
    assert "second run entry" not in first_path.read_text()
