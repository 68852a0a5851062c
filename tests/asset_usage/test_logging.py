"""Tests for structured logging setup."""

import json
import logging
import os
import time

from ContentIndex.AssetUsage.logging_utils import LOGGER_NAME, JSONFormatter, generate_correlation_id, setup_logging


def test_json_formatter_includes_usage_fields():
    record = logging.LogRecord(LOGGER_NAME, logging.INFO, __file__, 1, "Registered %s", ("A1",), None)
    record.usage_key = "K1"
    record.asset_id = "A1"
    record.extra_fields = {"dry_run": True}
    payload = json.loads(JSONFormatter().format(record))
    assert payload["message"] == "Registered A1"
    assert payload["usage_key"] == "K1"
    assert payload["node_identifier"] is None
    assert payload["dry_run"] is True


def test_setup_logging_writes_jsonl(tmp_path):
    logger = setup_logging(level="debug", log_dir=tmp_path)
    assert logger.level == logging.DEBUG
    logging.getLogger(f"{LOGGER_NAME}.integration").info("hello", extra={"asset_id": "A1"})
    for handler in logger.handlers:
        handler.flush()
    (log_file,) = tmp_path.glob("asset-usage-*.jsonl")
    line = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert line["message"] == "hello"
    assert line["asset_id"] == "A1"


def test_setup_logging_is_idempotent(tmp_path):
    setup_logging(log_dir=tmp_path)
    logger = setup_logging(log_dir=tmp_path)
    assert len(logger.handlers) == 2


def test_log_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("ASSET_USAGE_LOG_DIR", str(tmp_path / "env-logs"))
    setup_logging()
    assert list((tmp_path / "env-logs").glob("asset-usage-*.jsonl"))


def test_correlation_ids_are_short_and_unique():
    first, second = generate_correlation_id(), generate_correlation_id()
    assert len(first) == 12
    assert first != second


def test_expired_log_files_are_deleted(tmp_path):
    old = tmp_path / "asset-usage-20000101.jsonl"
    old_backup = tmp_path / "asset-usage-20000101.jsonl.1"
    unrelated = tmp_path / "notes.jsonl"
    long_ago = time.time() - 10 * 86400
    for path in (old, old_backup, unrelated):
        path.write_text("{}\n", encoding="utf-8")
        os.utime(path, (long_ago, long_ago))

    setup_logging(log_dir=tmp_path, retention_days=7)

    assert not old.exists()
    assert not old_backup.exists()
    assert unrelated.exists()
    assert list(tmp_path.glob("asset-usage-*.jsonl"))
