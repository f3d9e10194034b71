import logging

import orjson

from solreward.logging_utils import (
    JsonFormatter,
    parse_log_level,
    redact_url,
    setup_stdout_logging,
    warn_once_per,
)


def test_redact_url_masks_api_keys():
    assert redact_url("https://rpc.example.com/?api-key=secret&x=1") == (
        "https://rpc.example.com/?api-key=***&x=1"
    )
    assert redact_url("https://rpc.example.com/path") == "https://rpc.example.com/path"


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("solreward.test", logging.INFO, __file__, 10, "hello %s", ("x",), None)
    record.strategy = "bulk_scan"
    payload = orjson.loads(JsonFormatter().format(record))
    assert payload["msg"] == "hello x"
    assert payload["level"] == "INFO"
    assert payload["strategy"] == "bulk_scan"


def test_parse_log_level():
    assert parse_log_level("debug") == logging.DEBUG
    assert parse_log_level(None) == logging.INFO
    assert parse_log_level("15") == 15


def test_setup_stdout_logging_installs_single_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        first = setup_stdout_logging(level="WARNING")
        second = setup_stdout_logging(level="DEBUG", json_logs=True)
        assert first is second
        assert isinstance(second.formatter, JsonFormatter)
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)


def test_warn_once_per_suppresses_repeats(caplog):
    logger = logging.getLogger("solreward.test")
    with caplog.at_level(logging.WARNING, logger="solreward.test"):
        assert warn_once_per(5, "k", "first %s", 1, logger=logger)
        assert not warn_once_per(5, "k", "second", logger=logger)
        assert warn_once_per(5, "other", "third", logger=logger)
    assert [r.getMessage() for r in caplog.records] == ["first 1", "third"]
