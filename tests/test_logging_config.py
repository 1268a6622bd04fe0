"""Tests for the logging configuration."""

import json
import logging
import sys
from logging.handlers import SysLogHandler
from unittest.mock import patch

from odcbridge.config import logging as log_mod
from odcbridge.config.settings import RuntimeConfig


def _record(name: str = "odcbridge.transport.mqtt") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello %s",
        args=("world",),
        exc_info=None,
    )


def test_serialise_value_handles_bytes_and_objects() -> None:
    record = _record()
    record.custom_bytes = b"caf\xc3\xa9"  # type: ignore
    record.custom_obj = object()  # type: ignore

    formatter = log_mod.StructuredLogFormatter()
    payload = json.loads(formatter.format(record))

    assert payload["logger"] == "transport.mqtt"
    assert payload["level"] == "INFO"
    assert payload["message"] == "hello world"
    assert payload["ts"].endswith("Z")
    assert payload["extra"]["custom_bytes"] == "[63 61 66 C3 A9]"
    assert str(record.custom_obj) in payload["extra"]["custom_obj"]


def test_foreign_logger_keeps_full_name() -> None:
    payload = json.loads(log_mod.StructuredLogFormatter().format(_record("aiomqtt.client")))
    assert payload["logger"] == "aiomqtt.client"
    assert "extra" not in payload


def test_exception_is_included() -> None:
    record = _record()
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record.exc_info = sys.exc_info()

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))
    assert "RuntimeError: boom" in payload["exception"]


def test_configure_logging_stream() -> None:
    config = RuntimeConfig(debug_logging=True)

    with patch("odcbridge.config.logging.dictConfig") as mock_dict_config:
        log_mod.configure_logging(config)
        mock_dict_config.assert_called_once()
        config_arg = mock_dict_config.call_args[0][0]

    assert config_arg["root"]["level"] == "DEBUG"
    handler = config_arg["handlers"]["odcbridge"]
    assert handler["()"] is log_mod._build_stream_handler
    assert handler["formatter"] == "structured"
    assert config_arg["loggers"]["aiomqtt"]["level"] == "DEBUG"


def test_configure_logging_syslog(tmp_path) -> None:
    fake_socket = tmp_path / "log"
    fake_socket.touch()

    config = RuntimeConfig(log_syslog=True)

    with patch("odcbridge.config.logging.SYSLOG_SOCKET", fake_socket):
        with patch("odcbridge.config.logging.dictConfig") as mock_dict_config:
            log_mod.configure_logging(config)
            mock_dict_config.assert_called_once()
            config_arg = mock_dict_config.call_args[0][0]
            assert config_arg["root"]["level"] == "INFO"
            assert config_arg["loggers"]["aiomqtt"]["level"] == "WARNING"
            assert config_arg["handlers"]["odcbridge"]["()"] is log_mod._build_syslog_handler


def test_syslog_handler_falls_back_to_stream(tmp_path) -> None:
    with patch("odcbridge.config.logging.SYSLOG_SOCKET", tmp_path / "missing"):
        with patch("odcbridge.config.logging.SYSLOG_SOCKET_FALLBACK", tmp_path / "also-missing"):
            handler = log_mod._build_syslog_handler()

    try:
        assert isinstance(handler, logging.StreamHandler)
        assert not isinstance(handler, SysLogHandler)
    finally:
        handler.close()
