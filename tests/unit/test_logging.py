"""Unit tests for logging configuration."""

import json
import logging
import sys

import pytest
from loguru import logger

from libs.logging_helper import InterceptHandler, setup_logging
from pipeline.utils.logging_config import (
    JsonFormatter,
    configure_logging,
    pipeline_stage_logger,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord("pipeline.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self):
        output = json.loads(JsonFormatter().format(make_record("你好")))
        assert output["level"] == "INFO"
        assert output["logger"] == "pipeline.test"
        assert output["message"] == "你好"
        assert "timestamp" in output
        assert "extra" not in output

    def test_extra_fields(self):
        output = json.loads(JsonFormatter().format(make_record(lesson_id="greetings", stage="pinyin")))
        assert output["extra"] == {"lesson_id": "greetings", "stage": "pinyin"}

    def test_exception(self):
        try:
            raise ValueError("bad lesson")
        except ValueError:
            record = logging.LogRecord(
                "pipeline.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )
        output = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad lesson" in output["exception"]


class TestPipelineStageLogger:
    def test_logs_start_and_completion(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="pipeline.segmentation"):
            with pipeline_stage_logger("segmentation", lesson_id="greetings") as log:
                assert log.name == "pipeline.segmentation"

        statuses = [record.status for record in caplog.records]
        assert statuses == ["started", "completed"]
        assert all(record.lesson_id == "greetings" for record in caplog.records)
        assert caplog.records[-1].duration_ms >= 0

    def test_logs_failure_and_reraises(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="pipeline.pinyin"):
            with pytest.raises(RuntimeError):
                with pipeline_stage_logger("pinyin"):
                    raise RuntimeError("boom")

        failed = caplog.records[-1]
        assert failed.status == "failed"
        assert failed.error == "boom"
        assert failed.levelno == logging.ERROR


class TestConfigureLogging:
    def test_writes_json_to_file(self, tmp_path):
        log_file = tmp_path / "logs" / "pipeline.log"
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging(level=logging.DEBUG, log_file=log_file, console_output=False)
            logging.getLogger("pipeline.test").info("stage done", extra={"lesson_id": "greetings"})
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        assert lines[-1]["message"] == "stage done"
        assert lines[-1]["extra"] == {"lesson_id": "greetings"}


class TestSetupLogging:
    def test_stdlib_records_reach_loguru(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        messages = []
        try:
            setup_logging(level="DEBUG", json_format=False)
            assert any(isinstance(h, InterceptHandler) for h in root.handlers)
            sink_id = logger.add(lambda message: messages.append(message.record["message"]))
            logging.getLogger("pipeline.processor").warning("prepared greetings")
            logger.remove(sink_id)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        assert "prepared greetings" in messages
