"""logging_config モジュールのテスト"""

import datetime
import json
import logging
import sys
from unittest.mock import patch

import pytest
from carpool.logging_config import CloudLoggingFormatter, run_context, setup_logging

_LABELS = "logging.googleapis.com/labels"


def _record(message: str = "run committed", level: int = logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="carpool.services.scheduler",
        level=level,
        pathname="",
        lineno=0,
        msg=message,
        args=(),
        exc_info=exc_info,
    )


class TestCloudLoggingFormatter:
    """CloudLoggingFormatter の単体テスト"""

    @pytest.mark.parametrize(
        "level,severity",
        [
            (logging.DEBUG, "DEBUG"),
            (logging.INFO, "INFO"),
            (logging.WARNING, "WARNING"),
            (logging.ERROR, "ERROR"),
            (logging.CRITICAL, "CRITICAL"),
            (5, "DEFAULT"),
        ],
    )
    def test_severity_mapping(self, level, severity):
        """ログレベルが severity にマッピングされること"""
        parsed = json.loads(CloudLoggingFormatter().format(_record(level=level)))
        assert parsed["severity"] == severity

    def test_required_fields_present(self):
        """severity, message, logger, timestamp が含まれること"""
        parsed = json.loads(CloudLoggingFormatter().format(_record()))

        assert parsed["message"] == "run committed"
        assert parsed["logger"] == "carpool.services.scheduler"
        assert "timestamp" in parsed
        assert "exception" not in parsed
        assert _LABELS not in parsed

    def test_run_identifiers_become_labels(self):
        """グループ・スケジュール・実行IDはラベル、それ以外はトップレベルに出る"""
        record = _record()
        record.extra_fields = {
            "group_id": "group-1",
            "schedule_id": "sched-1",
            "run_id": "run-1",
            "week": datetime.date(2026, 10, 19),
        }

        parsed = json.loads(CloudLoggingFormatter().format(record))

        assert parsed[_LABELS] == {
            "group_id": "group-1",
            "schedule_id": "sched-1",
            "run_id": "run-1",
        }
        assert parsed["week"] == "2026-10-19"
        assert "run_id" not in parsed

    def test_exception_info_included(self):
        """例外情報が exception フィールドとして含まれること"""
        try:
            raise RuntimeError("commit failed")
        except RuntimeError:
            exc_info = sys.exc_info()

        parsed = json.loads(CloudLoggingFormatter().format(_record(exc_info=exc_info)))

        assert "RuntimeError" in parsed["exception"]
        assert "commit failed" in parsed["exception"]

    def test_japanese_message_not_escaped(self):
        output = CloudLoggingFormatter().format(_record("割り当てを確定しました"))

        assert "割り当てを確定しました" in output


def test_run_context_drops_none():
    assert run_context(schedule_id="sched-1", run_id=None) == {
        "extra_fields": {"schedule_id": "sched-1"}
    }


class TestSetupLogging:
    """setup_logging() の動作テスト"""

    def test_json_formatter_on_cloud_run(self):
        """K_SERVICE がある場合、JSON フォーマッタが使われること"""
        with patch.dict("os.environ", {"K_SERVICE": "carpool-api"}, clear=True):
            setup_logging()

        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CloudLoggingFormatter)

    def test_text_formatter_locally(self):
        """Cloud Run 環境変数がない場合、テキスト フォーマッタが使われること"""
        with patch.dict("os.environ", {}, clear=True):
            setup_logging()

        root_logger = logging.getLogger()
        assert not isinstance(root_logger.handlers[0].formatter, CloudLoggingFormatter)

    @pytest.mark.parametrize(
        "env,is_json",
        [
            ({"LOG_FORMAT": "json"}, True),
            ({"LOG_FORMAT": "text", "K_SERVICE": "carpool-worker"}, False),
            ({"LOG_FORMAT": "yaml", "CLOUD_RUN_JOB": "carpool-weekly"}, True),
        ],
    )
    def test_log_format_override(self, env, is_json):
        """LOG_FORMAT が json / text のときは実行環境より優先されること"""
        with patch.dict("os.environ", env, clear=True):
            setup_logging()

        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, CloudLoggingFormatter) is is_json

    def test_log_level_respected(self):
        """LOG_LEVEL 環境変数が反映されること"""
        with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG"}, clear=False):
            setup_logging()

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("grpc").level == logging.INFO

    @pytest.mark.parametrize("value", ["VERBOSE", "basic_format"])
    def test_invalid_log_level_falls_back_to_info(self, value):
        """不正な LOG_LEVEL は INFO になること"""
        with patch.dict("os.environ", {"LOG_LEVEL": value}, clear=False):
            setup_logging()

        assert logging.getLogger().level == logging.INFO

    def test_handlers_not_duplicated(self):
        """複数回呼んでもハンドラが重複しないこと"""
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1
