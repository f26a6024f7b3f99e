"""Tests for audit logging, bounded waits, the task runner and error classification."""

import asyncio
import io
import json
import logging
from unittest.mock import MagicMock

import pytest

from authflow.errors import OperationTimeoutError, ProfileStoreError
from authflow.logger import StructuredLogger
from authflow.models.auth_models import AuthErrorCode, classify_error
from authflow.utils.audit import AuditEvent, log_audit_event
from authflow.utils.retry import backoff_delays, with_timeout
from authflow.utils.tasks import TaskRunner
from tests.fakes import fast_config


class TestAudit:
    def test_returns_event_and_logs_json(self) -> None:
        logger = MagicMock()

        event = log_audit_event(
            logger=logger,
            action="PROFILE_CREATE",
            entity_type="Profile",
            entity_id="user-1",
            user_id="user-1",
            details={"role": "coach", "attempts": 1},
        )

        assert isinstance(event, AuditEvent)
        args, kwargs = logger.info.call_args
        assert args[0] == "AUDIT: %s"
        payload = json.loads(args[1])
        assert payload["action"] == "PROFILE_CREATE"
        assert payload["details"] == {"role": "coach", "attempts": 1}
        assert kwargs["extra"] == {"event": "PROFILE_CREATE"}


class TestRetry:
    def test_backoff_doubles_and_caps(self) -> None:
        assert list(backoff_delays(1.0, 4.0, 3)) == [1.0, 2.0]
        assert list(backoff_delays(1.0, 4.0, 5)) == [1.0, 2.0, 4.0, 4.0]
        assert list(backoff_delays(1.0, 4.0, 1)) == []

    def test_with_timeout_raises_operation_timeout(self) -> None:
        with pytest.raises(OperationTimeoutError, match="slow call timed out"):
            asyncio.run(with_timeout(asyncio.sleep(1), 0.01, operation="slow call"))

    def test_with_timeout_returns_result(self) -> None:
        async def quick() -> str:
            return "ok"

        assert asyncio.run(with_timeout(quick(), 1.0, operation="quick")) == "ok"


class TestTaskRunner:
    def test_failure_goes_to_error_handler(self) -> None:
        logger = MagicMock()
        runner = TaskRunner(logger=logger)
        captured: list[BaseException] = []
        runner.set_error_handler(captured.append)

        async def fail() -> None:
            raise KeyError("missing")

        async def scenario() -> None:
            runner.spawn(fail(), name="fail")
            await runner.drain()

        asyncio.run(scenario())

        assert len(captured) == 1
        assert isinstance(captured[0], KeyError)
        assert logger.error.call_args.kwargs["extra"]["event"] == "TASK_FAILED"

    def test_cancelled_tasks_are_not_errors(self) -> None:
        runner = TaskRunner(logger=MagicMock())
        handler = MagicMock()
        runner.set_error_handler(handler)

        async def scenario() -> None:
            runner.spawn(asyncio.sleep(10), name="sleeper")
            assert runner.pending == 1
            runner.cancel_all()
            await runner.drain()

        asyncio.run(scenario())

        assert runner.pending == 0
        handler.assert_not_called()


class TestClassifyError:
    def test_timeout(self) -> None:
        code, _ = classify_error(OperationTimeoutError("x"))
        assert code == AuthErrorCode.TIMEOUT_ERROR

    def test_code_attribute_wins(self) -> None:
        code, _ = classify_error(ProfileStoreError("denied", code="42501"))
        assert code == AuthErrorCode.PERMISSION_DENIED

    def test_message_match(self) -> None:
        code, message = classify_error(Exception("Email rate limit exceeded"))
        assert code == AuthErrorCode.RATE_LIMITED
        assert "wait" in message

    def test_unknown(self) -> None:
        code, _ = classify_error(ProfileStoreError("connection reset", code="08006"))
        assert code == AuthErrorCode.UNKNOWN_ERROR


def test_structured_logger_promotes_event_and_keeps_context(tmp_path) -> None:
    stream = io.StringIO()
    log = StructuredLogger(
        name="authflow.test.json",
        level=logging.INFO,
        stream=stream,
        log_file=str(tmp_path / "authflow.log"),
        config=fast_config(),
    )

    log.info(
        "Session hydrated for %s", "user-1",
        extra={"event": "SESSION_HYDRATED", "user_id": "user-1"},
    )

    entry = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert entry["level"] == "INFO"
    assert entry["event"] == "SESSION_HYDRATED"
    assert entry["message"] == "Session hydrated for user-1"
    assert entry["context"] == {"user_id": "user-1"}
    assert "task" not in entry
    assert (tmp_path / "authflow.log").exists()


def test_structured_logger_reports_unwritable_log_file_on_console(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    stream = io.StringIO()

    log = StructuredLogger(
        name="authflow.test.unwritable",
        level=logging.INFO,
        stream=stream,
        log_file=str(blocker / "authflow.log"),
        config=fast_config(),
    )

    entries = [json.loads(line) for line in stream.getvalue().strip().splitlines()]
    warning = next(e for e in entries if e.get("event") == "LOG_FILE_UNAVAILABLE")
    assert warning["level"] == "WARNING"
    assert "Cannot open log file" in warning["message"]

    log.info("still logging")
    assert json.loads(stream.getvalue().strip().splitlines()[-1])["message"] == "still logging"
    assert len(log.logger.handlers) == 1
