"""
Tests for tourneysync.core.logging module.
"""

import logging
from unittest.mock import MagicMock

import pytest

from tourneysync.core.logging import NOISY_LOGGERS, OperationLogger, setup_logging


class TestOperationLogger:
    """Tests for OperationLogger."""

    def test_completion_logged_at_requested_level(self) -> None:
        log = MagicMock()

        with OperationLogger("push phase", log, level="debug", table="rounds") as op:
            op.update(pushed=2)

        assert op.duration_ms is not None
        assert op.duration_ms >= 0
        log.debug.assert_called_with(
            "Completed push phase",
            operation="push phase",
            duration_ms=op.duration_ms,
            table="rounds",
            pushed=2,
        )
        log.info.assert_not_called()

    def test_failure_logged_and_raised(self) -> None:
        log = MagicMock()

        with pytest.raises(RuntimeError, match="remote closed"):
            with OperationLogger("sync cycle", log) as op:
                raise RuntimeError("remote closed")

        assert op.duration_ms is not None
        _, kwargs = log.error.call_args
        assert kwargs["error_type"] == "RuntimeError"
        assert kwargs["error"] == "remote closed"
        log.info.assert_not_called()

    def test_duration_unset_before_exit(self) -> None:
        op = OperationLogger("pull phase", MagicMock())
        assert op.duration_ms is None


class TestSetupLogging:
    def test_http_client_loggers_quieted(self, sample_config) -> None:
        setup_logging(sample_config.logging)

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
