"""Tests for utils/execution_metrics.py."""

from structlog.testing import capture_logs
from utils.execution_metrics import ExecutionMetrics


class TestExecutionMetrics:
    def test_done_logs_counters(self):
        metrics = ExecutionMetrics("exec-1")
        metrics.add_reads(2)
        metrics.add_writes(1)
        metrics.add_deletes(3)
        with capture_logs() as logs:
            metrics.done(push_sent=True)
        assert logs[0]["event"] == "execution_done"
        assert logs[0]["execution_id"] == "exec-1"
        assert (logs[0]["reads"], logs[0]["writes"], logs[0]["deletes"]) == (2, 1, 3)
        assert logs[0]["push_sent"] is True

    def test_fail_logs_error(self):
        with capture_logs() as logs:
            ExecutionMetrics("exec-2").fail(RuntimeError("boom"))
        assert logs[0]["event"] == "execution_fail"
        assert logs[0]["log_level"] == "error"
        assert logs[0]["error"] == "boom"
