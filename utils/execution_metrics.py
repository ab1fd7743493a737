"""Lightweight per-invocation execution metrics.

Tracks reads, writes, deletes and wall time for one handler invocation and
emits a single structured log line when it finishes.
"""

import time
from typing import Any
import structlog

log = structlog.get_logger(__name__)


class ExecutionMetrics:
    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        self.reads = 0
        self.writes = 0
        self.deletes = 0
        self._start = time.monotonic()

    def add_reads(self, n: int) -> None:
        self.reads += n

    def add_writes(self, n: int) -> None:
        self.writes += n

    def add_deletes(self, n: int) -> None:
        self.deletes += n

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def done(self, **meta: Any) -> None:
        log.info(
            "execution_done",
            execution_id=self.execution_id,
            duration_ms=self.duration_ms,
            reads=self.reads,
            writes=self.writes,
            deletes=self.deletes,
            **meta,
        )

    def fail(self, error: BaseException | str, **meta: Any) -> None:
        log.error(
            "execution_fail",
            execution_id=self.execution_id,
            duration_ms=self.duration_ms,
            reads=self.reads,
            writes=self.writes,
            deletes=self.deletes,
            error=str(error),
            **meta,
        )
