"""SubmissionQueue - provisioner to reaper hand-off.

The session provisioner enqueues every successfully submitted session; the
reaper drains the queue at the start of each cycle into a pending map it
owns. The queue is the only object shared between request handlers and the
reaper task.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime

import structlog

from playground.utils.datetime import utcnow

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class Submission:
    """A session submitted to the cluster, not yet observed running."""

    session_id: str
    template: str
    submitted_at: datetime


@dataclass
class SubmissionQueueStats:
    """Observable statistics for the submission queue."""

    enqueue_total: int = 0
    drain_total: int = 0


class SubmissionQueue:
    """Unbounded in-process queue of session submissions."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Submission] = asyncio.Queue()
        self._stats = SubmissionQueueStats()
        self._log = logger.bind(service="submission_queue")

    @property
    def stats(self) -> SubmissionQueueStats:
        return self._stats

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    def enqueue(
        self,
        *,
        session_id: str,
        template: str,
        submitted_at: datetime | None = None,
    ) -> None:
        """Record a submission (non-blocking)."""
        submission = Submission(
            session_id=session_id,
            template=template,
            submitted_at=submitted_at or utcnow(),
        )
        self._queue.put_nowait(submission)
        self._stats.enqueue_total += 1
        self._log.debug(
            "submission_queue.enqueued",
            session_id=session_id,
            depth=self._queue.qsize(),
        )

    def drain(self) -> list[Submission]:
        """Take every queued submission."""
        drained: list[Submission] = []
        while True:
            try:
                drained.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        self._stats.drain_total += len(drained)
        return drained
