"""Reaper - periodic session reconciliation.

Responsibilities:
1. Delete Running sessions that outlived their max duration
2. Record how long submitted sessions took to run (or fail)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable

import structlog

from playground.models.session import Failed, Running
from playground.utils.datetime import utcnow

if TYPE_CHECKING:
    from playground.config import ReaperConfig
    from playground.managers.session import SessionManager
    from playground.metrics import Metrics
    from playground.services.reaper.queue import Submission, SubmissionQueue

logger = structlog.get_logger()


@dataclass
class ReaperCycleResult:
    """Outcome of one reaper cycle."""

    reaped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    observed: list[str] = field(default_factory=list)
    pending: int = 0


class Reaper:
    """Background loop enforcing session durations.

    The pending map is only touched from ``run_once``, which is serialized
    by ``_run_lock``.
    """

    def __init__(
        self,
        config: "ReaperConfig",
        session_manager: "SessionManager",
        metrics: "Metrics",
        submissions: "SubmissionQueue",
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._sessions = session_manager
        self._metrics = metrics
        self._submissions = submissions
        self._clock = clock
        self._log = logger.bind(service="reaper")

        self._pending: dict[str, "Submission"] = {}
        self._running = False
        self._task: asyncio.Task | None = None
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> frozenset[str]:
        """Ids of submitted sessions not yet observed running or failed."""
        return frozenset(self._pending)

    async def start(self) -> None:
        """Start background loop."""
        if self._running:
            self._log.warning("reaper.already_running")
            return

        self._running = True
        self._task = asyncio.create_task(
            self._background_loop(),
            name="session-reaper",
        )
        self._log.info(
            "reaper.started",
            interval_seconds=self._config.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop background loop gracefully."""
        if not self._running:
            return

        self._log.info("reaper.stopping")
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._log.info("reaper.stopped")

    async def run_once(self) -> ReaperCycleResult:
        """Execute one reconciliation cycle."""
        async with self._run_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> ReaperCycleResult:
        result = ReaperCycleResult()

        for submission in self._submissions.drain():
            self._pending[submission.session_id] = submission

        sessions = await self._sessions.list_sessions()
        now = self._clock()

        self._observe_pending(sessions, now, result)

        for session in sessions:
            if not isinstance(session.state, Running):
                continue
            elapsed = now - session.state.start_time
            if elapsed <= session.max_duration:
                continue

            self._log.info(
                "reaper.session.expired",
                session_id=session.id,
                elapsed_seconds=int(elapsed.total_seconds()),
                max_duration_seconds=int(session.max_duration.total_seconds()),
            )
            try:
                await self._sessions.delete_session(session.id)
                result.reaped.append(session.id)
            except Exception as exc:
                result.failed.append(session.id)
                self._log.exception(
                    "reaper.session.delete_failed",
                    session_id=session.id,
                    error=str(exc),
                )

        result.pending = len(self._pending)
        self._log.info(
            "reaper.cycle.complete",
            sessions=len(sessions),
            reaped=len(result.reaped),
            failed=len(result.failed),
            observed=len(result.observed),
            pending=result.pending,
        )
        return result

    def _observe_pending(self, sessions, now: datetime, result: ReaperCycleResult) -> None:
        states = {session.id: session.state for session in sessions}
        for session_id, submission in list(self._pending.items()):
            state = states.get(session_id)
            if state is None:
                # Deleted before it ever ran
                del self._pending[session_id]
                self._log.debug("reaper.pending.vanished", session_id=session_id)
            elif isinstance(state, (Running, Failed)):
                del self._pending[session_id]
                seconds = max((now - submission.submitted_at).total_seconds(), 0.0)
                self._metrics.observe_deploy_duration(seconds)
                result.observed.append(session_id)
                self._log.info(
                    "reaper.pending.observed",
                    session_id=session_id,
                    state=type(state).__name__,
                    deploy_seconds=seconds,
                )

    async def _background_loop(self) -> None:
        """Background loop that runs a cycle every interval."""
        while self._running:
            try:
                await asyncio.sleep(self._config.interval_seconds)
                if not self._running:
                    break
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                self._log.exception("reaper.cycle.error", error=str(exc))
