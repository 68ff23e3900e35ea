"""
Periodic maintenance scheduler.

Each job gets its own loop: sleep for the interval, then launch one run
bounded by the job's timeout. A job whose previous run is still in flight
is skipped for that tick. Failures and timeouts are logged and the job is
simply tried again on the next tick.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from shared.logging import get_logger

log = get_logger(__name__)

OK = "ok"
FAILED = "failed"
TIMED_OUT = "timeout"
SKIPPED = "skipped"


@dataclass(frozen=True)
class Job:
    name: str
    interval: float
    timeout: float
    run: Callable[[], Awaitable[Any]]


class Scheduler:
    def __init__(
        self,
        jobs: list[Job],
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.jobs = {job.name: job for job in jobs}
        self._sleep = sleep
        self._running: dict[str, asyncio.Task] = {}
        self._loops: list[asyncio.Task] = []

    def is_running(self, name: str) -> bool:
        task = self._running.get(name)
        return task is not None and not task.done()

    async def execute(self, job: Job) -> str:
        """Run *job* once under its timeout and report how it ended."""
        try:
            result = await asyncio.wait_for(job.run(), timeout=job.timeout)
        except asyncio.TimeoutError:
            log.warning("scheduler_job_timed_out", job=job.name, timeout=job.timeout)
            return TIMED_OUT
        except Exception as e:
            log.error(
                "scheduler_job_failed",
                job=job.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return FAILED
        log.info("scheduler_job_finished", job=job.name, result=result)
        return OK

    def trigger(self, name: str) -> Optional[asyncio.Task]:
        """Start one run of *name* unless the previous run is still going."""
        job = self.jobs[name]
        if self.is_running(name):
            log.info("scheduler_job_skipped", job=name, reason="still_running")
            return None
        task = asyncio.create_task(self.execute(job), name=f"scheduler:{name}")
        self._running[name] = task
        return task

    async def _loop(self, job: Job) -> None:
        while True:
            await self._sleep(job.interval)
            self.trigger(job.name)

    def start(self) -> None:
        if self._loops:
            return
        for job in self.jobs.values():
            self._loops.append(asyncio.create_task(self._loop(job), name=f"scheduler-loop:{job.name}"))
        log.info("scheduler_started", jobs=sorted(self.jobs))

    async def stop(self) -> None:
        tasks = self._loops + [t for t in self._running.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loops.clear()
        self._running.clear()
        log.info("scheduler_stopped")
