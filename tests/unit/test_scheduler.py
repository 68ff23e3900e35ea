"""Unit tests for the maintenance scheduler and its jobs."""

import asyncio

import pytest

from config import SchedulerSettings
from scheduler.jobs import CLEAN_CODES, TEMPLATE_BULK, WIDGET_BULK, build_jobs
from scheduler.scheduler import FAILED, OK, TIMED_OUT, Job, Scheduler
from schemas.models.verification import PendingVerification
from shared.crypto import hash_code
from shared.datetime_utils import utc_in
from shared.generators import new_id

from factories import make_template, make_widget


def _job(run, name="job", interval=60.0, timeout=1.0) -> Job:
    return Job(name=name, interval=interval, timeout=timeout, run=run)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class TestExecute:
    async def test_ok(self):
        async def run():
            return 3

        assert await Scheduler([]).execute(_job(run)) == OK

    async def test_failure_is_reported_not_raised(self):
        async def run():
            raise RuntimeError("index unavailable")

        assert await Scheduler([]).execute(_job(run)) == FAILED

    async def test_timeout(self):
        async def run():
            await asyncio.sleep(5)

        assert await Scheduler([]).execute(_job(run, timeout=0.01)) == TIMED_OUT


class TestTrigger:
    async def test_skips_while_previous_run_in_flight(self):
        release = asyncio.Event()
        runs = 0

        async def run():
            nonlocal runs
            runs += 1
            await release.wait()

        scheduler = Scheduler([_job(run, name="slow")])
        first = scheduler.trigger("slow")
        await asyncio.sleep(0)

        assert scheduler.is_running("slow")
        assert scheduler.trigger("slow") is None

        release.set()
        assert await first == OK
        assert not scheduler.is_running("slow")

        second = scheduler.trigger("slow")
        assert second is not None
        await second
        assert runs == 2

    async def test_unknown_job(self):
        with pytest.raises(KeyError):
            Scheduler([]).trigger("nope")


class TestLoop:
    async def test_ticks_run_the_job_until_stopped(self):
        intervals = []
        ran = asyncio.Event()

        async def fake_sleep(seconds):
            intervals.append(seconds)
            await asyncio.sleep(0)

        async def run():
            ran.set()

        scheduler = Scheduler([_job(run, interval=42.0)], sleep=fake_sleep)
        scheduler.start()
        await asyncio.wait_for(ran.wait(), timeout=1)
        await scheduler.stop()

        assert intervals[0] == 42.0
        assert not scheduler.is_running("job")

    async def test_start_is_idempotent(self):
        async def never(seconds):
            await asyncio.Event().wait()

        async def run():
            return None

        scheduler = Scheduler([_job(run)], sleep=never)
        scheduler.start()
        scheduler.start()
        assert len(scheduler._loops) == 1
        await scheduler.stop()


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class TestJobs:
    def test_names_and_intervals(self, verifications, widgets, templates):
        settings = SchedulerSettings(clean_codes_interval_seconds=5, widget_bulk_timeout_seconds=7)
        jobs = {job.name: job for job in build_jobs(settings, verifications, widgets, templates)}

        assert set(jobs) == {CLEAN_CODES, WIDGET_BULK, TEMPLATE_BULK}
        assert jobs[CLEAN_CODES].interval == 5
        assert jobs[WIDGET_BULK].timeout == 7

    async def test_clean_codes_purges_expired(self, verifications, widgets, templates):
        for email, expires_in in (("old@example.com", -60), ("live@example.com", 600)):
            await verifications.add(
                PendingVerification(
                    email=email,
                    login=email.split("@")[0],
                    nickname=email.split("@")[0],
                    password=b"hash",
                    code=hash_code("123456"),
                    expired_time=utc_in(expires_in),
                    attempts=3,
                )
            )
        jobs = {j.name: j for j in build_jobs(SchedulerSettings(), verifications, widgets, templates)}

        assert await Scheduler(list(jobs.values())).execute(jobs[CLEAN_CODES]) == OK
        assert await verifications.delete_expired() == 0
        await verifications.get("live@example.com")

    async def test_bulk_jobs_index_everything(self, verifications, widgets, templates, search):
        await widgets.create(make_widget())
        await templates.create(make_template(new_id()))
        jobs = {
            j.name: j
            for j in build_jobs(SchedulerSettings(), verifications, widgets, templates, bulk_page_size=10)
        }

        assert await jobs[WIDGET_BULK].run() == 1
        assert await jobs[TEMPLATE_BULK].run() == 1
        indexes = [call.args[0] for call in search.bulk_upsert.await_args_list]
        assert indexes == ["widgets", "templates"]
