import asyncio
import unittest

from pm_agent.services.cache import ResponseCache
from pm_agent.services.jobs import JobRunner, JobStatus


class _FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class JobRunnerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.runner = JobRunner(retention_sec=1800, clock=self.clock)

    async def asyncTearDown(self) -> None:
        await self.runner.drain()
        await self.runner.aclose()

    async def test_submit_returns_immediately_and_completes(self) -> None:
        async def processor(payload: str) -> dict:
            return {"echo": payload.upper()}

        job_id = self.runner.submit("doc_to_tasks", "prd text", processor)

        self.assertIn(self.runner.get_status(job_id).status, {JobStatus.PENDING, JobStatus.PROCESSING})
        await self.runner.drain()

        job = self.runner.get_status(job_id)
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.result, {"echo": "PRD TEXT"})
        self.assertIsNone(job.error)

    async def test_failing_processor_is_recorded_not_raised(self) -> None:
        async def processor(_payload) -> None:
            raise ValueError("Doc-to-task AI output validation failed")

        job_id = self.runner.submit("doc_to_tasks", "prd", processor)
        await self.runner.drain()

        job = self.runner.get_status(job_id)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, "Doc-to-task AI output validation failed")
        self.assertIsNone(job.result)

    async def test_processing_state_is_visible_while_running(self) -> None:
        release = asyncio.Event()

        async def processor(_payload) -> str:
            await release.wait()
            return "done"

        job_id = self.runner.submit("doc_to_tasks", "prd", processor)
        await asyncio.sleep(0)

        self.assertEqual(self.runner.get_status(job_id).status, JobStatus.PROCESSING)
        self.assertEqual(self.runner.in_flight, 1)

        release.set()
        await self.runner.drain()
        self.assertEqual(self.runner.get_status(job_id).status, JobStatus.COMPLETED)
        self.assertEqual(self.runner.in_flight, 0)

    async def test_jobs_run_concurrently(self) -> None:
        started: list[str] = []
        release = asyncio.Event()

        async def processor(payload: str) -> str:
            started.append(payload)
            await release.wait()
            return payload

        ids = [self.runner.submit("doc_to_tasks", name, processor) for name in ("a", "b", "c")]
        while len(started) < 3:
            await asyncio.sleep(0)

        release.set()
        await self.runner.drain()
        self.assertEqual([self.runner.get_status(job_id).result for job_id in ids], ["a", "b", "c"])

    async def test_status_lookup_returns_a_snapshot(self) -> None:
        async def processor(_payload) -> str:
            return "ok"

        job_id = self.runner.submit("doc_to_tasks", "prd", processor)
        await self.runner.drain()

        snapshot = self.runner.get_status(job_id)
        snapshot.status = JobStatus.FAILED

        self.assertEqual(self.runner.get_status(job_id).status, JobStatus.COMPLETED)

    async def test_unknown_job_is_not_found(self) -> None:
        self.assertIsNone(self.runner.get_status("missing"))

    async def test_sweep_removes_jobs_past_retention_regardless_of_state(self) -> None:
        release = asyncio.Event()

        async def finished(_payload) -> str:
            return "ok"

        async def stuck(_payload) -> str:
            await release.wait()
            return "late"

        old_done = self.runner.submit("doc_to_tasks", "a", finished)
        old_stuck = self.runner.submit("doc_to_tasks", "b", stuck)
        await asyncio.sleep(0)
        self.clock.now += 1000
        recent = self.runner.submit("doc_to_tasks", "c", finished)

        self.clock.now += 801
        removed = self.runner.sweep()

        self.assertEqual(removed, 2)
        self.assertIsNone(self.runner.get_status(old_done))
        self.assertIsNone(self.runner.get_status(old_stuck))
        self.assertIsNotNone(self.runner.get_status(recent))
        release.set()

    async def test_background_sweeper_runs_periodically(self) -> None:
        async def processor(_payload) -> str:
            return "ok"

        job_id = self.runner.submit("doc_to_tasks", "a", processor)
        await self.runner.drain()
        self.clock.now += 1801

        self.runner.start_sweeper(0.01)
        for _ in range(50):
            if self.runner.get_status(job_id) is None:
                break
            await asyncio.sleep(0.01)

        self.assertIsNone(self.runner.get_status(job_id))
        await self.runner.aclose()

    async def test_sweeper_also_purges_expired_cache_entries(self) -> None:
        cache_clock = _FakeClock(0.0)
        cache = ResponseCache(default_ttl_sec=10, clock=cache_clock)
        cache.set("analysis:p1:stale", {"summary": "old"})
        cache.set("analysis:p2:fresh", {"summary": "new"}, ttl_sec=100)
        cache_clock.now = 50

        self.runner.start_sweeper(0.01, also=[cache.purge_expired])
        for _ in range(50):
            if len(cache) == 1:
                break
            await asyncio.sleep(0.01)
        await self.runner.aclose()

        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.get("analysis:p2:fresh"), {"summary": "new"})

    async def test_aclose_waits_for_jobs_within_grace(self) -> None:
        async def processor(_payload) -> str:
            await asyncio.sleep(0.01)
            return "ok"

        job_id = self.runner.submit("doc_to_tasks", "prd", processor)
        await self.runner.aclose(grace_sec=5)

        self.assertEqual(self.runner.get_status(job_id).status, JobStatus.COMPLETED)
        self.assertEqual(self.runner.in_flight, 0)

    async def test_aclose_cancels_jobs_past_grace(self) -> None:
        async def processor(_payload) -> str:
            await asyncio.Event().wait()
            return "never"

        job_id = self.runner.submit("doc_to_tasks", "prd", processor)
        await asyncio.sleep(0)
        await self.runner.aclose(grace_sec=0.01)

        job = self.runner.get_status(job_id)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, "cancelled")
        self.assertEqual(self.runner.in_flight, 0)

    async def test_to_dict_exposes_result_only_when_completed(self) -> None:
        async def processor(_payload) -> dict:
            return {"tasks": []}

        job_id = self.runner.submit("doc_to_tasks", "prd", processor)
        await self.runner.drain()

        data = self.runner.get_status(job_id).to_dict()

        self.assertEqual(data["id"], job_id)
        self.assertEqual(data["type"], "doc_to_tasks")
        self.assertEqual(data["status"], "completed")
        self.assertEqual(data["result"], {"tasks": []})
        self.assertNotIn("error", data)
        self.assertTrue(data["createdAt"].startswith("2023-11-14"))


if __name__ == "__main__":
    unittest.main()
