"""Integration tests for API background job endpoints."""

from __future__ import annotations

import asyncio
import unittest

import httpx

from quantpilot.api.app import create_app
from quantpilot.api.jobs import InMemoryJobQueue
from quantpilot.core.ai.client import MockClient
from quantpilot.core.auth.session import LocalIdentityProvider
from quantpilot.core.config import AppConfig, EngineConfig
from quantpilot.core.utils.errors import BacktestError


async def _poll_job_result(
    client: httpx.AsyncClient,
    job_id: str,
    timeout_seconds: float = 15.0,
    headers: dict[str, str] | None = None,
) -> dict[str, object]:
    """Poll a job endpoint until it finishes or the timeout passes."""
    max_polls = max(1, int(timeout_seconds / 0.05))
    for _ in range(max_polls):
        response = await client.get(f"/jobs/{job_id}", headers=headers)
        if response.status_code != 200:
            raise AssertionError(
                f"Unexpected job status response: {response.status_code} {response.text}"
            )
        payload = response.json()
        if payload["status"] in {"completed", "failed"}:
            return payload
        await asyncio.sleep(0.05)
    raise AssertionError(f"Timed out waiting for job completion: {job_id}")


class TestApiJobs(unittest.IsolatedAsyncioTestCase):
    """Validate queued backtests and their status transitions."""

    async def asyncSetUp(self) -> None:
        config = AppConfig(engine=EngineConfig(simulated_delay_seconds=0, seed=11))
        self.app = create_app(
            config=config,
            ai_client=MockClient(),
            identity_provider=LocalIdentityProvider(),
        )
        transport = httpx.ASGITransport(app=self.app)
        self.client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        self.app.state.jobs.shutdown()

    async def test_backtest_job_completes(self) -> None:
        submitted = await self.client.post(
            "/jobs/backtests", json={"config": {"asset": "EURUSD"}, "duration": "1M"}
        )
        self.assertEqual(submitted.status_code, 202)
        job = submitted.json()
        self.assertEqual(job["job_type"], "backtest")
        self.assertIn(job["status"], {"pending", "running", "completed"})
        self.assertEqual(job["request"]["duration"], "1M")
        self.assertEqual(job["request"]["config"]["asset"], "EURUSD")
        self.assertIn("entryRules", job["request"]["config"])

        finished = await _poll_job_result(self.client, job["job_id"])
        self.assertEqual(finished["status"], "completed")
        self.assertIsNone(finished["error"])
        backtest_id = finished["result"]["id"]

        stored = await self.client.get(f"/backtests/{backtest_id}")
        self.assertEqual(stored.status_code, 200)
        self.assertEqual(stored.json()["stats"], finished["result"]["stats"])

        listed = (await self.client.get("/jobs")).json()
        self.assertEqual([item["job_id"] for item in listed], [job["job_id"]])

    async def test_failed_job_reports_typed_error(self) -> None:
        submitted = await self.client.post(
            "/jobs/backtests", json={"date_range": {"start": "not-a-date"}}
        )
        finished = await _poll_job_result(self.client, submitted.json()["job_id"])
        self.assertEqual(finished["status"], "failed")
        self.assertEqual(finished["error"]["error_code"], "backtest_error")
        self.assertIn("Traceback", finished["error"]["traceback"])

    async def test_jobs_are_visible_only_to_their_owner(self) -> None:
        signed_in = await self.client.post(
            "/auth/signin", json={"email": "ada@example.com", "password": "pw"}
        )
        headers = {"Authorization": f"Bearer {signed_in.json()['access_token']}"}
        submitted = await self.client.post(
            "/jobs/backtests",
            json={"config": {"asset": "SECRETPAIR"}, "duration": "1M"},
            headers=headers,
        )
        job_id = submitted.json()["job_id"]
        finished = await _poll_job_result(self.client, job_id, headers=headers)
        self.assertEqual(finished["status"], "completed")

        self.assertEqual((await self.client.get("/jobs")).json(), [])
        anonymous_detail = await self.client.get(f"/jobs/{job_id}")
        self.assertEqual(anonymous_detail.status_code, 404)
        self.assertEqual(anonymous_detail.json()["error_code"], "not_found")

        owned = (await self.client.get("/jobs", headers=headers)).json()
        self.assertEqual([item["job_id"] for item in owned], [job_id])

    async def test_unknown_job_is_404(self) -> None:
        response = await self.client.get("/jobs/job_999999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error_code"], "not_found")


class TestInMemoryJobQueue(unittest.TestCase):
    def test_generic_failure_maps_to_internal_error(self) -> None:
        queue = InMemoryJobQueue(max_workers=1)

        def task() -> dict[str, object]:
            raise RuntimeError("boom")

        record = queue.submit("backtest", {}, task, owner_id="anonymous")
        queue._executor.shutdown(wait=True)
        finished = queue.get(record.job_id)
        self.assertEqual(finished.status, "failed")
        self.assertEqual(finished.error_code, "internal_error")
        self.assertEqual(finished.error_message, "boom")

    def test_typed_failure_keeps_error_code(self) -> None:
        queue = InMemoryJobQueue(max_workers=1)

        def task() -> dict[str, object]:
            raise BacktestError("bad range")

        record = queue.submit("backtest", {}, task, owner_id="anonymous")
        queue._executor.shutdown(wait=True)
        self.assertEqual(queue.get(record.job_id).error_code, "backtest_error")

    def test_list_is_newest_first_and_limited(self) -> None:
        queue = InMemoryJobQueue(max_workers=1)
        for _ in range(3):
            queue.submit("backtest", {}, lambda: {"ok": True}, owner_id="anonymous")
        queue._executor.shutdown(wait=True)
        records = queue.list(limit=2)
        self.assertEqual([record.job_id for record in records], ["job_000003", "job_000002"])
        self.assertTrue(all(record.status == "completed" for record in records))

    def test_list_filters_by_owner(self) -> None:
        queue = InMemoryJobQueue(max_workers=1)
        mine = queue.submit("backtest", {}, lambda: {"ok": True}, owner_id="user-1")
        queue.submit("backtest", {}, lambda: {"ok": True}, owner_id="anonymous")
        queue._executor.shutdown(wait=True)
        records = queue.list(owner_id="user-1")
        self.assertEqual([record.job_id for record in records], [mine.job_id])
        self.assertEqual(len(queue.list()), 2)


if __name__ == "__main__":
    unittest.main()
