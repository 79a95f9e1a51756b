"""
Integration tests for the API endpoints.
"""

import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobqueue.constants import JobState
from jobqueue.exceptions import StoreUnavailable
from jobqueue.queue.allocator import JobAllocator
from jobqueue.queue.reporting import JobReports
from jobqueue.types.job import Capability


class TestJobAPI:
    """Integration tests for job API endpoints."""

    @pytest_asyncio.fixture
    async def created_job(self, client: AsyncClient) -> dict:
        """Create a job for testing."""
        response = await client.post(
            "/v1/jobs",
            json={"jobtype": "echo", "data": {"test": True}, "reference": "ref-1"},
        )
        return response.json()

    async def test_create_job_success(self, client: AsyncClient):
        """Test successful job creation."""
        response = await client.post(
            "/v1/jobs",
            json={
                "jobtype": "send_mail",
                "data": {"to": "ops@example.com"},
                "group": "mail",
                "reference": "invoice-42",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["jobtype"] == "send_mail"
        assert data["payload"] == {"to": "ops@example.com"}
        assert data["task_group"] == "mail"
        assert data["reference"] == "invoice-42"
        assert data["status"] == JobState.QUEUED
        assert data["failed"] == 0

    async def test_create_job_with_delay(self, client: AsyncClient):
        """Test that a delay becomes a notbefore timestamp."""
        response = await client.post(
            "/v1/jobs",
            json={"jobtype": "echo", "delay_seconds": 120},
        )

        assert response.status_code == 201
        assert response.json()["notbefore"] is not None

    async def test_create_job_empty_jobtype(self, client: AsyncClient):
        """Test that an empty job type is rejected."""
        response = await client.post("/v1/jobs", json={"jobtype": ""})

        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_JOB"

    async def test_create_job_missing_jobtype(self, client: AsyncClient):
        """Test that a request without job type fails validation."""
        response = await client.post("/v1/jobs", json={"data": {}})

        assert response.status_code == 422

    async def test_get_job(self, client: AsyncClient, created_job: dict):
        """Test getting a job by ID."""
        response = await client.get(f"/v1/jobs/{created_job['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created_job["id"]
        assert data["payload"] == {"test": True}

    async def test_get_job_not_found(self, client: AsyncClient):
        """Test getting a non-existent job."""
        response = await client.get("/v1/jobs/9999")

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_progress_done_and_list(self, client: AsyncClient, created_job: dict):
        """Test reporting progress, listing it and completing the job."""
        job_id = created_job["id"]

        response = await client.post(f"/v1/jobs/{job_id}/progress", json={"progress": 0.456})
        assert response.json() == {"success": True}

        response = await client.get("/v1/jobs/progress")
        assert response.status_code == 200
        jobs = response.json()["jobs"]
        assert jobs == [
            {
                "reference": "ref-1",
                "status": JobState.QUEUED,
                "progress": 0.46,
                "failure_message": None,
            }
        ]

        response = await client.post(f"/v1/jobs/{job_id}/done")
        assert response.json() == {"success": True}

        response = await client.get(f"/v1/jobs/{job_id}")
        assert response.json()["status"] == JobState.COMPLETED

        response = await client.get("/v1/jobs/progress")
        assert response.json()["jobs"] == []

    async def test_progress_exclude(self, client: AsyncClient, created_job: dict):
        """Test excluding references from the progress list."""
        await client.post("/v1/jobs", json={"jobtype": "echo", "reference": "ref-2"})

        response = await client.get("/v1/jobs/progress", params={"exclude": "ref-1"})

        references = [job["reference"] for job in response.json()["jobs"]]
        assert references == ["ref-2"]

    async def test_mark_failed(self, client: AsyncClient, created_job: dict):
        """Test reporting a failed attempt."""
        job_id = created_job["id"]

        response = await client.post(f"/v1/jobs/{job_id}/failed", json={"message": "boom"})
        assert response.json() == {"success": True}

        data = (await client.get(f"/v1/jobs/{job_id}")).json()
        assert data["failed"] == 1
        assert data["failure_message"] == "boom"
        assert data["status"] == JobState.QUEUED

    async def test_mark_failed_not_found(self, client: AsyncClient):
        """Test failing a non-existent job."""
        response = await client.post("/v1/jobs/9999/failed")

        assert response.status_code == 404

    async def test_done_not_found(self, client: AsyncClient):
        """Test completing a non-existent job."""
        response = await client.post("/v1/jobs/9999/done")

        assert response.status_code == 200
        assert response.json() == {"success": False}

    async def test_reports_checked_against_workerkey(
        self,
        client: AsyncClient,
        created_job: dict,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        """Test that a report naming another worker is not applied."""
        job_id = created_job["id"]
        allocator = JobAllocator()
        async with session_factory() as session:
            await allocator.request_job(session, [Capability(jobtype="echo", timeout=60)])
            await session.commit()
        owner = allocator.identity.key()

        response = await client.post(
            f"/v1/jobs/{job_id}/done", params={"workerkey": "someone-else"}
        )
        assert response.json() == {"success": False}

        response = await client.post(
            f"/v1/jobs/{job_id}/progress",
            params={"workerkey": owner},
            json={"progress": 0.4},
        )
        assert response.json() == {"success": True}

        response = await client.post(f"/v1/jobs/{job_id}/done", params={"workerkey": owner})
        assert response.json() == {"success": True}

        data = (await client.get(f"/v1/jobs/{job_id}")).json()
        assert data["status"] == JobState.COMPLETED
        assert data["progress"] == 0.4


class TestAdminAPI:
    """Integration tests for admin endpoints."""

    @pytest_asyncio.fixture
    async def jobs(self, client: AsyncClient) -> list[dict]:
        created = []
        for jobtype, data in [("echo", {"n": 1}), ("echo", {"n": 1}), ("resize", None)]:
            response = await client.post("/v1/jobs", json={"jobtype": jobtype, "data": data})
            created.append(response.json())
        return created

    async def test_length(self, client: AsyncClient, jobs: list[dict]):
        """Test counting active jobs."""
        assert (await client.get("/v1/admin/length")).json() == {"jobtype": None, "length": 3}

        response = await client.get("/v1/admin/length", params={"jobtype": "echo"})
        assert response.json() == {"jobtype": "echo", "length": 2}

    async def test_types(self, client: AsyncClient, jobs: list[dict]):
        """Test listing job types."""
        response = await client.get("/v1/admin/types")

        assert response.json() == {"types": ["echo", "resize"]}

    async def test_stats(self, client: AsyncClient, jobs: list[dict]):
        """Test timings of finished jobs."""
        await client.post(f"/v1/jobs/{jobs[2]['id']}/done")

        data = (await client.get("/v1/admin/stats")).json()

        assert [s["jobtype"] for s in data["stats"]] == ["resize"]
        assert data["stats"][0]["num"] == 1
        assert data["stats"][0]["runtime"] is None
        assert data["last_completed"] is not None

    async def test_pending(
        self,
        client: AsyncClient,
        jobs: list[dict],
        session_factory: async_sessionmaker[AsyncSession],
    ):
        """Test summaries of active jobs."""
        async with session_factory() as session:
            await JobAllocator().request_job(session, [Capability(jobtype="resize", timeout=60)])
            await session.commit()

        data = (await client.get("/v1/admin/pending")).json()

        statuses = {job["id"]: job["status"] for job in data["jobs"]}
        assert statuses[jobs[2]["id"]] == JobState.IN_PROGRESS
        assert statuses[jobs[0]["id"]] == JobState.QUEUED

    async def test_clear_duplicates(self, client: AsyncClient, jobs: list[dict]):
        """Test removing duplicate active jobs, keeping the newest."""
        response = await client.post("/v1/admin/clear-duplicates", json={"keep": "newest"})

        assert response.json() == {"count": 1}
        assert (await client.get(f"/v1/jobs/{jobs[0]['id']}")).status_code == 404
        assert (await client.get(f"/v1/jobs/{jobs[1]['id']}")).status_code == 200

    async def test_reset(self, client: AsyncClient, jobs: list[dict]):
        """Test resetting active jobs."""
        await client.post(f"/v1/jobs/{jobs[0]['id']}/failed", json={"message": "boom"})

        response = await client.post("/v1/admin/reset")
        assert response.json() == {"count": 3}

        data = (await client.get(f"/v1/jobs/{jobs[0]['id']}")).json()
        assert data["failed"] == 0
        assert data["failure_message"] is None

    async def test_cleanup(self, client: AsyncClient, jobs: list[dict]):
        """Test that a fresh completion survives the default retention."""
        await client.post(f"/v1/jobs/{jobs[0]['id']}/done")

        response = await client.post("/v1/admin/cleanup")
        assert response.json() == {"count": 0}

        response = await client.post("/v1/admin/cleanup", json={"retention_seconds": 0})
        assert response.json() == {"count": 1}


class TestHealthAPI:
    """Integration tests for health endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Test health check endpoint."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["active_jobs"] == 0

    async def test_health_counts_active_jobs(self, client: AsyncClient):
        """Test that the health check reports the number of active jobs."""
        await client.post("/v1/jobs", json={"jobtype": "echo"})
        await client.post("/v1/jobs", json={"jobtype": "resize"})

        response = await client.get("/health")

        assert response.json()["active_jobs"] == 2

    async def test_store_unavailable(self, client: AsyncClient, monkeypatch):
        """Test that an unreachable store degrades health and readiness."""

        async def unavailable(self, jobtype=None):
            raise StoreUnavailable("connection refused")

        monkeypatch.setattr(JobReports, "get_length", unavailable)

        health = await client.get("/health")
        assert health.status_code == 200
        assert health.json()["status"] == "degraded"
        assert health.json()["active_jobs"] is None

        ready = await client.get("/ready")
        assert ready.status_code == 503
        assert ready.json() == {"ready": False}

    async def test_readiness_check(self, client: AsyncClient):
        """Test readiness check endpoint."""
        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"ready": True}

    async def test_liveness_check(self, client: AsyncClient):
        """Test liveness check endpoint."""
        response = await client.get("/live")

        assert response.status_code == 200
        assert response.json() == {"alive": True}

    async def test_metrics_endpoint(self, client: AsyncClient):
        """Test Prometheus metrics endpoint."""
        await client.post("/v1/jobs", json={"jobtype": "echo"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "jobs_enqueued_total" in response.text
