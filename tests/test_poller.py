"""Tests for the bulk job poller."""

import asyncio

import pytest

from bulk_analysis.models.job import JobKind, JobState
from bulk_analysis.services.poller import (
    BulkJobPoller,
    JobAlreadyRunning,
    KeywordAnalysisSource,
    QualificationSource,
)

from conftest import BASE

BATCH = f"{BASE}/dataforseo/batch"
QUALIFY = f"{BASE}/master-qualify"


def job_status(status, processed, total=5, **extra):
    return {
        "job": {
            "status": status,
            "processedDomains": processed,
            "totalDomains": total,
            "totalKeywordsAnalyzed": extra.get("keywords", 0),
            "totalRankingsFound": extra.get("rankings", 0),
        },
        "items": [],
    }


class TestBulkJobPoller:
    """Test suite for BulkJobPoller."""

    @pytest.fixture
    def events(self):
        return {"progress": [], "complete": [], "failed": []}

    @pytest.fixture
    def poller(self, events):
        return BulkJobPoller(
            poll_interval=0,
            max_attempts=10,
            on_progress=lambda job: events["progress"].append(job.progress),
            on_complete=lambda job, report: events["complete"].append(report.status),
            on_failed=lambda job: events["failed"].append(job.error),
        )

    @pytest.fixture
    def source(self, api):
        return KeywordAnalysisSource(api, ["d1", "d2", "d3", "d4", "d5"], ["seo tools"])

    @pytest.mark.asyncio
    async def test_progress_then_completion(self, poller, source, backend, events):
        """Progress is reported per tick; completion ends the loop."""
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.sequence("GET", BATCH, [
            job_status("processing", 2),
            job_status("processing", 4),
            job_status("processing", 5),
            job_status("completed", 5, keywords=40, rankings=12),
        ])

        job = await poller.run(source)

        assert job.state == JobState.COMPLETED
        assert events["progress"] == [(2, 5), (4, 5), (5, 5)]
        assert events["complete"] == ["completed"]
        assert job.total_keywords_analyzed == 40
        assert job.total_rankings_found == 12
        assert job.domain_ids == ["d1", "d2", "d3", "d4", "d5"]

        submitted = backend.body(backend.requests("POST", BATCH)[0])
        assert submitted == {"domainIds": ["d1", "d2", "d3", "d4", "d5"], "keywords": ["seo tools"]}

    @pytest.mark.asyncio
    async def test_no_polls_after_terminal_status(self, poller, source, backend):
        """Once a terminal status arrives, the job id is never polled again."""
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.sequence("GET", BATCH, [job_status("processing", 1), job_status("completed", 5)])

        await poller.run(source)
        polls = len(backend.requests("GET", BATCH))
        await asyncio.sleep(0.01)

        assert polls == 2
        assert len(backend.requests("GET", BATCH)) == 2
        assert backend.requests("GET", BATCH)[0].url.params["jobId"] == "job-1"

    @pytest.mark.asyncio
    async def test_failed_status(self, poller, source, backend, events):
        """A failed job stops polling and reports once."""
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.sequence("GET", BATCH, [job_status("processing", 1), job_status("failed", 1)])

        job = await poller.run(source)

        assert job.state == JobState.FAILED
        assert len(events["failed"]) == 1
        assert events["complete"] == []
        assert len(backend.requests("GET", BATCH)) == 2

    @pytest.mark.asyncio
    async def test_submit_failure_never_polls(self, poller, source, backend, events):
        """A rejected submission fails without a job id or any poll."""
        backend.on("POST", BATCH, {"error": "DataForSEO quota exceeded"}, status=429)

        job = await poller.run(source)

        assert job.state == JobState.FAILED
        assert job.job_id is None
        assert events["failed"] == ["DataForSEO quota exceeded"]
        assert backend.requests("GET", BATCH) == []

    @pytest.mark.asyncio
    async def test_null_total_falls_back_to_domain_count(self, poller, source, backend):
        """A submission answer with a null total still starts polling."""
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": None})
        backend.on("GET", BATCH, job_status("completed", 5))

        job = await poller.run(source)

        assert job.state == JobState.COMPLETED
        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_unexpected_submit_error_releases_guard(self, poller, events):
        """Any error raised while submitting fails the job so a new one can start."""
        class BrokenSource:
            kind = JobKind.KEYWORD_ANALYSIS
            domain_ids = ["d1"]

            async def submit(self):
                raise TypeError("bad submission payload")

            async def poll(self, job_id):
                raise AssertionError("never polled")

        with pytest.raises(TypeError):
            await poller.start(BrokenSource())

        assert poller.state == JobState.FAILED
        assert not poller.is_running
        assert events["failed"] == ["Submission failed: bad submission payload"]

    @pytest.mark.asyncio
    async def test_poll_error_fails_job(self, poller, source, backend, events):
        """A failed status request is not retried."""
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.on("GET", BATCH, {"error": "gateway"}, status=502)

        job = await poller.run(source)

        assert job.state == JobState.FAILED
        assert "gateway" in job.error
        assert len(backend.requests("GET", BATCH)) == 1

    @pytest.mark.asyncio
    async def test_times_out_after_max_attempts(self, source, backend, events):
        """A job that never finishes fails after max_attempts polls."""
        poller = BulkJobPoller(
            poll_interval=0,
            max_attempts=3,
            on_failed=lambda job: events["failed"].append(job.error),
        )
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.on("GET", BATCH, job_status("processing", 1))

        job = await poller.run(source)

        assert job.state == JobState.FAILED
        assert len(backend.requests("GET", BATCH)) == 3
        assert "Timed out" in events["failed"][0]

    @pytest.mark.asyncio
    async def test_cancel_stops_polling(self, source, backend):
        """close() cancels the loop; no requests follow."""
        poller = BulkJobPoller(poll_interval=0.01, max_attempts=1000)
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.on("GET", BATCH, job_status("processing", 1))

        await poller.start(source)
        while not backend.requests("GET", BATCH):
            await asyncio.sleep(0.005)
        await poller.close()
        polls = len(backend.requests("GET", BATCH))
        await asyncio.sleep(0.05)

        assert len(backend.requests("GET", BATCH)) == polls
        assert poller.job.state == JobState.FAILED
        assert poller.job.error == "Polling cancelled"
        assert not poller.is_running

    @pytest.mark.asyncio
    async def test_second_start_is_refused(self, source, backend):
        """Only one job runs at a time."""
        poller = BulkJobPoller(poll_interval=0.01, max_attempts=1000)
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.on("GET", BATCH, job_status("processing", 1))

        await poller.start(source)
        with pytest.raises(JobAlreadyRunning):
            await poller.start(source)
        await poller.close()

    @pytest.mark.asyncio
    async def test_progress_never_moves_backwards(self, poller, source, backend, events):
        """An out-of-order tick does not lower the processed count."""
        backend.on("POST", BATCH, {"jobId": "job-1", "totalDomains": 5})
        backend.sequence("GET", BATCH, [
            job_status("processing", 3),
            job_status("processing", 2),
            job_status("completed", 5),
        ])

        await poller.run(source)

        assert events["progress"] == [(3, 5), (3, 5)]


class TestQualificationSource:
    """Test suite for the master-qualification job source."""

    @pytest.mark.asyncio
    async def test_synchronous_answer_is_already_complete(self, api, backend):
        """A results/summary response completes the job without polling."""
        completed = []
        poller = BulkJobPoller(poll_interval=0, on_complete=lambda job, report: completed.append(report))
        backend.on("POST", QUALIFY, {
            "results": [{"domainId": "a", "status": "high_quality"}, {"domainId": "b", "status": "disqualified"}],
            "summary": {"total": 2},
        })

        job = await poller.run(QualificationSource(api, ["a", "b"], 2840, "en", target_page_ids=["tp1"]))

        assert job.kind == JobKind.QUALIFICATION
        assert job.state == JobState.COMPLETED
        assert job.progress == (2, 2)
        assert len(completed[0].items) == 2
        assert backend.requests("GET", QUALIFY) == []

        payload = backend.body(backend.requests("POST", QUALIFY)[0])
        assert payload == {
            "domainIds": ["a", "b"],
            "locationCode": 2840,
            "languageCode": "en",
            "targetPageIds": ["tp1"],
        }

    @pytest.mark.asyncio
    async def test_queued_answer_is_polled(self, api, backend):
        """A jobId response is polled like any other job."""
        poller = BulkJobPoller(poll_interval=0)
        backend.on("POST", QUALIFY, {"jobId": "q-1", "totalDomains": 2})
        backend.sequence("GET", QUALIFY, [job_status("processing", 1, total=2), job_status("completed", 2, total=2)])

        job = await poller.run(QualificationSource(api, ["a", "b"], 2840, "en"))

        assert job.state == JobState.COMPLETED
        assert [r.url.params["jobId"] for r in backend.requests("GET", QUALIFY)] == ["q-1", "q-1"]
