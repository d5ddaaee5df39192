"""Submit-and-poll driver for server-side bulk jobs."""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from ..api.client import ApiError, BulkAnalysisClient
from ..models.job import BulkJob, JobKind, JobState, JobStatusReport, JobSubmission

logger = logging.getLogger(__name__)


class JobAlreadyRunning(Exception):
    """Raised when a second job is started while one is in flight."""


class JobSource(ABC):
    """How to submit one kind of job and how to ask for its status."""

    kind: JobKind

    def __init__(self, api: BulkAnalysisClient, domain_ids: List[str]):
        self.api = api
        self.domain_ids = list(domain_ids)

    @abstractmethod
    async def submit(self) -> JobSubmission:
        ...

    @abstractmethod
    async def poll(self, job_id: str) -> JobStatusReport:
        ...


class KeywordAnalysisSource(JobSource):
    """DataForSEO keyword-ranking batch over many domains."""

    kind = JobKind.KEYWORD_ANALYSIS

    def __init__(self, api: BulkAnalysisClient, domain_ids: List[str], keywords: List[str]):
        super().__init__(api, domain_ids)
        self.keywords = list(keywords)

    async def submit(self) -> JobSubmission:
        return await self.api.submit_batch_analysis(self.domain_ids, self.keywords)

    async def poll(self, job_id: str) -> JobStatusReport:
        return await self.api.get_batch_status(job_id)


class QualificationSource(JobSource):
    """Master qualification (DataForSEO where missing, then AI)."""

    kind = JobKind.QUALIFICATION

    def __init__(
        self,
        api: BulkAnalysisClient,
        domain_ids: List[str],
        location_code: int,
        language_code: str,
        target_page_ids: Optional[List[str]] = None
    ):
        super().__init__(api, domain_ids)
        self.location_code = location_code
        self.language_code = language_code
        self.target_page_ids = list(target_page_ids or [])

    async def submit(self) -> JobSubmission:
        return await self.api.submit_master_qualification(
            self.domain_ids,
            self.location_code,
            self.language_code,
            target_page_ids=self.target_page_ids
        )

    async def poll(self, job_id: str) -> JobStatusReport:
        return await self.api.get_master_qualification_status(job_id)


async def _notify(callback: Optional[Callable], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class BulkJobPoller:
    """
    Drives one bulk job through idle -> submitting -> polling -> completed|failed.

    Only one job runs at a time; start() refuses while one is in flight.
    The poll loop is an asyncio task: cancel()/close() stop it for good,
    and it also stops on the first terminal status, on a failed status
    request, or after max_attempts polls.

    Callbacks (plain or async):
    - on_progress(job) after every non-terminal poll
    - on_complete(job, report) once, when the job completes
    - on_failed(job) once, when submission or the job fails
    """

    def __init__(
        self,
        poll_interval: float = 2.0,
        max_attempts: int = 900,
        on_progress: Optional[Callable] = None,
        on_complete: Optional[Callable] = None,
        on_failed: Optional[Callable] = None
    ):
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_failed = on_failed
        self.job: Optional[BulkJob] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> JobState:
        return self.job.state if self.job else JobState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state in (JobState.SUBMITTING, JobState.POLLING)

    async def start(self, source: JobSource) -> BulkJob:
        """Submit the job and, if the server queued it, start polling."""
        if self.is_running:
            raise JobAlreadyRunning("A bulk job is already running")

        job = BulkJob(kind=source.kind, domain_ids=list(source.domain_ids), state=JobState.SUBMITTING)
        self.job = job
        logger.info(f"Submitting {job.kind.value} job for {len(job.domain_ids)} domains")

        try:
            submission = await source.submit()
        except ApiError as e:
            await self._fail(job, e.message)
            return job
        except Exception as e:
            logger.exception(f"Unexpected error submitting {job.kind.value} job")
            await self._fail(job, f"Submission failed: {e}")
            raise

        job.job_id = submission.job_id
        job.total_domains = submission.total_domains
        job.processed_domains = 0

        if submission.final_report is not None:
            await self._finish(job, submission.final_report)
            return job

        job.state = JobState.POLLING
        self._task = asyncio.create_task(self._poll_loop(source, job))
        return job

    async def wait(self) -> Optional[BulkJob]:
        """Block until the current poll loop ends."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        return self.job

    async def run(self, source: JobSource) -> BulkJob:
        job = await self.start(source)
        await self.wait()
        return job

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def close(self) -> None:
        """Cancel any active polling and wait for the task to unwind."""
        self.cancel()
        await self.wait()
        self._task = None
        # A task cancelled before its first step never reaches its handler.
        if self.job is not None and not self.job.state.is_terminal:
            self.job.state = JobState.FAILED
            self.job.error = "Polling cancelled"

    async def _poll_loop(self, source: JobSource, job: BulkJob) -> None:
        try:
            while job.poll_attempts < self.max_attempts:
                await asyncio.sleep(self.poll_interval)
                job.poll_attempts += 1

                try:
                    report = await source.poll(job.job_id)
                except ApiError as e:
                    logger.error(f"Polling job {job.job_id} failed: {e.message}")
                    await self._fail(job, f"Failed to fetch job status: {e.message}")
                    return

                job.apply_report(report)
                logger.debug(
                    f"Job {job.job_id} poll #{job.poll_attempts}: "
                    f"{report.status} {job.processed_domains}/{job.total_domains}"
                )

                if report.status == JobState.COMPLETED.value:
                    await self._finish(job, report)
                    return
                if report.status == JobState.FAILED.value:
                    await self._fail(job, report.summary.get("error") or "Job failed on the server")
                    return

                await _notify(self.on_progress, job)

            await self._fail(job, f"Timed out after {job.poll_attempts} status checks")
        except asyncio.CancelledError:
            if not job.state.is_terminal:
                job.state = JobState.FAILED
                job.error = "Polling cancelled"
            logger.info(f"Stopped polling job {job.job_id}")
            raise

    async def _finish(self, job: BulkJob, report: JobStatusReport) -> None:
        job.apply_report(report)
        job.state = JobState.COMPLETED
        logger.info(f"Job {job.job_id or '(inline)'} completed: {job.processed_domains}/{job.total_domains}")
        await _notify(self.on_complete, job, report)

    async def _fail(self, job: BulkJob, error: str) -> None:
        job.state = JobState.FAILED
        job.error = error
        logger.warning(f"Job {job.job_id or '(unsubmitted)'} failed: {error}")
        await _notify(self.on_failed, job)
