"""Bulk job state for long-running batch work on the server."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class JobState(str, Enum):
    """Local lifecycle of a bulk job."""
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobKind(str, Enum):
    """Kind of server-side batch."""
    KEYWORD_ANALYSIS = "keyword_analysis"
    QUALIFICATION = "qualification"


@dataclass
class JobSubmission:
    """What the server answers when a job is accepted."""
    job_id: Optional[str]
    total_domains: int
    # Set when the server finished the work inside the submit call.
    final_report: Optional["JobStatusReport"] = None


@dataclass
class JobStatusReport:
    """One poll response, normalised."""
    status: str
    processed_domains: int = 0
    total_domains: int = 0
    total_keywords_analyzed: int = 0
    total_rankings_found: int = 0
    items: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "JobStatusReport":
        job = data.get("job") or {}
        return cls(
            status=job.get("status", "processing"),
            processed_domains=job.get("processedDomains") or 0,
            total_domains=job.get("totalDomains") or 0,
            total_keywords_analyzed=job.get("totalKeywordsAnalyzed") or 0,
            total_rankings_found=job.get("totalRankingsFound") or 0,
            items=data.get("items") or [],
            summary=data.get("summary") or {},
        )


@dataclass
class BulkJob:
    """A server-tracked asynchronous batch run over many domains."""
    kind: JobKind
    domain_ids: List[str] = field(default_factory=list)
    job_id: Optional[str] = None
    state: JobState = JobState.IDLE
    processed_domains: int = 0
    total_domains: int = 0
    total_keywords_analyzed: int = 0
    total_rankings_found: int = 0
    poll_attempts: int = 0
    error: Optional[str] = None
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def progress(self) -> tuple:
        return (self.processed_domains, self.total_domains)

    def apply_report(self, report: JobStatusReport) -> None:
        """Refresh counters from a poll; counters never move backwards."""
        self.processed_domains = max(self.processed_domains, report.processed_domains)
        self.total_domains = max(self.total_domains, report.total_domains)
        self.total_keywords_analyzed = report.total_keywords_analyzed
        self.total_rankings_found = report.total_rankings_found
        if report.summary:
            self.summary = report.summary
