"""Data models for the bulk-analysis controller."""

from .domain import DomainRecord, QualificationStatus
from .job import BulkJob, JobKind, JobState, JobStatusReport, JobSubmission
from .keywords import KeywordCluster, TargetPage
from .duplicates import (
    DuplicateCheckResult,
    DuplicateInfo,
    DuplicateResolution,
    ResolutionChoice,
)

__all__ = [
    "DomainRecord",
    "QualificationStatus",
    "BulkJob",
    "JobKind",
    "JobState",
    "JobStatusReport",
    "JobSubmission",
    "KeywordCluster",
    "TargetPage",
    "DuplicateCheckResult",
    "DuplicateInfo",
    "DuplicateResolution",
    "ResolutionChoice",
]
