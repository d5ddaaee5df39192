"""Services for the bulk-analysis controller."""

from .store import DomainRecordStore
from .view import DomainView, ViewFilters, SortKey, SortOrder, WorkflowFilter, VerificationFilter
from .selection import SelectionManager, SmartSelection
from .poller import BulkJobPoller, JobAlreadyRunning, KeywordAnalysisSource, QualificationSource
from .duplicates import DuplicateResolutionFlow, DuplicateFlowState
from .keyword_grouping import group_keywords_by_topic, collect_keywords
from .triage import GuidedTriageFlow
from .controller import BulkAnalysisController

__all__ = [
    "DomainRecordStore",
    "DomainView",
    "ViewFilters",
    "SortKey",
    "SortOrder",
    "WorkflowFilter",
    "VerificationFilter",
    "SelectionManager",
    "SmartSelection",
    "BulkJobPoller",
    "JobAlreadyRunning",
    "KeywordAnalysisSource",
    "QualificationSource",
    "DuplicateResolutionFlow",
    "DuplicateFlowState",
    "group_keywords_by_topic",
    "collect_keywords",
    "GuidedTriageFlow",
    "BulkAnalysisController"
]
