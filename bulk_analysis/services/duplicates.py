"""Duplicate check and user-directed resolution before adding domains."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..api.client import ApiError, BulkAnalysisClient
from ..models.duplicates import DuplicateInfo, DuplicateResolution, ResolutionChoice
from ..utils.domains import clean_domain
from ..utils.messages import StatusMessage

logger = logging.getLogger(__name__)


class DuplicateFlowState(str, Enum):
    COMPOSING = "composing"
    CHECKING = "checking"
    AWAITING_RESOLUTION = "awaiting_resolution"
    SUBMITTED = "submitted"


@dataclass
class PendingSubmission:
    """Submission held in memory while duplicates await a decision."""
    domains: List[str]
    project_id: str
    target_page_ids: List[str] = field(default_factory=list)
    manual_keywords: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "domains": self.domains,
            "projectId": self.project_id,
            "targetPageIds": self.target_page_ids,
        }
        if self.manual_keywords:
            payload["manualKeywords"] = self.manual_keywords
        return payload


@dataclass
class SubmissionOutcome:
    """What happened to each candidate of one submit() call."""
    created: List[str] = field(default_factory=list)
    already_in_project: List[str] = field(default_factory=list)
    awaiting: List[DuplicateInfo] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def changed_membership(self) -> bool:
        return bool(self.created)


class DuplicateResolutionFlow:
    """
    composing -> checking -> submitted, or
    composing -> checking -> awaiting_resolution -> submitted.

    Candidates already in this project are dropped silently. Candidates
    that exist in other projects are held with the keyword source config
    until resolve() or cancel(). The rest are created straight away.
    """

    def __init__(self, api: BulkAnalysisClient, project_id: str, message: StatusMessage):
        self.api = api
        self.project_id = project_id
        self.message = message
        self.state = DuplicateFlowState.COMPOSING
        self.pending: Optional[PendingSubmission] = None
        self.duplicates: List[DuplicateInfo] = []

    @property
    def is_awaiting_resolution(self) -> bool:
        return self.state == DuplicateFlowState.AWAITING_RESOLUTION

    async def submit(
        self,
        domains: List[str],
        target_page_ids: Optional[List[str]] = None,
        manual_keywords: Optional[str] = None
    ) -> SubmissionOutcome:
        outcome = SubmissionOutcome()
        if not domains:
            outcome.error = "Please enter domains to analyze"
            self.message.error(outcome.error)
            return outcome
        if self.is_awaiting_resolution:
            outcome.error = "Resolve the pending duplicates first"
            self.message.warning(outcome.error)
            return outcome

        self.state = DuplicateFlowState.CHECKING
        self.message.progress(f"Checking {len(domains)} domains for duplicates...")

        try:
            check = await self.api.check_duplicates(domains, self.project_id)
        except ApiError as e:
            self.state = DuplicateFlowState.COMPOSING
            outcome.error = f"Duplicate check failed: {e.message}"
            self.message.error(outcome.error)
            return outcome

        in_project = {clean_domain(d) for d in check.already_in_project}
        duplicates_by_domain = {clean_domain(d.domain): d for d in check.duplicates}

        outcome.already_in_project = [d for d in domains if clean_domain(d) in in_project]
        remaining = [d for d in domains if clean_domain(d) not in in_project]
        if outcome.already_in_project:
            logger.info(f"Dropping {len(outcome.already_in_project)} domains already in project")

        if not remaining:
            self.state = DuplicateFlowState.SUBMITTED
            self.message.info(f"All {len(domains)} domains are already in this project")
            return outcome

        held = [d for d in remaining if clean_domain(d) in duplicates_by_domain]
        fresh = [d for d in remaining if clean_domain(d) not in duplicates_by_domain]

        if fresh:
            try:
                await self.api.create_domains(
                    fresh,
                    self.project_id,
                    target_page_ids=target_page_ids,
                    manual_keywords=manual_keywords
                )
            except ApiError as e:
                self.state = DuplicateFlowState.COMPOSING
                outcome.error = f"Failed to add domains: {e.message}"
                self.message.error(outcome.error)
                return outcome
            outcome.created = fresh

        if held:
            self.pending = PendingSubmission(
                domains=held,
                project_id=self.project_id,
                target_page_ids=list(target_page_ids or []),
                manual_keywords=manual_keywords
            )
            self.duplicates = [duplicates_by_domain[clean_domain(d)] for d in held]
            outcome.awaiting = list(self.duplicates)
            self.state = DuplicateFlowState.AWAITING_RESOLUTION
            added = f"Added {len(fresh)} domains. " if fresh else ""
            self.message.warning(
                f"{added}{len(held)} domain{'s' if len(held) != 1 else ''} already exist in other projects"
            )
        else:
            self.state = DuplicateFlowState.SUBMITTED
            self.message.success(f"Added {len(fresh)} domains to project")

        return outcome

    def default_resolutions(self) -> Dict[str, DuplicateResolution]:
        return {d.domain: d.default_resolution for d in self.duplicates}

    async def resolve(self, resolutions: Mapping[str, DuplicateResolution]) -> Optional[Dict[str, Any]]:
        """Send the held submission plus one resolution per duplicate."""
        if not self.is_awaiting_resolution or self.pending is None:
            self.message.warning("Nothing to resolve")
            return None

        missing = [d.domain for d in self.duplicates if d.domain not in resolutions]
        if missing:
            self.message.error(f"Choose an action for: {', '.join(missing)}")
            return None

        choices = [
            ResolutionChoice.for_duplicate(d, DuplicateResolution(resolutions[d.domain]))
            for d in self.duplicates
        ]

        try:
            result = await self.api.resolve_duplicates(self.pending.to_payload(), choices)
        except ApiError as e:
            # Pending submission is kept so the user can retry or cancel.
            self.message.error(f"Failed to resolve duplicates: {e.message}")
            return None

        self.pending = None
        self.duplicates = []
        self.state = DuplicateFlowState.SUBMITTED
        self.message.success(self._summary(result, choices))
        return result

    def cancel(self) -> None:
        """Close the resolution step without submitting anything."""
        had_pending = self.pending is not None
        self.pending = None
        self.duplicates = []
        self.state = DuplicateFlowState.COMPOSING
        if had_pending:
            self.message.info("Duplicate resolution cancelled")

    @staticmethod
    def _summary(result: Dict[str, Any], choices: List[ResolutionChoice]) -> str:
        parts = []
        for key, label in (("created", "created"), ("moved", "moved"), ("updated", "updated"), ("skipped", "skipped")):
            value = result.get(key)
            if isinstance(value, list):
                value = len(value)
            if value:
                parts.append(f"{value} {label}")
        if not parts:
            return f"Resolved {len(choices)} duplicate domains"
        return "Resolved duplicates: " + ", ".join(parts)
