"""Domain qualification record as served by the bulk-analysis API."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QualificationStatus(str, Enum):
    """Outcome of evaluating a domain as a guest-post opportunity."""
    PENDING = "pending"
    HIGH_QUALITY = "high_quality"
    GOOD_QUALITY = "good_quality"
    MARGINAL_QUALITY = "marginal_quality"
    DISQUALIFIED = "disqualified"


class DomainRecord(BaseModel):
    """One row of qualification work within a project."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    domain: str
    client_id: Optional[str] = Field(default=None, alias="clientId")
    project_id: Optional[str] = Field(default=None, alias="projectId")

    # Kept as a plain string so rows with a status this client does not
    # know about still load (they sort last).
    qualification_status: str = Field(default="pending", alias="qualificationStatus")

    target_page_ids: List[str] = Field(default_factory=list, alias="targetPageIds")
    keyword_count: int = Field(default=0, ge=0, alias="keywordCount")
    has_dataforseo_results: bool = Field(default=False, alias="hasDataForSeoResults")
    has_workflow: bool = Field(default=False, alias="hasWorkflow")
    workflow_id: Optional[str] = Field(default=None, alias="workflowId")

    was_manually_qualified: bool = Field(default=False, alias="wasManuallyQualified")
    manually_qualified_by: Optional[str] = Field(default=None, alias="manuallyQualifiedBy")
    manually_qualified_at: Optional[datetime] = Field(default=None, alias="manuallyQualifiedAt")

    checked_by: Optional[str] = Field(default=None, alias="checkedBy")
    checked_at: Optional[datetime] = Field(default=None, alias="checkedAt")
    notes: Optional[str] = None

    ai_qualification_reasoning: Optional[str] = Field(default=None, alias="aiQualificationReasoning")
    ai_qualified_at: Optional[datetime] = Field(default=None, alias="aiQualifiedAt")

    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def __repr__(self):
        return f"<DomainRecord(id={self.id}, domain='{self.domain}', status={self.qualification_status})>"

    @property
    def is_pending(self) -> bool:
        return self.qualification_status == QualificationStatus.PENDING.value

    @property
    def status_display(self) -> str:
        """Status with the first underscore replaced, e.g. 'high quality'."""
        return self.qualification_status.replace("_", " ", 1)

    def to_dict(self) -> dict:
        """Convert to the API's camelCase JSON shape."""
        return self.model_dump(mode="json", by_alias=True)
