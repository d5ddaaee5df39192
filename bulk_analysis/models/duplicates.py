"""Types for the duplicate-check / duplicate-resolution exchange."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DuplicateResolution(str, Enum):
    """User decision for a domain that already exists in another project."""
    KEEP_BOTH = "keep_both"
    MOVE_TO_NEW = "move_to_new"
    SKIP = "skip"
    UPDATE_ORIGINAL = "update_original"


class DuplicateInfo(BaseModel):
    """A candidate domain that already lives in a different project."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    domain: str
    existing_domain_id: Optional[str] = Field(default=None, alias="existingDomainId")
    existing_project_id: Optional[str] = Field(default=None, alias="existingProjectId")
    existing_project_name: Optional[str] = Field(default=None, alias="existingProjectName")
    qualification_status: Optional[str] = Field(default=None, alias="qualificationStatus")
    duplicate_type: Optional[str] = Field(default=None, alias="duplicateType")
    smart_default: Optional[str] = Field(default=None, alias="smartDefault")
    reasoning: Optional[str] = None

    @property
    def default_resolution(self) -> DuplicateResolution:
        if self.smart_default == "move_here":
            return DuplicateResolution.MOVE_TO_NEW
        return DuplicateResolution.SKIP


def _domain_of(entry: Any) -> str:
    if isinstance(entry, str):
        return entry
    return entry.get("domain", "")


@dataclass
class DuplicateCheckResult:
    """Partition of candidate domains returned by the check endpoint."""
    already_in_project: List[str] = field(default_factory=list)
    duplicates: List[DuplicateInfo] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DuplicateCheckResult":
        # Entries may be bare domain strings or objects with a 'domain' key.
        already = [_domain_of(e) for e in data.get("alreadyInProject") or []]
        duplicates = []
        for entry in data.get("duplicates") or []:
            if isinstance(entry, str):
                duplicates.append(DuplicateInfo(domain=entry))
            else:
                duplicates.append(DuplicateInfo.model_validate(entry))
        return cls(already_in_project=[d for d in already if d], duplicates=duplicates)


@dataclass
class ResolutionChoice:
    """One resolved duplicate, as sent to the resolve endpoint."""
    domain: str
    resolution: DuplicateResolution
    existing_domain_id: Optional[str] = None
    existing_project_id: Optional[str] = None
    existing_project_name: Optional[str] = None

    @classmethod
    def for_duplicate(cls, duplicate: DuplicateInfo, resolution: DuplicateResolution) -> "ResolutionChoice":
        return cls(
            domain=duplicate.domain,
            resolution=resolution,
            existing_domain_id=duplicate.existing_domain_id,
            existing_project_id=duplicate.existing_project_id,
            existing_project_name=duplicate.existing_project_name,
        )

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "existingDomainId": self.existing_domain_id,
            "existingProjectId": self.existing_project_id,
            "existingProjectName": self.existing_project_name,
            "resolution": self.resolution.value,
        }
