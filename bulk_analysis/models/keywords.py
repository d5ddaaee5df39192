"""Keyword sources: client target pages and clustered keyword groups."""

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class TargetPage(BaseModel):
    """A client URL and its keyword set. Read-only here."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    url: str
    keywords: Optional[str] = None
    status: str = "active"
    description: Optional[str] = None

    @property
    def keyword_list(self) -> List[str]:
        """Keywords as a list (stored comma-separated)."""
        if not self.keywords:
            return []
        return [k.strip() for k in self.keywords.split(",") if k.strip()]

    @property
    def is_usable(self) -> bool:
        return self.status == "active" and bool(self.keyword_list)


@dataclass
class KeywordCluster:
    """Topical keyword group, gated by `selected` before a batch job."""
    name: str
    keywords: List[str] = field(default_factory=list)
    relevance: str = "wider"  # 'core' | 'related' | 'wider'
    priority: int = 3
    selected: bool = True
