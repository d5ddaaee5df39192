"""Selection of domain ids used as input to bulk operations."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List

from ..api.client import BulkAnalysisClient
from ..models.domain import DomainRecord, QualificationStatus

logger = logging.getLogger(__name__)


class SmartSelection(str, Enum):
    """Server-side presets; values are the keys of the smart-filters payload."""
    PENDING_DATAFORSEO = "allPendingDataForSeo"
    PENDING_AI = "allPendingAI"
    PENDING_BOTH = "allPendingBoth"

    @classmethod
    def from_name(cls, name: str) -> "SmartSelection":
        mapping = {
            "pending_dataforseo": cls.PENDING_DATAFORSEO,
            "pending_ai": cls.PENDING_AI,
            "pending_both": cls.PENDING_BOTH,
        }
        if name in mapping:
            return mapping[name]
        return cls(name)


@dataclass
class SelectionCounts:
    """Badge counts over the selected records."""
    total: int = 0
    pending: int = 0
    qualified: int = 0
    disqualified: int = 0
    with_workflow: int = 0
    missing_dataforseo: int = 0


class SelectionManager:
    """Ordered set of selected domain ids, owned by the client only."""

    def __init__(self):
        self._selected: dict = {}

    def __len__(self):
        return len(self._selected)

    def __contains__(self, domain_id):
        return domain_id in self._selected

    def __bool__(self):
        return bool(self._selected)

    @property
    def ids(self) -> List[str]:
        return list(self._selected)

    def toggle(self, domain_id: str) -> bool:
        """Flip membership; returns the new state."""
        if domain_id in self._selected:
            del self._selected[domain_id]
            return False
        self._selected[domain_id] = True
        return True

    def select(self, ids: Iterable[str]) -> None:
        for domain_id in ids:
            self._selected[domain_id] = True

    def deselect(self, ids: Iterable[str]) -> None:
        for domain_id in ids:
            self._selected.pop(domain_id, None)

    def set(self, ids: Iterable[str]) -> None:
        self._selected = dict.fromkeys(ids, True)

    def clear(self) -> None:
        self._selected = {}

    def prune(self, existing_ids: Iterable[str]) -> int:
        """Drop ids no longer present in the store."""
        keep = set(existing_ids)
        dropped = [i for i in self._selected if i not in keep]
        self.deselect(dropped)
        return len(dropped)

    def selected_records(self, records: Iterable[DomainRecord]) -> List[DomainRecord]:
        return [r for r in records if r.id in self._selected]

    def counts(self, records: Iterable[DomainRecord]) -> SelectionCounts:
        counts = SelectionCounts()
        for record in self.selected_records(records):
            counts.total += 1
            if record.is_pending:
                counts.pending += 1
            elif record.qualification_status == QualificationStatus.DISQUALIFIED.value:
                counts.disqualified += 1
            else:
                counts.qualified += 1
            if record.has_workflow:
                counts.with_workflow += 1
            if not record.has_dataforseo_results:
                counts.missing_dataforseo += 1
        return counts

    async def apply_smart_selection(self, api: BulkAnalysisClient, preset: SmartSelection) -> int:
        """
        Select every project record matching a preset.

        Membership comes from the server, not the local (possibly
        filtered or paginated) list.
        """
        filters = await api.get_smart_filters()
        ids = filters.get(preset.value) or []
        self.set(ids)
        logger.info(f"Smart selection {preset.value}: {len(ids)} domains")
        return len(ids)
