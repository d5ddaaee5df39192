"""Filter / sort / paginate derivation over domain records."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional

from ..config import ITEMS_PER_PAGE, STATUS_RANK, UNKNOWN_STATUS_RANK
from ..models.domain import DomainRecord, QualificationStatus


class WorkflowFilter(str, Enum):
    ALL = "all"
    HAS_WORKFLOW = "has_workflow"
    NO_WORKFLOW = "no_workflow"


class VerificationFilter(str, Enum):
    ALL = "all"
    HUMAN_VERIFIED = "human_verified"
    AI_QUALIFIED = "ai_qualified"
    UNVERIFIED = "unverified"


class SortKey(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    DOMAIN = "domain"
    QUALIFICATION_STATUS = "qualificationStatus"
    HAS_DATAFORSEO_RESULTS = "hasDataForSeoResults"
    HAS_WORKFLOW = "hasWorkflow"
    KEYWORD_COUNT = "keywordCount"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class ViewFilters:
    """Filter values; all of them must match (AND)."""
    statuses: FrozenSet[str] = field(default_factory=frozenset)  # empty = all
    workflow: WorkflowFilter = WorkflowFilter.ALL
    verification: VerificationFilter = VerificationFilter.ALL
    search: str = ""


def matches_status(record: DomainRecord, statuses: FrozenSet[str]) -> bool:
    return not statuses or record.qualification_status in statuses


def matches_workflow(record: DomainRecord, workflow: WorkflowFilter) -> bool:
    if workflow == WorkflowFilter.HAS_WORKFLOW:
        return record.has_workflow
    if workflow == WorkflowFilter.NO_WORKFLOW:
        return not record.has_workflow
    return True


def matches_verification(record: DomainRecord, verification: VerificationFilter) -> bool:
    if verification == VerificationFilter.HUMAN_VERIFIED:
        return record.was_manually_qualified
    if verification == VerificationFilter.AI_QUALIFIED:
        return not record.was_manually_qualified and not record.is_pending
    if verification == VerificationFilter.UNVERIFIED:
        return record.is_pending
    return True


def matches_search(record: DomainRecord, search: str) -> bool:
    return not search or search.lower() in record.domain.lower()


def matches(record: DomainRecord, filters: ViewFilters) -> bool:
    return (
        matches_status(record, filters.statuses)
        and matches_workflow(record, filters.workflow)
        and matches_verification(record, filters.verification)
        and matches_search(record, filters.search)
    )


def filter_records(records: Iterable[DomainRecord], filters: ViewFilters) -> List[DomainRecord]:
    return [r for r in records if matches(r, filters)]


def _timestamp(value) -> float:
    return value.timestamp() if value else 0.0


def sort_value(record: DomainRecord, key: SortKey):
    if key == SortKey.CREATED_AT:
        return _timestamp(record.created_at)
    if key == SortKey.UPDATED_AT:
        return _timestamp(record.updated_at)
    if key == SortKey.DOMAIN:
        return record.domain.lower()
    if key == SortKey.QUALIFICATION_STATUS:
        return STATUS_RANK.get(record.qualification_status, UNKNOWN_STATUS_RANK)
    if key == SortKey.HAS_DATAFORSEO_RESULTS:
        return int(record.has_dataforseo_results)
    if key == SortKey.HAS_WORKFLOW:
        return int(record.has_workflow)
    if key == SortKey.KEYWORD_COUNT:
        return record.keyword_count or 0
    raise ValueError(f"Unknown sort key: {key}")


def sort_records(
    records: Iterable[DomainRecord],
    key: SortKey = SortKey.CREATED_AT,
    order: SortOrder = SortOrder.DESC
) -> List[DomainRecord]:
    """Stable sort; DESC flips the comparison, ties keep input order."""
    return sorted(records, key=lambda r: sort_value(r, key), reverse=order == SortOrder.DESC)


class DomainView:
    """
    Visible slice of the record store.

    display_limit grows by one page per show_more() and snaps back to one
    page whenever a filter value changes.
    """

    def __init__(self, page_size: int = ITEMS_PER_PAGE):
        self.page_size = page_size
        self.filters = ViewFilters()
        self.sort_key = SortKey.CREATED_AT
        self.sort_order = SortOrder.DESC
        self.display_limit = page_size

    def set_filters(self, **changes) -> None:
        updated = replace(self.filters, **changes)
        if updated != self.filters:
            self.filters = updated
            self.display_limit = self.page_size

    def set_status_filter(self, statuses: Optional[Iterable[str]]) -> None:
        values = frozenset(
            s.value if isinstance(s, QualificationStatus) else s for s in (statuses or [])
        )
        self.set_filters(statuses=values)

    def set_workflow_filter(self, workflow) -> None:
        self.set_filters(workflow=WorkflowFilter(workflow))

    def set_verification_filter(self, verification) -> None:
        self.set_filters(verification=VerificationFilter(verification))

    def set_search(self, search: str) -> None:
        self.set_filters(search=(search or "").strip())

    def set_sort(self, key, order=None) -> None:
        """Pick a sort key; re-picking the current key without an order toggles it."""
        key = SortKey(key)
        if order is not None:
            self.sort_order = SortOrder(order)
        elif key == self.sort_key:
            self.sort_order = SortOrder.ASC if self.sort_order == SortOrder.DESC else SortOrder.DESC
        self.sort_key = key

    def show_more(self) -> int:
        self.display_limit += self.page_size
        return self.display_limit

    def filtered(self, records: Iterable[DomainRecord]) -> List[DomainRecord]:
        """Filtered and sorted, without the pagination limit."""
        return sort_records(filter_records(records, self.filters), self.sort_key, self.sort_order)

    def visible(self, records: Iterable[DomainRecord]) -> List[DomainRecord]:
        return self.filtered(records)[:self.display_limit]

    def has_more(self, records: Iterable[DomainRecord]) -> bool:
        return len(self.filtered(records)) > self.display_limit
