"""In-memory domain record collection kept in sync with the API."""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..api.client import BulkAnalysisClient
from ..models.domain import DomainRecord

logger = logging.getLogger(__name__)


class DomainRecordStore:
    """
    Session copy of a project's domain records.

    Policy:
    - load() replaces the whole collection; used after anything that
      changes set membership (add, refresh).
    - patch_local() rewrites matching records in place, used once the
      server has confirmed an update whose result is already known.

    Each load takes a token; a load that finishes after a newer one was
    started is discarded. Patches applied while a load is in flight are
    re-applied on top of that load's result so a late reload cannot
    clobber them. Removals made meanwhile are filtered out of it the same
    way.
    """

    def __init__(self, api: BulkAnalysisClient, project_id: str):
        self.api = api
        self.project_id = project_id
        self._records: List[DomainRecord] = []
        self._load_token = 0
        self._inflight_loads = 0
        self._patched_during_load: Dict[str, DomainRecord] = {}
        self._removed_during_load: Set[str] = set()

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(list(self._records))

    @property
    def records(self) -> List[DomainRecord]:
        return list(self._records)

    @property
    def is_loading(self) -> bool:
        return self._inflight_loads > 0

    def get(self, domain_id: str) -> Optional[DomainRecord]:
        for record in self._records:
            if record.id == domain_id:
                return record
        return None

    def ids(self) -> List[str]:
        return [r.id for r in self._records]

    async def load(self) -> bool:
        """
        Replace the collection with the server's current list.

        Returns False when this load was superseded by a newer one.
        Raises ApiError on failure, leaving the previous collection as is.
        """
        self._load_token += 1
        token = self._load_token
        self._inflight_loads += 1
        try:
            records = await self.api.list_domains(self.project_id)
            if token != self._load_token:
                logger.debug(f"Discarding stale load #{token} (latest is #{self._load_token})")
                return False

            if self._removed_during_load:
                records = [r for r in records if r.id not in self._removed_during_load]
            if self._patched_during_load:
                records = [self._patched_during_load.get(r.id, r) for r in records]

            self._records = records
            logger.info(f"Loaded {len(records)} domains for project {self.project_id}")
            return True
        finally:
            self._inflight_loads -= 1
            if not self.is_loading:
                self._patched_during_load = {}
                self._removed_during_load = set()

    def patch_local(self, ids: Iterable[str], updater: Callable[[DomainRecord], DomainRecord]) -> int:
        """Apply a pure updater to every record whose id is in ids."""
        wanted = set(ids)
        patched = 0
        for i, record in enumerate(self._records):
            if record.id in wanted:
                updated = updater(record)
                self._records[i] = updated
                if self.is_loading:
                    self._patched_during_load[updated.id] = updated
                patched += 1
        return patched

    def merge(self, fresh: Iterable[DomainRecord]) -> int:
        """Swap in refetched records by id, keeping the current order."""
        by_id = {r.id: r for r in fresh}
        merged = 0
        for i, record in enumerate(self._records):
            if record.id in by_id:
                self._records[i] = by_id[record.id]
                merged += 1
        return merged

    def remove(self, ids: Iterable[str]) -> int:
        gone = set(ids)
        before = len(self._records)
        self._records = [r for r in self._records if r.id not in gone]
        for domain_id in gone:
            self._patched_during_load.pop(domain_id, None)
        if self.is_loading:
            self._removed_during_load |= gone
        return before - len(self._records)
