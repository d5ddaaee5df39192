"""One-at-a-time review of a fixed list of domain records."""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..api.client import ApiError
from ..models.domain import DomainRecord, QualificationStatus
from ..utils.domains import parse_keywords

if TYPE_CHECKING:
    from .controller import BulkAnalysisController

logger = logging.getLogger(__name__)


@dataclass
class RankingSummary:
    """DataForSEO rankings of one domain, condensed for review."""
    total_rankings: int = 0
    avg_position: float = 0.0
    has_more: bool = False
    keywords: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RankingSummary":
        results = data.get("results") or []
        positions = [r.get("position") or 0 for r in results]
        return cls(
            total_rankings=data.get("total") or len(results),
            avg_position=sum(positions) / len(positions) if positions else 0.0,
            has_more=bool(data.get("hasMore")),
            keywords=[
                {
                    "keyword": r.get("keyword"),
                    "position": r.get("position"),
                    "searchVolume": r.get("searchVolume"),
                    "url": r.get("url"),
                }
                for r in results
            ],
        )


class GuidedTriageFlow:
    """
    Cursor over a fixed snapshot of record ids.

    Status changes go through the controller, so they follow the same
    confirm-then-apply rule as the table. Closing the flow cancels its
    pending work and reloads the store.

    In guided mode (entered for one specific domain from elsewhere),
    setting a non-pending status schedules on_return after
    return_delay seconds, giving the update time to show first.
    """

    def __init__(
        self,
        controller: "BulkAnalysisController",
        records: List[DomainRecord],
        guided_domain_id: Optional[str] = None,
        on_return: Optional[Callable] = None,
        return_delay: float = 0.5
    ):
        self.controller = controller
        self.ids = [r.id for r in records]
        self._snapshot = {r.id: r for r in records}
        self.index = 0
        self.guided_domain_id = guided_domain_id
        self.on_return = on_return
        self.return_delay = return_delay
        self.notes: Dict[str, str] = {}
        self.rankings: Dict[str, RankingSummary] = {}
        self.saving = False
        self.closed = False
        self._tasks: List[asyncio.Task] = []

        if guided_domain_id and guided_domain_id in self.ids:
            self.index = self.ids.index(guided_domain_id)

    def __len__(self):
        return len(self.ids)

    @property
    def is_guided(self) -> bool:
        return self.guided_domain_id is not None

    @property
    def current(self) -> Optional[DomainRecord]:
        if not self.ids or self.closed:
            return None
        domain_id = self.ids[self.index]
        return self.controller.store.get(domain_id) or self._snapshot[domain_id]

    @property
    def position(self) -> str:
        return f"{self.index + 1} of {len(self.ids)}" if self.ids else "0 of 0"

    @property
    def has_next(self) -> bool:
        return self.index < len(self.ids) - 1

    @property
    def has_previous(self) -> bool:
        return self.index > 0

    def next(self) -> bool:
        if not self.has_next:
            return False
        self.index += 1
        return True

    def previous(self) -> bool:
        if not self.has_previous:
            return False
        self.index -= 1
        return True

    def set_notes(self, text: str) -> None:
        record = self.current
        if record:
            self.notes[record.id] = text

    async def qualify(self, status) -> bool:
        """
        Save notes, then set the status manually and move on.

        Returns True when the status update was confirmed. After the last
        record the flow closes itself.
        """
        record = self.current
        if record is None or self.saving:
            return False

        status = QualificationStatus(status).value
        notes = self.notes.get(record.id)
        self.saving = True
        try:
            updated = await self.controller.update_status(
                record.id, status, notes=notes or None, is_manual=True
            )
        finally:
            self.saving = False

        if not updated:
            return False

        self.notes.pop(record.id, None)

        if self.is_guided and record.id == self.guided_domain_id and status != QualificationStatus.PENDING.value:
            self._tasks.append(asyncio.create_task(self._return_after_delay()))
            return True

        if not self.next():
            await self.close()
        return True

    async def _return_after_delay(self) -> None:
        await asyncio.sleep(self.return_delay)
        logger.info(f"Guided triage of {self.guided_domain_id} done, returning")
        await self.close()
        if self.on_return is not None:
            result = self.on_return(self.guided_domain_id)
            if inspect.isawaitable(result):
                await result

    async def wait_for_return(self) -> None:
        """Await any scheduled guided return."""
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def load_rankings(self, record: Optional[DomainRecord] = None) -> Optional[RankingSummary]:
        record = record or self.current
        if record is None or not record.has_dataforseo_results:
            return None
        try:
            data = await self.controller.api.get_dataforseo_results(record.id)
        except ApiError as e:
            logger.warning(f"Failed to load rankings for {record.domain}: {e.message}")
            return None
        summary = RankingSummary.from_api(data)
        self.rankings[record.id] = summary
        return summary

    async def analyze_current(self) -> Optional[RankingSummary]:
        """Run DataForSEO on the current record, then refresh its rankings."""
        record = self.current
        if record is None:
            return None

        controller = self.controller
        manual = None
        if controller.keyword_mode == "manual" and controller.manual_keywords:
            manual = parse_keywords(controller.manual_keywords)

        controller.message.progress(f"Analyzing {record.domain} with DataForSEO...")
        try:
            result = await controller.api.analyze_domain(
                record.id,
                controller.settings.location_code,
                controller.settings.language_code,
                manual_keywords=manual
            )
            data = await controller.api.get_dataforseo_results(record.id)
        except ApiError as e:
            logger.error(f"DataForSEO analysis of {record.domain} failed: {e.message}")
            controller.message.error(f"DataForSEO analysis failed: {e.message}")
            return None

        controller.store.patch_local(
            [record.id], lambda r: r.model_copy(update={"has_dataforseo_results": True})
        )
        summary = RankingSummary.from_api(data)
        self.rankings[record.id] = summary
        found = result.get("totalFound", summary.total_rankings)
        controller.message.success(f"{record.domain}: found {found} rankings")
        return summary

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._tasks = [t for t in self._tasks if t is current]

    async def close(self) -> None:
        """Leave the flow: cancel pending work and reload the store."""
        if self.closed:
            return
        self.closed = True
        self._cancel_tasks()
        await self.controller.load_domains()

    def dispose(self) -> None:
        """Tear down without reloading (owner is going away)."""
        self.closed = True
        self._cancel_tasks()
