"""Project-level controller tying store, view, selection and jobs together."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..api.client import ApiError, BulkAnalysisClient
from ..config import Settings, get_settings
from ..models.domain import DomainRecord, QualificationStatus
from ..models.duplicates import DuplicateResolution
from ..models.job import BulkJob, JobKind, JobStatusReport
from ..models.keywords import KeywordCluster, TargetPage
from ..utils.csv_export import export_csv, export_filename
from ..utils.domains import parse_domain_text
from ..utils.messages import StatusMessage
from .duplicates import DuplicateResolutionFlow, SubmissionOutcome
from .keyword_grouping import collect_keywords, group_keywords_by_topic, selected_keywords
from .poller import BulkJobPoller, KeywordAnalysisSource, QualificationSource
from .selection import SelectionCounts, SelectionManager, SmartSelection
from .store import DomainRecordStore
from .triage import GuidedTriageFlow
from .view import DomainView

logger = logging.getLogger(__name__)

KEYWORD_MODES = ("target-pages", "manual")


def _status_label(status: str) -> str:
    return status.replace("_", " ", 1)


class BulkAnalysisController:
    """
    Everything the bulk-analysis page of one project does.

    Handlers never raise on API failures: each catches ApiError, logs it
    and writes the single status message. Local state changes only after
    the server has confirmed the call. Mutations that touch overlapping
    records (single and bulk status updates, deletes, moves, workflow
    creation) are mutually exclusive through the busy flag.
    """

    def __init__(
        self,
        api: BulkAnalysisClient,
        project_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        project_name: Optional[str] = None,
        user_id: Optional[str] = None
    ):
        self.api = api
        self.settings = settings or api.settings or get_settings()
        self.project_id = project_id or self.settings.project_id
        self.project_name = project_name
        self.user_id = user_id or self.settings.user_id

        self.message = StatusMessage()
        self.store = DomainRecordStore(api, self.project_id)
        self.view = DomainView(page_size=self.settings.page_size)
        self.selection = SelectionManager()
        self.duplicates = DuplicateResolutionFlow(api, self.project_id, self.message)
        self.poller = BulkJobPoller(
            poll_interval=self.settings.poll_interval_seconds,
            max_attempts=self.settings.max_poll_attempts,
            on_progress=self._on_job_progress,
            on_complete=self._on_job_complete,
            on_failed=self._on_job_failed,
        )

        self.target_pages: List[TargetPage] = []
        self.selected_target_page_ids: List[str] = []
        self.keyword_mode = "target-pages"
        self.manual_keywords = ""
        self.keyword_clusters: List[KeywordCluster] = []
        self.recently_analyzed: Set[str] = set()
        self.triage: Optional[GuidedTriageFlow] = None
        self.busy: Optional[str] = None

    # Derived views

    @property
    def records(self) -> List[DomainRecord]:
        return self.store.records

    def visible_records(self) -> List[DomainRecord]:
        return self.view.visible(self.store.records)

    def filtered_records(self) -> List[DomainRecord]:
        return self.view.filtered(self.store.records)

    def has_more(self) -> bool:
        return self.view.has_more(self.store.records)

    def selection_counts(self) -> SelectionCounts:
        return self.selection.counts(self.store.records)

    def _claim(self, action: str) -> bool:
        if self.busy:
            self.message.warning(f"Please wait: {self.busy} is still running")
            return False
        self.busy = action
        return True

    def _release(self) -> None:
        self.busy = None

    # Loading

    async def load_domains(self) -> bool:
        try:
            applied = await self.store.load()
        except ApiError as e:
            logger.error(f"Failed to load domains: {e.message}")
            self.message.error(f"Failed to load domains: {e.message}")
            return False
        if applied:
            self.selection.prune(self.store.ids())
        return True

    async def load_target_pages(self) -> List[TargetPage]:
        try:
            self.target_pages = await self.api.get_target_pages()
        except ApiError as e:
            logger.error(f"Failed to load target pages: {e.message}")
            self.message.error(f"Failed to load target pages: {e.message}")
            return []
        logger.info(f"Loaded {len(self.target_pages)} target pages")
        return self.target_pages

    def set_keyword_source(
        self,
        mode: str,
        target_page_ids: Optional[Iterable[str]] = None,
        manual_keywords: Optional[str] = None
    ) -> None:
        if mode not in KEYWORD_MODES:
            raise ValueError(f"Unknown keyword mode: {mode}")
        self.keyword_mode = mode
        if target_page_ids is not None:
            self.selected_target_page_ids = list(target_page_ids)
        if manual_keywords is not None:
            self.manual_keywords = manual_keywords
        self.keyword_clusters = []

    # Single-record updates

    async def update_status(
        self,
        domain_id: str,
        status,
        notes: Optional[str] = None,
        is_manual: bool = False
    ) -> bool:
        """PUT the new status, then patch the local record in place."""
        status = QualificationStatus(status).value
        if not self._claim("status update"):
            return False
        try:
            await self.api.update_domain(
                domain_id, status, self.user_id, notes=notes, is_manual=is_manual or None
            )
        except ApiError as e:
            logger.error(f"Failed to update {domain_id}: {e.message}")
            self.message.error(f"Failed to update domain status: {e.message}")
            return False
        finally:
            self._release()

        now = datetime.now(timezone.utc)
        changes = {
            "qualification_status": status,
            "checked_by": self.user_id,
            "checked_at": now,
        }
        if notes is not None:
            changes["notes"] = notes
        if is_manual:
            changes.update(
                was_manually_qualified=True,
                manually_qualified_by=self.user_id,
                manually_qualified_at=now,
            )
        self.store.patch_local([domain_id], lambda r: r.model_copy(update=changes))

        record = self.store.get(domain_id)
        name = record.domain if record else domain_id
        self.message.success(f"Updated {name} to {_status_label(status)}")
        return True

    async def save_notes(self, domain_id: str, notes: str) -> bool:
        record = self.store.get(domain_id)
        if record is None:
            self.message.error("Domain not found")
            return False
        if not self._claim("notes"):
            return False
        try:
            await self.api.update_domain(domain_id, record.qualification_status, self.user_id, notes=notes)
        except ApiError as e:
            self.message.error(f"Error saving notes: {e.message}")
            return False
        finally:
            self._release()
        self.store.patch_local([domain_id], lambda r: r.model_copy(update={"notes": notes}))
        self.message.success("Notes saved")
        return True

    async def delete_domain(self, domain_id: str) -> bool:
        if not self._claim("delete"):
            return False
        try:
            await self.api.delete_domain(domain_id)
        except ApiError as e:
            logger.error(f"Failed to delete {domain_id}: {e.message}")
            self.message.error("Failed to delete domain")
            return False
        finally:
            self._release()

        self.store.remove([domain_id])
        self.selection.deselect([domain_id])
        self.message.success("Domain deleted successfully")
        return True

    # Bulk actions on the selection

    def _require_selection(self) -> Optional[List[str]]:
        ids = self.selection.ids
        if not ids:
            self.message.error("No domains selected")
            return None
        return ids

    async def bulk_update_status(self, status) -> int:
        status = QualificationStatus(status).value
        ids = self._require_selection()
        if ids is None or not self._claim("bulk status update"):
            return 0
        try:
            updated = await self.api.bulk_update_status(ids, status)
        except ApiError as e:
            logger.error(f"Bulk status update failed: {e.message}")
            self.message.error("Failed to update domain status")
            return 0
        finally:
            self._release()

        changes = {
            "qualification_status": status,
            "checked_by": self.user_id,
            "checked_at": datetime.now(timezone.utc),
        }
        self.store.patch_local(ids, lambda r: r.model_copy(update=changes))
        self.selection.clear()
        self.message.success(f"Updated {updated} domains to {_status_label(status)}")
        return updated

    async def bulk_delete(self) -> int:
        ids = self._require_selection()
        if ids is None or not self._claim("bulk delete"):
            return 0
        try:
            deleted = await self.api.bulk_delete(ids)
        except ApiError as e:
            logger.error(f"Bulk delete failed: {e.message}")
            self.message.error("Failed to delete domains")
            return 0
        finally:
            self._release()

        self.store.remove(ids)
        self.selection.clear()
        self.message.success(f"Deleted {deleted} domain{'s' if deleted != 1 else ''}")
        return deleted

    async def move_selected(self, target_project_id: str) -> int:
        ids = self._require_selection()
        if ids is None or not self._claim("move"):
            return 0
        try:
            moved = await self.api.move_domains(ids, target_project_id)
        except ApiError as e:
            logger.error(f"Move to {target_project_id} failed: {e.message}")
            self.message.error("Failed to move domains")
            return 0
        finally:
            self._release()

        self.store.remove(ids)
        self.selection.clear()
        self.message.success(f"Moved {moved} domains to project")
        return moved

    async def refresh_pending_domains(self) -> int:
        """Re-derive keywords of pending records from the chosen target pages."""
        if self.keyword_mode != "target-pages":
            self.message.error("Refresh only works with target pages mode")
            return 0
        if not self.selected_target_page_ids:
            self.message.error("Please select target pages to refresh with")
            return 0
        if not any(r.is_pending for r in self.store):
            self.message.error("No pending domains to refresh")
            return 0

        self.message.progress("Refreshing pending domains...")
        try:
            refreshed = await self.api.refresh_pending(self.selected_target_page_ids)
        except ApiError as e:
            logger.error(f"Refresh failed: {e.message}")
            self.message.error("Error refreshing domains")
            return 0

        await self.load_domains()
        self.message.success(f"Refreshed {refreshed} pending domains with updated keywords")
        return refreshed

    async def bulk_create_workflows(self, domain_ids: Optional[List[str]] = None) -> Tuple[int, int]:
        """
        Create a draft workflow per domain, then flag the domain.

        Failures are counted, not raised; returns (succeeded, failed).
        """
        ids = list(domain_ids) if domain_ids is not None else self._require_selection()
        if not ids or not self._claim("workflow creation"):
            return (0, 0)

        created: Dict[str, Optional[str]] = {}
        failed = 0
        try:
            for i, domain_id in enumerate(ids, 1):
                record = self.store.get(domain_id)
                if record is None:
                    continue
                self.message.progress(f"Creating workflows: {i}/{len(ids)}")
                description = f"Auto-generated workflow for {record.domain}"
                if record.notes:
                    description += f"\n\nNotes: {record.notes}"
                try:
                    workflow = await self.api.create_workflow({
                        "clientId": self.api.client_id,
                        "title": f"Guest Post - {record.domain}",
                        "description": description,
                        "status": "draft",
                        "guestPostSite": record.domain,
                        "steps": [],
                    })
                    workflow = workflow.get("workflow", workflow)
                    workflow_id = workflow.get("id")
                    await self.api.update_domain(
                        domain_id,
                        record.qualification_status,
                        self.user_id,
                        workflow_id=workflow_id or ""
                    )
                    created[domain_id] = workflow_id
                except ApiError as e:
                    logger.error(f"Failed to create workflow for {record.domain}: {e.message}")
                    failed += 1
        finally:
            self._release()

        self.store.patch_local(
            created,
            lambda r: r.model_copy(update={"has_workflow": True, "workflow_id": created[r.id]})
        )
        self.selection.clear()

        if failed == 0:
            self.message.success(f"Successfully created {len(created)} workflows")
        else:
            self.message.warning(f"Created {len(created)} workflows, {failed} failed")
        return (len(created), failed)

    # Adding domains

    async def add_domains(
        self,
        domains,
        target_page_ids: Optional[List[str]] = None,
        manual_keywords: Optional[str] = None
    ) -> SubmissionOutcome:
        """Check duplicates, create fresh domains, hold the rest for resolution."""
        if isinstance(domains, str):
            domains = parse_domain_text(domains)
        target_page_ids = target_page_ids if target_page_ids is not None else self.selected_target_page_ids
        manual_keywords = manual_keywords if manual_keywords is not None else (
            self.manual_keywords if self.keyword_mode == "manual" else None
        )

        if self.keyword_mode == "target-pages" and not target_page_ids:
            error = "Please select target pages and enter domains to analyze"
            self.message.error(error)
            return SubmissionOutcome(error=error)
        if self.keyword_mode == "manual" and not manual_keywords:
            error = "Please enter keywords and domains to analyze"
            self.message.error(error)
            return SubmissionOutcome(error=error)

        outcome = await self.duplicates.submit(
            list(domains),
            target_page_ids=target_page_ids,
            manual_keywords=manual_keywords
        )
        if outcome.changed_membership:
            await self.load_domains()
        return outcome

    async def resolve_duplicates(
        self,
        resolutions: Optional[Dict[str, DuplicateResolution]] = None
    ) -> bool:
        resolutions = resolutions if resolutions is not None else self.duplicates.default_resolutions()
        result = await self.duplicates.resolve(resolutions)
        if result is None:
            return False
        await self.load_domains()
        return True

    def cancel_duplicate_resolution(self) -> None:
        self.duplicates.cancel()

    # Keyword clusters

    def prepare_keyword_clusters(self, domain_ids: Optional[Iterable[str]] = None) -> List[KeywordCluster]:
        ids = set(domain_ids) if domain_ids is not None else set(self.selection.ids)
        records = [r for r in self.store if r.id in ids]
        pages = [p for p in self.target_pages if p.is_usable] or self.target_pages
        keywords = collect_keywords(
            self.keyword_mode,
            records=records,
            target_pages=pages,
            manual_keywords=self.manual_keywords
        )
        if not keywords:
            self.keyword_clusters = []
            self.message.error(
                "No keywords found. Please ensure target pages have keywords or enter manual keywords."
            )
            return []

        self.keyword_clusters = group_keywords_by_topic(keywords)
        self.message.info(
            f"Found {len(keywords)} keywords grouped into {len(self.keyword_clusters)} clusters"
        )
        return self.keyword_clusters

    def toggle_cluster(self, index: int) -> bool:
        cluster = self.keyword_clusters[index]
        cluster.selected = not cluster.selected
        return cluster.selected

    # Bulk jobs

    async def apply_smart_selection(self, preset) -> int:
        if not isinstance(preset, SmartSelection):
            preset = SmartSelection.from_name(preset)
        try:
            count = await self.selection.apply_smart_selection(self.api, preset)
        except ApiError as e:
            logger.error(f"Smart selection failed: {e.message}")
            self.message.error(f"Failed to load smart selection: {e.message}")
            return 0
        self.message.info(f"Selected {count} domains")
        return count

    async def start_bulk_analysis(self) -> Optional[BulkJob]:
        """Submit a DataForSEO batch over the selection with the chosen clusters."""
        if self.poller.is_running:
            self.message.warning("A bulk job is already running")
            return None
        ids = self.selection.ids
        if not ids:
            self.message.error("Please select domains to analyze")
            return None
        if not self.keyword_clusters and not self.prepare_keyword_clusters(ids):
            return None

        keywords = selected_keywords(self.keyword_clusters)
        if not keywords:
            self.message.error("Please select at least one keyword cluster")
            return None

        self.message.progress(f"Starting analysis for {len(ids)} domains with {len(keywords)} keywords...")
        job = await self.poller.start(KeywordAnalysisSource(self.api, ids, keywords))
        if self.poller.is_running:
            self.message.progress(f"Analyzing {job.total_domains} domains...")
        return job

    async def start_qualification(self, target_page_ids: Optional[List[str]] = None) -> Optional[BulkJob]:
        """Run master qualification (DataForSEO where missing, then AI) on the selection."""
        if self.poller.is_running:
            self.message.warning("A bulk job is already running")
            return None
        ids = self.selection.ids
        if not ids:
            self.message.error("Please select domains to qualify")
            return None

        pages = target_page_ids if target_page_ids is not None else self.selected_target_page_ids
        self.message.progress(f"Qualifying {len(ids)} domains...")
        job = await self.poller.start(QualificationSource(
            self.api,
            ids,
            self.settings.location_code,
            self.settings.language_code,
            target_page_ids=pages
        ))
        if self.poller.is_running:
            self.message.progress(f"Qualifying {job.total_domains} domains...")
        return job

    async def wait_for_job(self) -> Optional[BulkJob]:
        return await self.poller.wait()

    def _on_job_progress(self, job: BulkJob) -> None:
        self.message.progress(
            f"Processing: {job.processed_domains}/{job.total_domains} domains analyzed"
        )

    async def _on_job_complete(self, job: BulkJob, report: JobStatusReport) -> None:
        # job.domain_ids was captured at submission, before this clear
        analyzed = list(job.domain_ids)
        self.selection.clear()
        await self._refresh_records(analyzed)

        if job.kind == JobKind.KEYWORD_ANALYSIS:
            self.message.success(
                f"Analysis complete! Analyzed {job.total_keywords_analyzed} keywords, "
                f"found {job.total_rankings_found} rankings."
            )
        else:
            count = len(report.items) or job.processed_domains
            self.message.success(f"AI qualification applied to {count} domains")

    async def _refresh_records(self, domain_ids: List[str]) -> int:
        """Refetch the given records one by one and merge them by id."""
        self.recently_analyzed = set(domain_ids)
        results = await asyncio.gather(
            *(self.api.get_domain(domain_id) for domain_id in domain_ids),
            return_exceptions=True
        )
        fresh = [r for r in results if isinstance(r, DomainRecord)]
        for domain_id, result in zip(domain_ids, results):
            if isinstance(result, ApiError):
                logger.warning(f"Could not refetch {domain_id}: {result.message}")
            elif isinstance(result, BaseException):
                raise result

        if domain_ids and not fresh:
            logger.warning("No analyzed domain could be refetched, reloading project")
            await self.load_domains()
            return 0
        return self.store.merge(fresh)

    def _on_job_failed(self, job: BulkJob) -> None:
        label = "Bulk analysis" if job.kind == JobKind.KEYWORD_ANALYSIS else "Qualification"
        self.message.error(f"{label} failed: {job.error}" if job.error else f"{label} failed")

    # Export

    def export_selected(self) -> Optional[Tuple[str, str]]:
        """CSV of the selected records as (filename, text)."""
        records = self.selection.selected_records(self.store.records)
        if not records:
            self.message.error("No domains selected for export")
            return None
        content = export_csv(records)
        self.message.success(f"Exported {len(records)} domains to CSV")
        return export_filename(self.project_name, "selected"), content

    def export_all(self) -> Optional[Tuple[str, str]]:
        """CSV of every record passing the current filters, ignoring pagination."""
        records = self.filtered_records()
        if not records:
            self.message.error("No domains to export")
            return None
        content = export_csv(records)
        self.message.success(f"Exported {len(records)} domains to CSV")
        return export_filename(self.project_name, "all"), content

    # Guided triage

    def open_triage(
        self,
        guided_domain_id: Optional[str] = None,
        on_return: Optional[Callable] = None
    ) -> Optional[GuidedTriageFlow]:
        if guided_domain_id:
            record = self.store.get(guided_domain_id)
            if record is None:
                self.message.error("Domain not found")
                return None
            records = [record]
        else:
            records = self.filtered_records()
            if not records:
                self.message.info("No domains to review")
                return None

        if self.triage is not None:
            self.triage.dispose()
        self.triage = GuidedTriageFlow(
            self,
            records,
            guided_domain_id=guided_domain_id,
            on_return=on_return,
            return_delay=self.settings.guided_return_delay_seconds
        )
        return self.triage

    async def close(self) -> None:
        """Page teardown: stop polling and drop the triage flow."""
        await self.poller.close()
        if self.triage is not None:
            self.triage.dispose()
            self.triage = None
