"""Async client for the bulk-analysis REST routes."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings, get_settings
from ..models.domain import DomainRecord
from ..models.duplicates import DuplicateCheckResult, ResolutionChoice
from ..models.job import JobStatusReport, JobSubmission
from ..models.keywords import TargetPage

logger = logging.getLogger(__name__)


def _count(data: Dict[str, Any], key: str, default: int) -> int:
    """Integer field of a response; missing or null falls back to default."""
    value = data.get(key)
    return default if value is None else int(value)


class ApiError(Exception):
    """A failed API call: transport failure or non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None


class BulkAnalysisClient:
    """
    Thin async wrapper over the bulk-analysis API of one client.

    Every method either returns the parsed payload or raises ApiError;
    nothing is retried here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings or get_settings()
        self.client_id = client_id or self.settings.client_id
        headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": "application/json",
        }
        if self.settings.api_token:
            headers["Authorization"] = f"Bearer {self.settings.api_token}"

        self._http = httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.request_timeout_seconds,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "BulkAnalysisClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def _base(self) -> str:
        return f"/api/clients/{self.client_id}"

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        """Pull the server's {error}/{details} text out of a failed response."""
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return body.get("details") or body.get("error") or f"HTTP {response.status_code}"
        return f"HTTP {response.status_code}"

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None
    ) -> Any:
        try:
            response = await self._http.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            logger.error(f"Transport error on {method} {path}: {e}")
            raise ApiError(f"Network error: {e}") from e

        if response.is_error:
            message = self._error_text(response)
            logger.warning(f"{method} {path} failed with {response.status_code}: {message}")
            raise ApiError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}", status_code=response.status_code) from e

    # Domains

    async def list_domains(self, project_id: str) -> List[DomainRecord]:
        data = await self._request("GET", f"{self._base}/bulk-analysis", params={"projectId": project_id})
        return [
            DomainRecord.model_validate({**d, "clientId": self.client_id})
            for d in data.get("domains") or []
        ]

    async def get_domain(self, domain_id: str) -> DomainRecord:
        data = await self._request("GET", f"{self._base}/bulk-analysis/{domain_id}")
        # Either the record itself or {"domain": record}
        record = data["domain"] if isinstance(data.get("domain"), dict) else data
        return DomainRecord.model_validate({**record, "clientId": self.client_id})

    async def create_domains(
        self,
        domains: List[str],
        project_id: str,
        target_page_ids: Optional[List[str]] = None,
        manual_keywords: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        payload = {
            "domains": domains,
            "targetPageIds": target_page_ids or [],
            "projectId": project_id,
        }
        if manual_keywords:
            payload["manualKeywords"] = manual_keywords
        data = await self._request("POST", f"{self._base}/bulk-analysis", json=payload)
        return data.get("domains") or []

    async def update_domain(
        self,
        domain_id: str,
        status: str,
        user_id: str,
        notes: Optional[str] = None,
        is_manual: Optional[bool] = None,
        workflow_id: Optional[str] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": status, "userId": user_id}
        if notes is not None:
            payload["notes"] = notes
        if is_manual is not None:
            payload["isManual"] = is_manual
        if workflow_id is not None:
            payload["workflowId"] = workflow_id
            payload["hasWorkflow"] = True
        return await self._request("PUT", f"{self._base}/bulk-analysis/{domain_id}", json=payload)

    async def delete_domain(self, domain_id: str) -> None:
        await self._request("DELETE", f"{self._base}/bulk-analysis/{domain_id}")

    async def bulk_update_status(self, domain_ids: List[str], status: str) -> int:
        data = await self._request(
            "PUT",
            f"{self._base}/bulk-analysis/bulk",
            json={"domainIds": domain_ids, "status": status, "action": "updateStatus"}
        )
        return _count(data, "updated", len(domain_ids))

    async def bulk_delete(self, domain_ids: List[str]) -> int:
        data = await self._request(
            "DELETE", f"{self._base}/bulk-analysis/bulk", json={"domainIds": domain_ids}
        )
        return _count(data, "deleted", len(domain_ids))

    async def move_domains(self, domain_ids: List[str], target_project_id: str) -> int:
        data = await self._request(
            "PUT",
            f"{self._base}/bulk-analysis/move",
            json={"domainIds": domain_ids, "targetProjectId": target_project_id}
        )
        return _count(data, "movedCount", len(domain_ids))

    async def refresh_pending(
        self,
        target_page_ids: List[str],
        manual_keywords: Optional[str] = None
    ) -> int:
        payload: Dict[str, Any] = {"targetPageIds": target_page_ids}
        if manual_keywords:
            payload["manualKeywords"] = manual_keywords
        data = await self._request("POST", f"{self._base}/bulk-analysis/refresh", json=payload)
        return _count(data, "refreshedCount", 0)

    # Duplicates

    async def check_duplicates(self, domains: List[str], project_id: str) -> DuplicateCheckResult:
        data = await self._request(
            "POST",
            f"{self._base}/bulk-analysis/check-duplicates",
            json={"domains": domains, "projectId": project_id}
        )
        return DuplicateCheckResult.from_api(data)

    async def resolve_duplicates(
        self,
        pending_submission: Dict[str, Any],
        resolutions: List[ResolutionChoice]
    ) -> Dict[str, Any]:
        payload = {**pending_submission, "resolutions": [r.to_dict() for r in resolutions]}
        return await self._request("POST", f"{self._base}/bulk-analysis/resolve-duplicates", json=payload)

    # Jobs

    async def submit_batch_analysis(self, domain_ids: List[str], keywords: List[str]) -> JobSubmission:
        data = await self._request(
            "POST",
            f"{self._base}/bulk-analysis/dataforseo/batch",
            json={"domainIds": domain_ids, "keywords": keywords}
        )
        if not data.get("jobId"):
            raise ApiError("Batch submission returned no job id")
        return JobSubmission(job_id=data["jobId"], total_domains=_count(data, "totalDomains", len(domain_ids)))

    async def get_batch_status(self, job_id: str) -> JobStatusReport:
        data = await self._request(
            "GET", f"{self._base}/bulk-analysis/dataforseo/batch", params={"jobId": job_id}
        )
        return JobStatusReport.from_api(data)

    async def submit_master_qualification(
        self,
        domain_ids: List[str],
        location_code: int,
        language_code: str,
        target_page_ids: Optional[List[str]] = None
    ) -> JobSubmission:
        payload: Dict[str, Any] = {
            "domainIds": domain_ids,
            "locationCode": location_code,
            "languageCode": language_code,
        }
        if target_page_ids:
            payload["targetPageIds"] = target_page_ids
        data = await self._request("POST", f"{self._base}/bulk-analysis/master-qualify", json=payload)

        if data.get("jobId"):
            return JobSubmission(
                job_id=data["jobId"],
                total_domains=_count(data, "totalDomains", len(domain_ids))
            )

        # Synchronous answer: the work is already done.
        results = data.get("results") or []
        report = JobStatusReport(
            status="completed",
            processed_domains=len(domain_ids),
            total_domains=len(domain_ids),
            items=results,
            summary=data.get("summary") or {},
        )
        return JobSubmission(job_id=None, total_domains=len(domain_ids), final_report=report)

    async def get_master_qualification_status(self, job_id: str) -> JobStatusReport:
        data = await self._request(
            "GET", f"{self._base}/bulk-analysis/master-qualify", params={"jobId": job_id}
        )
        return JobStatusReport.from_api(data)

    async def get_smart_filters(self) -> Dict[str, List[str]]:
        data = await self._request("GET", f"{self._base}/bulk-analysis/master-qualify")
        return data.get("filters") or {}

    # DataForSEO, single domain

    async def analyze_domain(
        self,
        domain_id: str,
        location_code: int,
        language_code: str,
        manual_keywords: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "domainId": domain_id,
            "locationCode": location_code,
            "languageCode": language_code,
        }
        if manual_keywords:
            payload["manualKeywords"] = manual_keywords
        data = await self._request(
            "POST", f"{self._base}/bulk-analysis/analyze-dataforseo", json=payload
        )
        return data.get("result") or {}

    async def get_dataforseo_results(self, domain_id: str, limit: int = 1000) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"{self._base}/bulk-analysis/dataforseo/results",
            params={"domainId": domain_id, "limit": limit}
        )

    # Client context

    async def get_target_pages(self) -> List[TargetPage]:
        data = await self._request("GET", self._base)
        client = data.get("client", data)
        return [TargetPage.model_validate(p) for p in client.get("targetPages") or []]

    async def create_workflow(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/workflows", json=payload)
