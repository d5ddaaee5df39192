"""Shared fixtures: settings, a scripted fake API backend, record factories."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from bulk_analysis.api.client import BulkAnalysisClient
from bulk_analysis.config import Settings
from bulk_analysis.models.domain import DomainRecord
from bulk_analysis.services.controller import BulkAnalysisController

CLIENT_ID = "client-1"
PROJECT_ID = "project-1"
BASE = f"/api/clients/{CLIENT_ID}/bulk-analysis"


class FakeBackend:
    """
    Scripted stand-in for the HTTP API, used through httpx.MockTransport.

    Routes map (method, path) to a handler returning (status, body) or an
    httpx.Response. Handlers may be async. Every request is recorded.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, body=None, status=200, handler=None):
        if handler is None:
            handler = lambda request: (status, body if body is not None else {})
        self.routes[(method, path)] = handler

    def sequence(self, method, path, bodies):
        """Answer successive calls with successive bodies; the last one repeats."""
        remaining = list(bodies)

        def handler(request):
            body = remaining.pop(0) if len(remaining) > 1 else remaining[0]
            return (200, body)

        self.on(method, path, handler=handler)

    async def __call__(self, request):
        self.calls.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": f"No route for {request.method} {request.url.path}"})
        result = handler(request)
        if hasattr(result, "__await__"):
            result = await result
        if isinstance(result, httpx.Response):
            return result
        status, body = result
        return httpx.Response(status, json=body)

    def requests(self, method, path):
        return [c for c in self.calls if c.method == method and c.url.path == path]

    @staticmethod
    def body(request):
        return json.loads(request.content)


def record_data(domain_id, domain=None, **fields):
    """API-shaped (camelCase) domain record."""
    data = {
        "id": domain_id,
        "domain": domain or f"{domain_id}.com",
        "projectId": PROJECT_ID,
        "qualificationStatus": "pending",
        "targetPageIds": [],
        "keywordCount": 0,
        "hasDataForSeoResults": False,
        "hasWorkflow": False,
        "wasManuallyQualified": False,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
    }
    data.update(fields)
    return data


@pytest.fixture
def settings():
    """Settings with instant polling and a short guided return delay."""
    return Settings(
        BULK_ANALYSIS_API_URL="http://api.test",
        BULK_ANALYSIS_CLIENT_ID=CLIENT_ID,
        BULK_ANALYSIS_PROJECT_ID=PROJECT_ID,
        BULK_ANALYSIS_USER_ID="user-1",
        POLL_INTERVAL_SECONDS=0,
        MAX_POLL_ATTEMPTS=20,
        PAGE_SIZE=2,
        GUIDED_RETURN_DELAY_SECONDS=0.05,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api(settings, backend):
    """API client wired to the fake backend."""
    return BulkAnalysisClient(settings, transport=httpx.MockTransport(backend))


@pytest.fixture
def controller(api, settings):
    return BulkAnalysisController(api, settings=settings, project_name="My Project")


@pytest.fixture
def make_record():
    """Factory for DomainRecord instances with sensible defaults."""
    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def factory(domain_id, domain=None, offset_days=0, **fields):
        data = record_data(domain_id, domain)
        data["createdAt"] = base_time + timedelta(days=offset_days)
        data["updatedAt"] = base_time + timedelta(days=offset_days)
        record = DomainRecord.model_validate(data)
        return record.model_copy(update=fields)

    return factory
