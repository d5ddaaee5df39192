"""Tests for the guided triage flow."""

import asyncio

import pytest

from conftest import BASE, record_data


async def load(controller, backend, records):
    backend.on("GET", BASE, {"domains": records})
    assert await controller.load_domains()


class TestGuidedTriageFlow:
    """Test suite for GuidedTriageFlow."""

    @pytest.mark.asyncio
    async def test_qualify_walks_then_closes(self, controller, backend):
        """Each decision advances; the last one closes and reloads."""
        await load(controller, backend, [record_data("a", "a.com"), record_data("b", "b.com")])
        backend.on("PUT", f"{BASE}/a", {})
        backend.on("PUT", f"{BASE}/b", {})

        flow = controller.open_triage()
        assert flow.position == "1 of 2"

        flow.set_notes("thin content")
        assert await flow.qualify("disqualified")
        assert flow.current.id == "b"
        assert controller.store.get("a").qualification_status == "disqualified"

        body = backend.body(backend.requests("PUT", f"{BASE}/a")[0])
        assert body == {"status": "disqualified", "userId": "user-1", "notes": "thin content", "isManual": True}

        assert await flow.qualify("high_quality")
        assert flow.closed
        assert flow.current is None
        assert len(backend.requests("GET", BASE)) == 2

    @pytest.mark.asyncio
    async def test_failed_update_stays_on_record(self, controller, backend):
        """A rejected update keeps the cursor and the notes."""
        await load(controller, backend, [record_data("a"), record_data("b")])
        backend.on("PUT", f"{BASE}/a", {"error": "nope"}, status=500)

        flow = controller.open_triage()
        flow.set_notes("check again")

        assert not await flow.qualify("high_quality")
        assert flow.current.id == "a"
        assert flow.notes == {"a": "check again"}
        assert not flow.closed

    @pytest.mark.asyncio
    async def test_navigation_bounds(self, controller, backend):
        await load(controller, backend, [record_data("a"), record_data("b")])
        flow = controller.open_triage()

        assert not flow.previous()
        assert flow.next()
        assert not flow.next()
        assert flow.previous()
        assert flow.current.id == "a"

    @pytest.mark.asyncio
    async def test_guided_return_after_delay(self, controller, backend):
        """In guided mode a final status returns to the caller after the delay."""
        await load(controller, backend, [record_data("a"), record_data("b", "b.com")])
        backend.on("PUT", f"{BASE}/b", {})
        returned = []

        flow = controller.open_triage("b", on_return=returned.append)
        assert len(flow) == 1

        assert await flow.qualify("good_quality")
        assert not flow.closed
        assert returned == []

        await flow.wait_for_return()

        assert flow.closed
        assert returned == ["b"]
        assert len(backend.requests("GET", BASE)) == 2

    @pytest.mark.asyncio
    async def test_dispose_cancels_pending_return(self, controller, backend):
        """Tearing the page down cancels the scheduled return without reloading."""
        await load(controller, backend, [record_data("a")])
        backend.on("PUT", f"{BASE}/a", {})
        returned = []

        flow = controller.open_triage("a", on_return=returned.append)
        await flow.qualify("high_quality")
        await controller.close()
        await asyncio.sleep(0.1)

        assert returned == []
        assert flow.closed
        assert len(backend.requests("GET", BASE)) == 1

    @pytest.mark.asyncio
    async def test_guided_unknown_domain(self, controller, backend):
        await load(controller, backend, [record_data("a")])

        assert controller.open_triage("missing") is None
        assert controller.message.text == "❌ Domain not found"

    @pytest.mark.asyncio
    async def test_analyze_current(self, controller, backend):
        """Analysis posts the manual keywords and summarises the rankings."""
        await load(controller, backend, [record_data("a", "a.com")])
        backend.on("POST", f"{BASE}/analyze-dataforseo", {"result": {"totalFound": 3, "keywords": []}})
        backend.on("GET", f"{BASE}/dataforseo/results", {
            "results": [
                {"keyword": "seo tools", "position": 1, "searchVolume": 900},
                {"keyword": "seo audit", "position": 3, "searchVolume": 400},
                {"keyword": "link building", "position": 5, "searchVolume": 300},
            ],
            "total": 3,
            "hasMore": False,
        })
        controller.set_keyword_source("manual", manual_keywords="seo tools, link building")

        flow = controller.open_triage()
        summary = await flow.analyze_current()

        assert summary.total_rankings == 3
        assert summary.avg_position == 3.0
        assert not summary.has_more
        assert controller.store.get("a").has_dataforseo_results
        assert controller.message.text == "✅ a.com: found 3 rankings"

        payload = backend.body(backend.requests("POST", f"{BASE}/analyze-dataforseo")[0])
        assert payload == {
            "domainId": "a",
            "locationCode": 2840,
            "languageCode": "en",
            "manualKeywords": ["seo tools", "link building"],
        }
        assert backend.requests("GET", f"{BASE}/dataforseo/results")[0].url.params["limit"] == "1000"

    @pytest.mark.asyncio
    async def test_load_rankings_skips_unanalysed(self, controller, backend):
        await load(controller, backend, [record_data("a")])
        flow = controller.open_triage()

        assert await flow.load_rankings() is None
        assert backend.requests("GET", f"{BASE}/dataforseo/results") == []
