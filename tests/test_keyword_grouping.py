"""Tests for keyword clustering and keyword source collection."""

import pytest

from bulk_analysis.config import MAX_KEYWORDS_PER_GROUP
from bulk_analysis.models.keywords import TargetPage
from bulk_analysis.services.keyword_grouping import (
    collect_keywords,
    group_keywords_by_topic,
    selected_keywords,
)


class TestGroupKeywordsByTopic:
    """Test suite for group_keywords_by_topic."""

    def test_empty_input(self):
        assert group_keywords_by_topic([]) == []
        assert group_keywords_by_topic(["", "   "]) == []

    def test_core_terms_form_groups(self):
        """Frequent terms become core clusters; every keyword lands once."""
        keywords = [f"insurance plan{i}" for i in range(40)] + [f"garden tool{i}" for i in range(35)]

        clusters = group_keywords_by_topic(keywords)

        assert [c.name for c in clusters] == ["Insurance Keywords", "Garden Keywords"]
        assert all(c.relevance == "core" and c.selected for c in clusters)
        assert sorted(k for c in clusters for k in c.keywords) == sorted(keywords)

    def test_oversized_group_is_split(self):
        """A group above the size limit is split into even chunks."""
        keywords = [f"loan option{i}" for i in range(170)]

        clusters = group_keywords_by_topic(keywords)

        assert [len(c.keywords) for c in clusters] == [57, 57, 56]
        assert [c.name for c in clusters] == ["Loan Keywords 1", "Loan Keywords 2", "Loan Keywords 3"]
        assert all(len(c.keywords) <= MAX_KEYWORDS_PER_GROUP for c in clusters)

    def test_few_keywords_end_up_in_one_cluster(self):
        """Small inputs produce one 'wider' cluster."""
        clusters = group_keywords_by_topic(["seo tools", "link building"])

        assert len(clusters) == 1
        assert clusters[0].name == "Other Keywords"
        assert clusters[0].relevance == "wider"
        assert clusters[0].keywords == ["seo tools", "link building"]

    def test_keywords_are_normalised(self):
        """Case, whitespace and repeats are folded before grouping."""
        clusters = group_keywords_by_topic(["SEO Tools", " seo tools ", "seo tools"])
        assert clusters[0].keywords == ["seo tools"]

    def test_selected_keywords_respects_gate(self):
        keywords = [f"insurance plan{i}" for i in range(40)] + [f"garden tool{i}" for i in range(35)]
        clusters = group_keywords_by_topic(keywords)
        clusters[1].selected = False

        chosen = selected_keywords(clusters)

        assert len(chosen) == 40
        assert all(k.startswith("insurance") for k in chosen)


class TestCollectKeywords:
    """Test suite for collect_keywords."""

    @pytest.fixture
    def pages(self):
        return [
            TargetPage(id="tp1", url="https://client.com/a", keywords="seo tools, seo audit"),
            TargetPage(id="tp2", url="https://client.com/b", keywords="link building,seo tools"),
        ]

    def test_manual_mode(self):
        assert collect_keywords("manual", manual_keywords="a, b,, a ,c") == ["a", "b", "c"]

    def test_target_pages_of_records(self, pages, make_record):
        """Only the records' own target pages are used."""
        records = [make_record("r1", target_page_ids=["tp2"])]
        assert collect_keywords("target-pages", records, pages) == ["link building", "seo tools"]

    def test_falls_back_to_all_pages(self, pages, make_record):
        """Records without target pages use every page's keywords."""
        records = [make_record("r1")]
        assert collect_keywords("target-pages", records, pages) == [
            "seo tools", "seo audit", "link building"
        ]

    def test_fallback_skips_inactive_pages(self, pages, make_record):
        pages.append(TargetPage(id="tp3", url="https://client.com/old", keywords="retired", status="inactive"))
        assert "retired" not in collect_keywords("target-pages", [make_record("r1")], pages)
