"""Tests for filtering, sorting and pagination of domain records."""

import itertools

import pytest

from bulk_analysis.services.view import (
    DomainView,
    SortKey,
    SortOrder,
    VerificationFilter,
    ViewFilters,
    WorkflowFilter,
    filter_records,
    matches_search,
    matches_status,
    matches_verification,
    matches_workflow,
    sort_records,
)


@pytest.fixture
def records(make_record):
    """A small mixed collection covering every filter dimension."""
    return [
        make_record("1", "alpha.com", offset_days=0, qualification_status="high_quality",
                    has_workflow=True, was_manually_qualified=True),
        make_record("2", "Beta-Blog.com", offset_days=1, qualification_status="disqualified"),
        make_record("3", "gamma.io", offset_days=2),
        make_record("4", "delta.com", offset_days=3, qualification_status="good_quality",
                    has_workflow=True),
        make_record("5", "alphabet.net", offset_days=4, qualification_status="marginal_quality",
                    was_manually_qualified=True),
        make_record("6", "epsilon.org", offset_days=5, qualification_status="pending",
                    has_workflow=True),
    ]


class TestFilters:
    """Test suite for the individual filters and their composition."""

    def test_verification_semantics(self, records):
        """Human verified, AI qualified and unverified partition the records."""
        human = {r.id for r in records if matches_verification(r, VerificationFilter.HUMAN_VERIFIED)}
        ai = {r.id for r in records if matches_verification(r, VerificationFilter.AI_QUALIFIED)}
        unverified = {r.id for r in records if matches_verification(r, VerificationFilter.UNVERIFIED)}

        assert human == {"1", "5"}
        assert ai == {"2", "4"}
        assert unverified == {"3", "6"}

    def test_workflow_tristate(self, records):
        """Workflow filter selects by presence, 'all' keeps everything."""
        assert {r.id for r in records if matches_workflow(r, WorkflowFilter.HAS_WORKFLOW)} == {"1", "4", "6"}
        assert {r.id for r in records if matches_workflow(r, WorkflowFilter.NO_WORKFLOW)} == {"2", "3", "5"}
        assert all(matches_workflow(r, WorkflowFilter.ALL) for r in records)

    def test_search_is_case_insensitive_substring(self, records):
        """Search matches any part of the domain regardless of case."""
        assert {r.id for r in records if matches_search(r, "ALPHA")} == {"1", "5"}
        assert {r.id for r in records if matches_search(r, "blog")} == {"2"}
        assert all(matches_search(r, "") for r in records)

    def test_empty_status_set_means_all(self, records):
        """No selected statuses disables the status filter."""
        assert all(matches_status(r, frozenset()) for r in records)

    def test_composition_is_intersection(self, records):
        """Every filter combination equals the intersection of the single filters."""
        status_sets = [frozenset(), frozenset({"pending"}), frozenset({"high_quality", "marginal_quality"})]
        searches = ["", "alpha", "o"]

        for statuses, workflow, verification, search in itertools.product(
            status_sets, WorkflowFilter, VerificationFilter, searches
        ):
            filters = ViewFilters(statuses=statuses, workflow=workflow,
                                  verification=verification, search=search)
            expected = (
                {r.id for r in records if matches_status(r, statuses)}
                & {r.id for r in records if matches_workflow(r, workflow)}
                & {r.id for r in records if matches_verification(r, verification)}
                & {r.id for r in records if matches_search(r, search)}
            )
            assert {r.id for r in filter_records(records, filters)} == expected


class TestSorting:
    """Test suite for record sorting."""

    def test_status_rank_ascending(self, make_record):
        """Qualification status sorts by rank, not alphabetically."""
        records = [
            make_record("a", qualification_status="disqualified"),
            make_record("b", qualification_status="pending"),
            make_record("c", qualification_status="high_quality"),
        ]
        ordered = sort_records(records, SortKey.QUALIFICATION_STATUS, SortOrder.ASC)
        assert [r.qualification_status for r in ordered] == ["high_quality", "disqualified", "pending"]

    def test_unknown_status_sorts_last(self, make_record):
        """A status this client does not know ranks after pending."""
        records = [
            make_record("a", qualification_status="average_quality"),
            make_record("b", qualification_status="pending"),
        ]
        ordered = sort_records(records, SortKey.QUALIFICATION_STATUS, SortOrder.ASC)
        assert [r.id for r in ordered] == ["b", "a"]

    def test_sort_is_stable(self, make_record):
        """Records with equal keys keep their input order in both directions."""
        records = [make_record(str(i), keyword_count=5) for i in range(4)]
        assert [r.id for r in sort_records(records, SortKey.KEYWORD_COUNT, SortOrder.ASC)] == ["0", "1", "2", "3"]
        assert [r.id for r in sort_records(records, SortKey.KEYWORD_COUNT, SortOrder.DESC)] == ["0", "1", "2", "3"]

    def test_domain_and_date_keys(self, records):
        """Domain sorts lexicographically; created date descending puts newest first."""
        by_domain = sort_records(records, SortKey.DOMAIN, SortOrder.ASC)
        assert [r.domain for r in by_domain][:2] == ["alpha.com", "alphabet.net"]

        newest_first = sort_records(records, SortKey.CREATED_AT, SortOrder.DESC)
        assert [r.id for r in newest_first] == ["6", "5", "4", "3", "2", "1"]

    def test_boolean_keys(self, records):
        """Boolean keys put True after False ascending."""
        ordered = sort_records(records, SortKey.HAS_WORKFLOW, SortOrder.ASC)
        assert [r.has_workflow for r in ordered] == [False, False, False, True, True, True]


class TestDomainView:
    """Test suite for the paginated view."""

    @pytest.fixture
    def view(self):
        return DomainView(page_size=2)

    def test_prefix_limit(self, view, records):
        """Only the first page is visible until show_more()."""
        assert len(view.visible(records)) == 2
        assert view.has_more(records)

        view.show_more()
        assert len(view.visible(records)) == 4

        view.show_more()
        view.show_more()
        assert len(view.visible(records)) == 6
        assert not view.has_more(records)

    def test_filter_change_resets_limit(self, view, records):
        """Changing any filter value snaps the limit back to one page."""
        for change in (
            lambda: view.set_search("a"),
            lambda: view.set_status_filter(["pending"]),
            lambda: view.set_workflow_filter("has_workflow"),
            lambda: view.set_verification_filter("unverified"),
        ):
            view.show_more()
            view.show_more()
            assert view.display_limit == 6
            change()
            assert view.display_limit == 2

    def test_same_filter_value_keeps_limit(self, view):
        """Re-applying an unchanged filter is not a change."""
        view.set_search("alpha")
        view.show_more()
        view.set_search("alpha")
        assert view.display_limit == 4

    def test_limit_only_grows_through_show_more(self, view, records):
        """Sorting and reading the view never move the limit."""
        view.show_more()
        view.set_sort(SortKey.DOMAIN)
        view.visible(records)
        view.filtered(records)
        assert view.display_limit == 4

    def test_set_sort_toggles_order(self, view):
        """Picking the current key again flips the order."""
        view.set_sort(SortKey.DOMAIN, SortOrder.ASC)
        view.set_sort(SortKey.DOMAIN)
        assert view.sort_order == SortOrder.DESC
        view.set_sort(SortKey.DOMAIN)
        assert view.sort_order == SortOrder.ASC

    def test_filtered_ignores_pagination(self, view, records):
        """filtered() returns every match, in sort order."""
        view.set_workflow_filter("has_workflow")
        assert [r.id for r in view.filtered(records)] == ["6", "4", "1"]
        assert len(view.visible(records)) == 2
