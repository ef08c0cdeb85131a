"""Tests for merging investigator pages with trial attributes."""

from __future__ import annotations

from datetime import date

import pytest

from pi_finder.errors import MetadataFetchError, ValidationError
from pi_finder.models import Investigator, TrialAttributes
from pi_finder.services.reconciler import (
    METADATA_WARNING,
    FilterCriteria,
    ResultReconciler,
    SearchMode,
    SponsorConstraint,
    distinct_trial_ids,
    next_mode,
    phase_counts,
)


def _investigator(identifier: int, nct_id: str | None) -> Investigator:
    return Investigator(
        id=identifier,
        name=f"Dr. {identifier}",
        zip="77030",
        nct_id=nct_id,
        start_date=date(2020, 1, identifier % 28 + 1),
    )


METADATA = [
    TrialAttributes(nct_id="NCT1", phase="2", funded_by="INDUSTRY", overall_status="RECRUITING"),
    TrialAttributes(nct_id="NCT2", phase="3", funded_by="NIH", overall_status="COMPLETED"),
    TrialAttributes(nct_id="NCT3", phase="2", funded_by="OTHER", overall_status="NOT_YET_RECRUITING"),
    TrialAttributes(nct_id="NCT4", phase="NA", funded_by="INDUSTRY", overall_status="RECRUITING"),
]


def _full_set() -> list[Investigator]:
    nct_cycle = ["NCT1", "NCT2", "NCT3", "NCT4", None, "NCT404"]
    return [_investigator(index, nct_cycle[index % len(nct_cycle)]) for index in range(1, 19)]


def test_identity_criteria_return_server_page_verbatim() -> None:
    server_page = _full_set()[:6]
    result = ResultReconciler(6).reconcile(
        FilterCriteria.identity(),
        page=1,
        server_page=server_page,
        server_total=42,
        metadata=METADATA,
    )

    assert result.mode is SearchMode.UNFILTERED
    assert list(result.physicians) == server_page
    assert result.total_count == 42
    assert result.total_pages == 7
    assert result.warning is None


def test_identity_includes_investigators_without_metadata() -> None:
    server_page = [_investigator(1, None), _investigator(2, "NCT404")]
    result = ResultReconciler(6).reconcile(FilterCriteria.identity(), server_page=server_page, server_total=2, metadata=[])

    assert list(result.physicians) == server_page


def test_filtered_result_is_ordered_subsequence_matching_predicate() -> None:
    full_set = _full_set()
    criteria = FilterCriteria.parse(phases=["2"])
    result = ResultReconciler(100).reconcile(criteria, full_set=full_set, metadata=METADATA)

    lookup = {attributes.nct_id: attributes for attributes in METADATA}
    expected = [investigator for investigator in full_set if criteria.matches(investigator, lookup)]
    assert list(result.physicians) == expected
    assert all(investigator.nct_id in {"NCT1", "NCT3"} for investigator in result.physicians)
    assert result.total_count == len(expected)


def test_filtered_mode_paginates_in_memory() -> None:
    criteria = FilterCriteria.parse(sponsor_type="Industry")
    reconciler = ResultReconciler(2)
    page_one = reconciler.reconcile(criteria, page=1, full_set=_full_set(), metadata=METADATA)
    page_two = reconciler.reconcile(criteria, page=2, full_set=_full_set(), metadata=METADATA)

    assert page_one.total_count == page_two.total_count == 6
    assert page_one.total_pages == 3
    assert not set(page_one.physicians) & set(page_two.physicians)
    assert [investigator.id for investigator in page_one.physicians] == [3, 6]


def test_page_beyond_filtered_range_is_empty_but_keeps_total() -> None:
    criteria = FilterCriteria.parse(phases=["3"])
    result = ResultReconciler(6).reconcile(criteria, page=9, full_set=_full_set(), metadata=METADATA)

    assert result.physicians == ()
    assert result.total_count == 3


def test_missing_trial_attributes_fail_closed_under_filters() -> None:
    full_set = [_investigator(1, None), _investigator(2, "NCT404"), _investigator(3, "NCT4")]
    criteria = FilterCriteria.parse(phases=["NA"])
    result = ResultReconciler(6).reconcile(criteria, full_set=full_set, metadata=METADATA)

    assert [investigator.id for investigator in result.physicians] == [3]


def test_recruiting_only_matches_status_prefix() -> None:
    criteria = FilterCriteria.parse(recruiting_only=True)
    result = ResultReconciler(100).reconcile(criteria, full_set=_full_set(), metadata=METADATA)

    assert {investigator.nct_id for investigator in result.physicians} == {"NCT1", "NCT4"}


def test_metadata_failure_sets_warning_and_empties_snapshot() -> None:
    criteria = FilterCriteria.parse(phases=["2"])
    result = ResultReconciler(6).reconcile(
        criteria,
        full_set=_full_set(),
        metadata=None,
        metadata_error=MetadataFetchError("ClinicalTrials.gov request failed (500)"),
    )

    assert result.warning == METADATA_WARNING
    assert result.physicians == ()
    assert result.total_count == 0
    assert result.phase_counts == {}


def test_reconcile_is_idempotent() -> None:
    criteria = FilterCriteria.parse(phases=["2", "NA"], sponsor_type="industry")
    reconciler = ResultReconciler(3)
    first = reconciler.reconcile(criteria, page=1, full_set=_full_set(), metadata=METADATA)
    second = reconciler.reconcile(criteria, page=1, full_set=_full_set(), metadata=METADATA)

    assert first == second


def test_filtered_mode_requires_full_set() -> None:
    with pytest.raises(ValueError):
        ResultReconciler(6).reconcile(FilterCriteria.parse(phases=["1"]), server_page=_full_set()[:6], metadata=[])


def test_parse_rejects_unknown_values() -> None:
    with pytest.raises(ValidationError):
        FilterCriteria.parse(phases=["5"])
    with pytest.raises(ValidationError):
        FilterCriteria.parse(sponsor_type="Government")


def test_parse_normalizes_inputs() -> None:
    criteria = FilterCriteria.parse(phases="1, na,", sponsor_type=" industry ")

    assert criteria.phases == frozenset({"1", "NA"})
    assert criteria.sponsor is SponsorConstraint.INDUSTRY
    assert criteria.to_dict() == {"phases": ["1", "NA"], "sponsorType": "Industry", "recruitingOnly": False}


def test_mode_follows_criteria() -> None:
    assert next_mode(FilterCriteria.identity()) is SearchMode.UNFILTERED
    assert next_mode(FilterCriteria.parse(sponsor_type="Any")) is SearchMode.UNFILTERED
    assert next_mode(FilterCriteria.parse(recruiting_only=True)) is SearchMode.FILTERED


def test_phase_counts_and_distinct_ids() -> None:
    assert phase_counts(METADATA) == {"2": 2, "3": 1, "NA": 1}
    assert distinct_trial_ids(_full_set()) == ["NCT1", "NCT2", "NCT3", "NCT4", "NCT404"]


def test_payload_shape() -> None:
    result = ResultReconciler(6).reconcile(
        FilterCriteria.identity(), server_page=[_investigator(1, "NCT1")], server_total=1, metadata=METADATA
    )
    payload = result.to_dict()

    assert payload["totalCount"] == 1
    assert payload["totalPages"] == 1
    assert payload["mode"] == "unfiltered"
    assert payload["phaseCounts"] == {"2": 2, "3": 1, "NA": 1}
    assert payload["physicians"][0]["nctId"] == "NCT1"
    assert "error" not in payload


SCENARIO_INVESTIGATORS = [
    Investigator(id=1, name="One", nct_id="NCT01", start_date=date(2020, 1, 1)),
    Investigator(id=2, name="Two", nct_id="NCT02", start_date=date(2021, 1, 1)),
]
SCENARIO_METADATA = [
    TrialAttributes(nct_id="NCT01", phase="2", funded_by="OTHER", overall_status="COMPLETED"),
    TrialAttributes(nct_id="NCT02", phase="3", funded_by="INDUSTRY", overall_status="RECRUITING"),
]


@pytest.mark.parametrize(
    "criteria, expected_ids",
    [
        (FilterCriteria.parse(sponsor_type="Industry", recruiting_only=True), [2]),
        (FilterCriteria.parse(phases=["2"], sponsor_type="Any"), [1]),
    ],
)
def test_sponsor_and_phase_scenarios(criteria: FilterCriteria, expected_ids: list[int]) -> None:
    result = ResultReconciler(6).reconcile(criteria, full_set=SCENARIO_INVESTIGATORS, metadata=SCENARIO_METADATA)

    assert [investigator.id for investigator in result.physicians] == expected_ids
