"""Tests for the batched ClinicalTrials.gov metadata gateway."""

from __future__ import annotations

import random
from typing import Any, Dict, List

import httpx
import pytest

from pi_finder.errors import MetadataFetchError
from pi_finder.observability import Observability
from pi_finder.services.trial_metadata import (
    KEEP_FIELDS,
    TrialMetadataGateway,
    normalize_phase,
    normalize_study,
    partition,
)
from pi_finder.settings import get_settings


def _study(nct_id: str, phases=("PHASE2",), sponsor: str = "INDUSTRY", status: str = "RECRUITING") -> Dict[str, Any]:
    return {
        "protocolSection": {
            "identificationModule": {"nctId": nct_id},
            "designModule": {"phases": list(phases)},
            "sponsorCollaboratorsModule": {"leadSponsor": {"class": sponsor}},
            "statusModule": {"overallStatus": status},
        }
    }


def _gateway(handler) -> TrialMetadataGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return TrialMetadataGateway(client=client, settings=get_settings())


@pytest.mark.parametrize(
    "phases, expected",
    [
        (["PHASE2", "PHASE3"], "2"),
        (["EARLY_PHASE1"], "1"),
        (["PHASE4"], "4"),
        (["NA"], "NA"),
        ([], "NA"),
        (None, "NA"),
    ],
)
def test_normalize_phase_uses_first_element(phases, expected) -> None:
    assert normalize_phase(phases) == expected


def test_normalize_study_trims_to_filter_fields() -> None:
    attributes = normalize_study(_study("NCT001", phases=("PHASE3",), sponsor="NIH", status="COMPLETED"))

    assert attributes is not None
    assert attributes.nct_id == "NCT001"
    assert attributes.phase == "3"
    assert attributes.funded_by == "NIH"
    assert attributes.overall_status == "COMPLETED"


def test_normalize_study_without_identifier_is_dropped() -> None:
    assert normalize_study({"protocolSection": {"designModule": {"phases": ["PHASE1"]}}}) is None


def test_partition_deduplicates_and_sorts() -> None:
    batches = partition(["NCT3", "NCT1", "NCT3", " ", "NCT2"], batch_size=2)

    assert batches == [["NCT1", "NCT2"], ["NCT3"]]


def test_fetch_splits_150_ids_into_two_batches_regardless_of_order_and_duplicates() -> None:
    seen: List[List[str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        ids = request.url.params["filter.ids"].split(",")
        seen.append(ids)
        assert request.url.params["fields"] == KEEP_FIELDS
        assert request.url.params["format"] == "json"
        return httpx.Response(200, json={"studies": [_study(identifier) for identifier in ids]})

    ids = [f"NCT{index:08d}" for index in range(150)]
    shuffled = ids * 2
    random.Random(7).shuffle(shuffled)
    records = _gateway(handler).fetch_metadata(shuffled)

    assert [len(batch) for batch in seen] == [100, 50]
    assert len(records) == 150
    assert {record.nct_id for record in records} == set(ids)


def test_fetch_follows_next_page_token() -> None:
    calls: List[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        token = request.url.params.get("pageToken")
        calls.append(token)
        if token is None:
            return httpx.Response(200, json={"studies": [_study("NCT1")], "nextPageToken": "page-2"})
        return httpx.Response(200, json={"studies": [_study("NCT2")]})

    records = _gateway(handler).fetch_metadata(["NCT1", "NCT2"])

    assert calls == [None, "page-2"]
    assert sorted(record.nct_id for record in records) == ["NCT1", "NCT2"]


def test_fetch_keeps_one_record_per_requested_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        studies = [_study("NCT1"), _study("NCT1", phases=("PHASE4",)), _study("NCT999"), {"protocolSection": {}}]
        return httpx.Response(200, json={"studies": studies})

    records = _gateway(handler).fetch_metadata(["NCT1", "NCT1", "NCT2"])

    assert [record.nct_id for record in records] == ["NCT1"]
    assert records[0].phase == "2"


def test_fetch_raises_on_registry_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    with pytest.raises(MetadataFetchError) as excinfo:
        _gateway(handler).fetch_metadata(["NCT1"])

    assert excinfo.value.status == 500
    assert excinfo.value.status_code == 502
    assert "500" in excinfo.value.message


def test_fetch_failure_in_later_batch_discards_everything() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        ids = request.url.params["filter.ids"].split(",")
        if "NCT00000150" in ids:
            return httpx.Response(503)
        return httpx.Response(200, json={"studies": [_study(identifier) for identifier in ids]})

    with pytest.raises(MetadataFetchError):
        _gateway(handler).fetch_metadata([f"NCT{index:08d}" for index in range(151)])


def test_fetch_transport_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(MetadataFetchError):
        _gateway(handler).fetch_metadata(["NCT1"])


def test_fetch_empty_ids_skips_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("no request expected")

    assert _gateway(handler).fetch_metadata([]) == []


class _RecordingBackend:
    def __init__(self) -> None:
        self.counters: List[tuple] = []
        self.timings: List[tuple] = []

    def increment(self, metric, *, value, tags):
        self.counters.append((metric, value, tags))

    def record_timing(self, metric, *, value_ms, tags):
        self.timings.append((metric, value_ms, tags))


def _observed_gateway(handler, backend: _RecordingBackend) -> TrialMetadataGateway:
    settings = get_settings()
    observability = Observability(settings=settings, component="trial_metadata", metrics_backend=backend)
    return TrialMetadataGateway(
        client=httpx.Client(transport=httpx.MockTransport(handler)), settings=settings, observability=observability
    )


def test_fetch_records_timing_and_batch_count() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        ids = request.url.params["filter.ids"].split(",")
        return httpx.Response(200, json={"studies": [_study(identifier) for identifier in ids]})

    backend = _RecordingBackend()
    _observed_gateway(handler, backend).fetch_metadata([f"NCT{index:08d}" for index in range(150)])

    assert [(metric, tags) for metric, _, tags in backend.timings] == [("trial_meta.fetch", {"batches": "2"})]
    assert backend.counters == [("trial_meta.batches", 2, None)]


def test_fetch_failure_counts_error_status() -> None:
    backend = _RecordingBackend()
    gateway = _observed_gateway(lambda request: httpx.Response(500), backend)

    with pytest.raises(MetadataFetchError):
        gateway.fetch_metadata(["NCT1"])

    assert backend.counters == [("trial_meta.errors", 1.0, {"status": "500"})]
    assert backend.timings == []
