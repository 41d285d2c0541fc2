"""
test_reference.py - Reference data provider tests.

The HTTP provider is exercised against httpx.MockTransport, so no network
access is needed.

Usage: pytest test_reference.py
"""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from config import ValidationConfig
from reference import (
    HttpReferenceProvider,
    MockReferenceProvider,
    ReferenceFetchError,
    build_reference_provider,
    map_reference_record,
)

URL = "https://reference.example.test/api/v1/drugs"

API_RECORDS = [
    {
        "id": 1,
        "drugName": "Amoxicillin",
        "standardUnitPrice": 0.5,
        "formulation": "Capsule",
        "strength": "500 mg",
        "payer": "medicaid",
    },
    {
        "id": "2",
        "drugName": "Lisinopril",
        "standardUnitPrice": 0.35,
        "formulation": "Tablet",
        "strength": "10 mg",
        "payer": "medicare",
    },
]


def _fetch(handler: Callable[[httpx.Request], httpx.Response]):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = HttpReferenceProvider(URL, timeout=2.0, client=client)
            return await provider.fetch_reference_drugs()

    return asyncio.run(run())


def test_map_reference_record_renames_price_and_stringifies_id():
    drug = map_reference_record(API_RECORDS[0])

    assert drug.id == "1"
    assert drug.drug_name == "Amoxicillin"
    assert drug.unit_price == 0.5
    assert drug.formulation == "Capsule"
    assert drug.strength == "500 mg"
    assert drug.payer == "medicaid"


@pytest.mark.parametrize(
    "record",
    [
        "not an object",
        {"id": 3, "standardUnitPrice": 1.0},
        {"id": 4, "drugName": "Metformin", "standardUnitPrice": "cheap"},
    ],
)
def test_map_reference_record_rejects_malformed_records(record):
    with pytest.raises(ReferenceFetchError, match="Malformed reference record"):
        map_reference_record(record)


def test_http_provider_fetches_and_maps():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=API_RECORDS)

    drugs = _fetch(handler)

    assert [d.drug_name for d in drugs] == ["Amoxicillin", "Lisinopril"]
    assert [d.id for d in drugs] == ["1", "2"]
    assert drugs[1].unit_price == 0.35
    assert len(seen) == 1
    assert str(seen[0].url) == URL
    assert seen[0].method == "GET"


def test_http_provider_non_success_status():
    with pytest.raises(ReferenceFetchError, match="503"):
        _fetch(lambda request: httpx.Response(503, text="unavailable"))


def test_http_provider_invalid_json():
    with pytest.raises(ReferenceFetchError, match="not valid JSON"):
        _fetch(lambda request: httpx.Response(200, text="<html>oops</html>"))


def test_http_provider_requires_array():
    with pytest.raises(ReferenceFetchError, match="expected a JSON array"):
        _fetch(lambda request: httpx.Response(200, json={"items": API_RECORDS}))


def test_http_provider_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ReferenceFetchError, match="ConnectError"):
        _fetch(handler)


def test_http_provider_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(ReferenceFetchError, match="Timed out"):
        _fetch(handler)


def test_mock_provider_serves_fixture_list():
    drugs = asyncio.run(MockReferenceProvider().fetch_reference_drugs())

    assert len(drugs) == 13
    assert drugs[0].drug_name == "Amoxicillin"
    assert drugs[0].unit_price == 0.5
    assert drugs[-1].drug_name == "Erythropoietin"
    assert all(isinstance(d.id, str) for d in drugs)


def test_mock_provider_returns_fresh_list_each_call():
    provider = MockReferenceProvider()

    first = asyncio.run(provider.fetch_reference_drugs())
    first.clear()
    second = asyncio.run(provider.fetch_reference_drugs())

    assert len(second) == 13


def test_build_reference_provider_selects_source():
    http_provider = build_reference_provider(ValidationConfig(reference_url=URL, reference_timeout_seconds=3))
    assert isinstance(http_provider, HttpReferenceProvider)
    assert http_provider.url == URL
    assert http_provider.timeout == 3

    assert isinstance(build_reference_provider(ValidationConfig(reference_source="mock")), MockReferenceProvider)
