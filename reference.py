"""
reference.py - Reference drug data providers.

The engine only needs "something that returns a list of ReferenceDrug or
raises ReferenceFetchError". Two providers implement that:

    HttpReferenceProvider  - GET the drug list from the reference API (httpx)
    MockReferenceProvider  - fixed fixture list for offline development/demos

`build_reference_provider(config)` picks one from `config.reference_source`.
Providers never retry and never cache: each validation run fetches fresh.
Choosing what to do when a fetch fails is the caller's job (see main.py).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from config import ValidationConfig
from logging_config import get_logger
from models import ReferenceDrug

logger = get_logger(__name__)


class ReferenceFetchError(RuntimeError):
    """Reference data could not be fetched or understood."""


def map_reference_record(item: Any) -> ReferenceDrug:
    """Map one reference API record onto ReferenceDrug.

    The API names the price `standardUnitPrice`; everything else passes
    through. Numeric ids are converted to strings.

    Raises:
        ReferenceFetchError: If the record is not an object or lacks fields.
    """
    if not isinstance(item, dict):
        raise ReferenceFetchError(f"Malformed reference record: expected object, got {type(item).__name__}")

    raw_id = item.get("id")
    try:
        return ReferenceDrug(
            id="" if raw_id is None else str(raw_id),
            drug_name=item.get("drugName"),
            unit_price=item.get("standardUnitPrice"),
            formulation=item.get("formulation") or "",
            strength=item.get("strength") or "",
            payer=item.get("payer") or "",
        )
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        raise ReferenceFetchError(
            f"Malformed reference record id={raw_id!r}: invalid fields {fields}"
        ) from exc


class ReferenceProvider(ABC):
    """Source of reference drug records for a single validation run."""

    name = "reference"

    @abstractmethod
    async def fetch_reference_drugs(self) -> list[ReferenceDrug]:
        """Return the current reference list or raise ReferenceFetchError."""


class HttpReferenceProvider(ReferenceProvider):
    """Fetch the reference list from an HTTP endpoint returning a JSON array."""

    name = "http"

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        # An injected client is borrowed, not owned: it is never closed here.
        self._client = client

    async def _get(self) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(self.url, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(self.url)

    async def fetch_reference_drugs(self) -> list[ReferenceDrug]:
        logger.info("reference_fetch_start | url=%s | timeout=%.1f", self.url, self.timeout)

        try:
            response = await self._get()
        except httpx.TimeoutException as exc:
            raise ReferenceFetchError(
                f"Timed out fetching reference data after {self.timeout:.0f}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ReferenceFetchError(
                f"Failed to fetch reference data: {type(exc).__name__}: {exc}"
            ) from exc

        if not response.is_success:
            raise ReferenceFetchError(f"Failed to fetch reference data: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ReferenceFetchError("Failed to fetch reference data: response is not valid JSON") from exc

        if not isinstance(payload, list):
            raise ReferenceFetchError(
                f"Failed to fetch reference data: expected a JSON array, got {type(payload).__name__}"
            )

        drugs = [map_reference_record(item) for item in payload]
        logger.info("reference_fetch_done | url=%s | records=%s", self.url, len(drugs))
        return drugs


class MockReferenceProvider(ReferenceProvider):
    """Serve a fixed reference list instead of calling the API."""

    name = "mock"

    def __init__(self, drugs: Optional[Iterable[ReferenceDrug]] = None) -> None:
        self._drugs = list(drugs) if drugs is not None else default_mock_drugs()

    async def fetch_reference_drugs(self) -> list[ReferenceDrug]:
        logger.info("reference_fetch_mock | records=%s", len(self._drugs))
        return list(self._drugs)


def build_reference_provider(config: Optional[ValidationConfig] = None) -> ReferenceProvider:
    """Create the provider selected by `config.reference_source`."""
    config = config or ValidationConfig()
    if config.reference_source == "mock":
        return MockReferenceProvider()
    return HttpReferenceProvider(config.reference_url, timeout=config.reference_timeout_seconds)


# Same records the reference API served when the service was first deployed.
_MOCK_RECORDS: list[dict[str, Any]] = [
    {"id": 1, "drugName": "Amoxicillin", "standardUnitPrice": 0.50,
     "formulation": "Capsule", "strength": "500 mg", "payer": "medicaid"},
    {"id": 2, "drugName": "Lisinopril", "standardUnitPrice": 0.35,
     "formulation": "Tablet", "strength": "10 mg", "payer": "medicare"},
    {"id": 3, "drugName": "Albuterol Sulfate", "standardUnitPrice": 45.00,
     "formulation": "Inhaler (MDI)", "strength": "90 mcg/actuation", "payer": "medicaid"},
    {"id": 4, "drugName": "Insulin Glargine", "standardUnitPrice": 120.00,
     "formulation": "Solution (vial, 10mL)", "strength": "100 units/mL", "payer": "medicaid"},
    {"id": 5, "drugName": "Hydrocodone/APAP", "standardUnitPrice": 1.00,
     "formulation": "Tablet (C-II)", "strength": "5 mg / 325 mg", "payer": "medicaid"},
    {"id": 6, "drugName": "Metformin", "standardUnitPrice": 0.20,
     "formulation": "Tablet (ER)", "strength": "500 mg", "payer": "medicare"},
    {"id": 7, "drugName": "Simvastatin", "standardUnitPrice": 0.30,
     "formulation": "Tablet", "strength": "20 mg", "payer": "medicare"},
    {"id": 8, "drugName": "Omeprazole", "standardUnitPrice": 0.40,
     "formulation": "Capsule (DR)", "strength": "20 mg", "payer": "medicare"},
    {"id": 9, "drugName": "Loratadine", "standardUnitPrice": 0.25,
     "formulation": "Tablet", "strength": "10 g", "payer": "medicare"},
    {"id": 10, "drugName": "Prednisone", "standardUnitPrice": 0.50,
     "formulation": "Tablet", "strength": "10 mg", "payer": "medicare"},
    {"id": 11, "drugName": "Azithromycin", "standardUnitPrice": 1.25,
     "formulation": "Tablet (Z-Pack)", "strength": "250 mg", "payer": "medicare"},
    {"id": 12, "drugName": "Clonazepam", "standardUnitPrice": 0.75,
     "formulation": "Tablet (C-IV)", "strength": "0.5 mg", "payer": "medicaid"},
    {"id": 13, "drugName": "Erythropoietin", "standardUnitPrice": 200.00,
     "formulation": "Capsule", "strength": "10000 IU/ 1.0ml", "payer": "medicaid"},
]


def default_mock_drugs() -> list[ReferenceDrug]:
    return [map_reference_record(record) for record in _MOCK_RECORDS]
