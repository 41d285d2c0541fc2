"""
conftest.py - Shared pytest fixtures.

Invoices in tests mirror the pharmacy billing export: two title rows, the
header on the third row, then one row per billed drug.
"""

from __future__ import annotations

import io
import os
import sys
from typing import Any, Callable, Optional, Sequence

import pandas as pd
import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from models import ReferenceDrug
from reference import ReferenceFetchError, ReferenceProvider

INVOICE_HEADERS = ["Drug Name", "Unit Price", "Formulation", "Strength", "Payer", "Qty"]
TITLE_ROWS = [
    ["Riverside Pharmacy - Invoice #4471"],
    ["Billing period: 2026-09"],
]


class StaticProvider(ReferenceProvider):
    """Provider returning a fixed list (counts calls)."""

    name = "static"

    def __init__(self, drugs: Sequence[ReferenceDrug]) -> None:
        self.drugs = list(drugs)
        self.calls = 0

    async def fetch_reference_drugs(self) -> list[ReferenceDrug]:
        self.calls += 1
        return list(self.drugs)


class FailingProvider(ReferenceProvider):
    """Provider that always fails like an unreachable reference API."""

    name = "failing"

    def __init__(self, message: str = "Failed to fetch reference data: 503") -> None:
        self.message = message

    async def fetch_reference_drugs(self) -> list[ReferenceDrug]:
        raise ReferenceFetchError(self.message)


def drug(
    name: str,
    price: float,
    formulation: str = "Tablet",
    strength: str = "10 mg",
    payer: str = "medicare",
    drug_id: str = "1",
) -> ReferenceDrug:
    return ReferenceDrug(
        id=drug_id,
        drug_name=name,
        unit_price=price,
        formulation=formulation,
        strength=strength,
        payer=payer,
    )


@pytest.fixture
def invoice_grid() -> Callable[..., list[list[Any]]]:
    """Build a raw cell grid with the standard title block and header."""

    def _build(
        rows: Sequence[Sequence[Any]],
        headers: Optional[Sequence[Any]] = None,
        with_titles: bool = True,
    ) -> list[list[Any]]:
        grid: list[list[Any]] = [list(row) for row in TITLE_ROWS] if with_titles else []
        grid.append(list(headers if headers is not None else INVOICE_HEADERS))
        grid.extend(list(row) for row in rows)
        return grid

    return _build


@pytest.fixture
def make_workbook(invoice_grid) -> Callable[..., bytes]:
    """Write a grid to an in-memory .xlsx file and return its bytes."""

    def _build(
        rows: Sequence[Sequence[Any]],
        headers: Optional[Sequence[Any]] = None,
        with_titles: bool = True,
    ) -> bytes:
        grid = invoice_grid(rows, headers=headers, with_titles=with_titles)
        buffer = io.BytesIO()
        pd.DataFrame(grid).to_excel(buffer, header=False, index=False, engine="openpyxl")
        return buffer.getvalue()

    return _build


@pytest.fixture
def reference_drugs() -> list[ReferenceDrug]:
    return [
        drug("Amoxicillin", 0.50, "Capsule", "500 mg", "medicaid", "1"),
        drug("Lisinopril", 0.35, "Tablet", "10 mg", "medicare", "2"),
        drug("Omeprazole", 0.40, "Capsule (DR)", "20 mg", "medicare", "8"),
    ]
