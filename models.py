"""
models.py - Data Models for the Invoice Validation Pipeline

Every module in the pipeline communicates through these models:

    extract.py    ->  list[InvoiceLine]
    reference.py  ->  list[ReferenceDrug]
    match.py      ->  ReconciliationResult
    report.py     ->  ValidationReport
    api.py        ->  ApiResponse (envelope around ValidationReport)

Python attributes are snake_case. JSON input and output use the camelCase
aliases the front end and the reference API already speak (drugName,
unitPrice, totalItems, ...), so every model is built on `CamelModel`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """camelCase, JSON-compatible dict with unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DiscrepancyType(str, Enum):
    """The four independent checks run against every matched invoice line."""

    # Invoice unit price exceeds the reference price by more than the threshold.
    UNIT_PRICE = "unit_price"

    # Dosage form differs, e.g. "Tablet" billed where "Capsule" is expected.
    FORMULATION = "formulation"

    # Strength differs, e.g. "20 mg" billed where "10 mg" is expected.
    STRENGTH = "strength"

    # Billed payer differs from the payer on the reference record.
    PAYER = "payer"

    @property
    def id_prefix(self) -> str:
        """Prefix used when building discrepancy ids ("price-3", "payer-0")."""
        if self is DiscrepancyType.UNIT_PRICE:
            return "price"
        return self.value


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReferenceDrug(CamelModel):
    """Authoritative price/formulation/strength/payer for one drug.

    Built by reference.py from the remote drug list (or the mock fixture
    list). Immutable for the duration of a validation run and never cached
    between runs.
    """

    id: str = Field(..., description="Reference record id, always a string.")
    drug_name: str = Field(
        ...,
        description="Drug name used for case-insensitive matching against invoice lines.",
    )
    unit_price: float = Field(
        ...,
        description=(
            "Expected unit price in dollars. The remote API calls this "
            "'standardUnitPrice'; reference.py maps it onto this field."
        ),
    )
    formulation: str = Field(default="", description="Expected dosage form, e.g. 'Capsule (DR)'.")
    strength: str = Field(default="", description="Expected strength, e.g. '500 mg'.")
    payer: str = Field(default="", description="Expected payer, e.g. 'medicaid'.")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "id": "1",
                    "drugName": "Amoxicillin",
                    "unitPrice": 0.50,
                    "formulation": "Capsule",
                    "strength": "500 mg",
                    "payer": "medicaid",
                }
            ]
        },
    )


class InvoiceLine(CamelModel):
    """One billed drug, i.e. one data row of the uploaded spreadsheet.

    String fields are already trimmed by the parser. `drug_name` is never
    empty: rows without a drug name are dropped before this model is built.
    """

    drug_name: str = Field(..., description="Billed drug name (trimmed, non-empty).")
    unit_price: float = Field(
        default=0.0,
        description="Billed unit price; unparsable cells normalize to 0.0.",
    )
    formulation: str = Field(default="", description="Billed dosage form.")
    strength: str = Field(default="", description="Billed strength.")
    payer: str = Field(default="", description="Billed payer.")
    quantity: int = Field(
        default=0,
        description=(
            "Billed quantity. 0 when the sheet has no quantity column or the "
            "cell cannot be read as an integer. Multiplies the per-unit "
            "overcharge when totalling the overcharge amount."
        ),
    )

    @field_validator("drug_name")
    @classmethod
    def _drug_name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("drug_name must not be empty")
        return value


class Discrepancy(CamelModel):
    """A single mismatch between an invoice line and its reference record.

    One line can produce up to four of these (one per DiscrepancyType).
    `id` is "<prefix>-<row index>" and is unique within a run because each
    check runs at most once per row.
    """

    id: str
    drug_name: str
    type: DiscrepancyType
    severity: Severity
    description: str = Field(
        ...,
        description="Short human-readable summary, e.g. '20.0% overcharge detected'.",
    )
    invoice_value: str = Field(..., description="Billed value, currency-formatted for prices.")
    reference_value: str = Field(..., description="Expected value, currency-formatted for prices.")
    overcharge_percentage: Optional[float] = Field(
        default=None,
        description="Price findings only: overcharge percentage rounded to 1 decimal.",
    )
    overcharge_amount: Optional[str] = Field(
        default=None,
        description="Price findings only: per-unit overcharge formatted as currency.",
    )

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "id": "price-0",
                    "drugName": "Amoxicillin",
                    "type": "unit_price",
                    "severity": "high",
                    "description": "20.0% overcharge detected",
                    "invoiceValue": "$0.60",
                    "referenceValue": "$0.50",
                    "overchargePercentage": 20.0,
                    "overchargeAmount": "$0.10",
                }
            ]
        },
    )


class DiscrepancyCounts(CamelModel):
    """Running counters kept by the reconciliation engine."""

    price_discrepancies: int = 0
    formulation_issues: int = 0
    strength_errors: int = 0
    payer_mismatches: int = 0
    total_overcharge: float = Field(
        default=0.0,
        description=(
            "Sum of (invoice price - reference price) * quantity over every "
            "matched line with a positive price difference, whether or not "
            "that difference crossed the reporting threshold."
        ),
    )


class ReconciliationResult(CamelModel):
    """Engine output: ordered findings plus aggregate counters."""

    discrepancies: list[Discrepancy] = Field(default_factory=list)
    counts: DiscrepancyCounts = Field(default_factory=DiscrepancyCounts)
    matched_items: int = Field(
        default=0,
        description="Invoice lines that found a reference record.",
    )
    unmatched_drugs: list[str] = Field(
        default_factory=list,
        description="Drug names with no reference record, in invoice order.",
    )


class ValidationReport(CamelModel):
    """Final report returned to the caller for one uploaded invoice.

    Key quirks (kept deliberately, front-end consumers rely on them):

    - valid_items is total_items - discrepancies_found. A line with several
      findings lowers it by more than one, so it can go negative.
    - patient_name is a static placeholder; nothing in the sheet supplies it.
    - When the reference data could not be fetched, reference_data_error
      carries the cause, total_items still reflects the parsed sheet, and
      every discrepancy counter is zero.
    """

    total_items: int = Field(..., ge=0)
    discrepancies_found: int = Field(..., ge=0)
    valid_items: int
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    patient_name: str
    processing_time_seconds: float = Field(..., ge=0)
    price_discrepancy_count: int = 0
    formulation_issue_count: int = 0
    strength_error_count: int = 0
    payer_mismatch_count: int = 0
    total_overcharge_amount: float = 0.0
    reference_data_error: Optional[str] = None

    @property
    def has_reference_error(self) -> bool:
        """Whether this is a partial report produced without reference data."""
        return self.reference_data_error is not None

    @property
    def severity_breakdown(self) -> dict[str, int]:
        """Finding counts per severity, in high -> low order."""
        breakdown = {severity.value: 0 for severity in (Severity.HIGH, Severity.MEDIUM, Severity.LOW)}
        for discrepancy in self.discrepancies:
            breakdown[discrepancy.severity.value] += 1
        return breakdown


class ApiResponse(CamelModel, Generic[T]):
    """Success/failure envelope wrapped around every API payload."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None
