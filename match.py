"""
match.py - Reconciliation engine.

Each invoice line is looked up in the reference list by drug name and, when
found, run through four independent checks:

- unit price (threshold + severity banding, plus running overcharge total)
- formulation
- strength
- payer

Outputs a `ReconciliationResult`: ordered `Discrepancy` findings plus the
per-category counters the report needs. Lines are processed strictly in
order because discrepancy ids are built from the row index.
"""

from __future__ import annotations

from typing import Optional, Sequence

from config import ValidationConfig
from logging_config import get_logger
from models import (
    Discrepancy,
    DiscrepancyCounts,
    DiscrepancyType,
    InvoiceLine,
    ReconciliationResult,
    ReferenceDrug,
    Severity,
)
from normalize import (
    calculate_price_difference,
    determine_severity,
    format_currency,
    format_percentage,
    generate_id,
    normalize_text,
    round_half_up,
    texts_match,
)

logger = get_logger(__name__)

# Fixed severities for the non-price checks. A wrong formulation or strength
# is a dispensing error; a payer mismatch is a billing routing issue.
FORMULATION_SEVERITY = Severity.HIGH
STRENGTH_SEVERITY = Severity.HIGH
PAYER_SEVERITY = Severity.LOW


def find_reference_drug(
    line: InvoiceLine,
    reference_drugs: Sequence[ReferenceDrug],
) -> Optional[ReferenceDrug]:
    """First reference record whose name matches the line (case-insensitive)."""
    wanted = normalize_text(line.drug_name)
    for drug in reference_drugs:
        if normalize_text(drug.drug_name) == wanted:
            return drug
    return None


def check_price(
    line: InvoiceLine,
    reference: ReferenceDrug,
    index: int,
    price_threshold: float,
) -> tuple[Optional[Discrepancy], float]:
    """Compare unit prices.

    Returns the price finding (None when the overcharge does not exceed the
    threshold) and the line's contribution to the total overcharge, which is
    counted for every positive difference regardless of the threshold.
    """
    percentage = calculate_price_difference(line.unit_price, reference.unit_price)
    difference = line.unit_price - reference.unit_price
    exceeds = percentage > price_threshold

    logger.debug(
        "price_check | drug=%r | invoice=%.2f | reference=%.2f | diff=%.2f | pct=%.2f | qty=%s | threshold=%s | exceeds=%s",
        line.drug_name,
        line.unit_price,
        reference.unit_price,
        difference,
        percentage,
        line.quantity,
        price_threshold,
        exceeds,
    )

    overcharge = difference * line.quantity if difference > 0 else 0.0

    if not exceeds:
        return None, overcharge

    rounded = round_half_up(percentage, 1)
    finding = Discrepancy(
        id=generate_id(DiscrepancyType.UNIT_PRICE.id_prefix, index),
        drug_name=line.drug_name,
        type=DiscrepancyType.UNIT_PRICE,
        severity=determine_severity(percentage),
        description=f"{format_percentage(rounded)} overcharge detected",
        invoice_value=format_currency(line.unit_price),
        reference_value=format_currency(reference.unit_price),
        overcharge_percentage=rounded,
        overcharge_amount=format_currency(difference),
    )
    return finding, overcharge


def _field_mismatch(
    line: InvoiceLine,
    reference: ReferenceDrug,
    index: int,
    kind: DiscrepancyType,
    severity: Severity,
    label: str,
) -> Optional[Discrepancy]:
    invoice_value = getattr(line, kind.value)
    reference_value = getattr(reference, kind.value)
    if texts_match(invoice_value, reference_value):
        return None

    logger.debug(
        "field_mismatch | drug=%r | field=%s | invoice=%r | reference=%r",
        line.drug_name,
        kind.value,
        invoice_value,
        reference_value,
    )
    return Discrepancy(
        id=generate_id(kind.id_prefix, index),
        drug_name=line.drug_name,
        type=kind,
        severity=severity,
        description=f"{label} mismatch",
        invoice_value=invoice_value,
        reference_value=reference_value,
    )


def check_formulation(line: InvoiceLine, reference: ReferenceDrug, index: int) -> Optional[Discrepancy]:
    return _field_mismatch(line, reference, index, DiscrepancyType.FORMULATION, FORMULATION_SEVERITY, "Formulation")


def check_strength(line: InvoiceLine, reference: ReferenceDrug, index: int) -> Optional[Discrepancy]:
    return _field_mismatch(line, reference, index, DiscrepancyType.STRENGTH, STRENGTH_SEVERITY, "Strength")


def check_payer(line: InvoiceLine, reference: ReferenceDrug, index: int) -> Optional[Discrepancy]:
    return _field_mismatch(line, reference, index, DiscrepancyType.PAYER, PAYER_SEVERITY, "Payer")


def reconcile(
    invoice_lines: Sequence[InvoiceLine],
    reference_drugs: Sequence[ReferenceDrug],
    price_threshold: float,
) -> ReconciliationResult:
    """Match invoice lines to reference records and collect findings.

    Unmatched lines are skipped: they add no findings and touch no counter.
    """
    discrepancies: list[Discrepancy] = []
    counts = DiscrepancyCounts()
    matched = 0
    unmatched: list[str] = []

    for index, line in enumerate(invoice_lines):
        reference = find_reference_drug(line, reference_drugs)
        if reference is None:
            logger.warning("reference_missing | row=%s | drug=%r | action=skip", index, line.drug_name)
            unmatched.append(line.drug_name)
            continue

        matched += 1

        price_finding, overcharge = check_price(line, reference, index, price_threshold)
        if price_finding is not None:
            discrepancies.append(price_finding)
            counts.price_discrepancies += 1
        counts.total_overcharge += overcharge

        formulation_finding = check_formulation(line, reference, index)
        if formulation_finding is not None:
            discrepancies.append(formulation_finding)
            counts.formulation_issues += 1

        strength_finding = check_strength(line, reference, index)
        if strength_finding is not None:
            discrepancies.append(strength_finding)
            counts.strength_errors += 1

        payer_finding = check_payer(line, reference, index)
        if payer_finding is not None:
            discrepancies.append(payer_finding)
            counts.payer_mismatches += 1

    logger.info(
        "reconcile_done | lines=%s | matched=%s | unmatched=%s | findings=%s | price=%s | formulation=%s | strength=%s | payer=%s | overcharge=%.2f",
        len(invoice_lines),
        matched,
        len(unmatched),
        len(discrepancies),
        counts.price_discrepancies,
        counts.formulation_issues,
        counts.strength_errors,
        counts.payer_mismatches,
        counts.total_overcharge,
    )

    return ReconciliationResult(
        discrepancies=discrepancies,
        counts=counts,
        matched_items=matched,
        unmatched_drugs=unmatched,
    )


class ReconciliationEngine:
    """Reconciliation bound to one ValidationConfig."""

    def __init__(self, config: Optional[ValidationConfig] = None) -> None:
        self.config = config or ValidationConfig()

    def reconcile(
        self,
        invoice_lines: Sequence[InvoiceLine],
        reference_drugs: Sequence[ReferenceDrug],
    ) -> ReconciliationResult:
        return reconcile(invoice_lines, reference_drugs, self.config.price_threshold)
