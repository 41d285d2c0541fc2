"""
report.py - Validation report assembly and presentation.

build_validation_report() turns engine output into the final
`ValidationReport`; build_partial_report() covers runs where the reference
data could not be fetched. format_report() renders a report for terminals,
format_report_json() for HTTP/JSON consumers.
"""

from __future__ import annotations

from typing import Optional, Sequence

from config import DEFAULT_PATIENT_NAME
from logging_config import get_logger
from models import InvoiceLine, ReconciliationResult, Severity, ValidationReport
from normalize import format_currency

logger = get_logger(__name__)

SEPARATOR = "=" * 60
THIN_SEPARATOR = "-" * 60

SEVERITY_MARKERS = {
    Severity.HIGH: "[HIGH]",
    Severity.MEDIUM: "[MED] ",
    Severity.LOW: "[LOW] ",
}


def build_validation_report(
    invoice_lines: Sequence[InvoiceLine],
    result: ReconciliationResult,
    processing_time: float,
    patient_name: str = DEFAULT_PATIENT_NAME,
    reference_error: Optional[str] = None,
) -> ValidationReport:
    """Aggregate engine output into a ValidationReport.

    valid_items is total - findings, not a count of clean lines, and may be
    negative when lines carry several findings.
    """
    total_items = len(invoice_lines)
    found = len(result.discrepancies)

    report = ValidationReport(
        total_items=total_items,
        discrepancies_found=found,
        valid_items=total_items - found,
        discrepancies=list(result.discrepancies),
        patient_name=patient_name,
        processing_time_seconds=max(0.0, processing_time),
        price_discrepancy_count=result.counts.price_discrepancies,
        formulation_issue_count=result.counts.formulation_issues,
        strength_error_count=result.counts.strength_errors,
        payer_mismatch_count=result.counts.payer_mismatches,
        total_overcharge_amount=result.counts.total_overcharge,
        reference_data_error=reference_error,
    )

    logger.info(
        "report_built | total=%s | findings=%s | valid=%s | overcharge=%.2f | reference_error=%s",
        report.total_items,
        report.discrepancies_found,
        report.valid_items,
        report.total_overcharge_amount,
        report.has_reference_error,
    )
    return report


def build_partial_report(
    invoice_lines: Sequence[InvoiceLine],
    error: str,
    processing_time: float,
    patient_name: str = DEFAULT_PATIENT_NAME,
) -> ValidationReport:
    """Report for a run without reference data: parse results only."""
    return build_validation_report(
        invoice_lines,
        ReconciliationResult(),
        processing_time,
        patient_name=patient_name,
        reference_error=error or "Reference data unavailable",
    )


def format_report(report: Optional[ValidationReport]) -> str:
    """Render a report as a plain-text summary."""
    if report is None:
        logger.error("format_report_input_error | report_none=True | fallback=error_text")
        return f"{SEPARATOR}\n  REPORT UNAVAILABLE\n{SEPARATOR}\n"

    lines = [
        SEPARATOR,
        "  INVOICE VALIDATION REPORT",
        SEPARATOR,
        f"  Patient:              {report.patient_name}",
        f"  Items on invoice:     {report.total_items}",
        f"  Discrepancies found:  {report.discrepancies_found}",
        f"  Valid items:          {report.valid_items}",
        f"  Total overcharge:     {format_currency(report.total_overcharge_amount)}",
        f"  Processing time:      {report.processing_time_seconds:.3f}s",
        THIN_SEPARATOR,
        f"  Price discrepancies:  {report.price_discrepancy_count}",
        f"  Formulation issues:   {report.formulation_issue_count}",
        f"  Strength errors:      {report.strength_error_count}",
        f"  Payer mismatches:     {report.payer_mismatch_count}",
    ]

    if report.has_reference_error:
        lines += [
            THIN_SEPARATOR,
            "  WARNING: reference data unavailable, no discrepancies computed.",
            f"  Cause: {report.reference_data_error}",
        ]

    if report.discrepancies:
        lines.append(THIN_SEPARATOR)
        for item in report.discrepancies:
            detail = f"invoice {item.invoice_value} vs reference {item.reference_value}"
            if item.overcharge_amount is not None:
                detail += f" (+{item.overcharge_amount}/unit)"
            lines.append(
                f"  {SEVERITY_MARKERS[item.severity]} {item.drug_name}: {item.description} - {detail}"
            )
    elif not report.has_reference_error:
        lines += [THIN_SEPARATOR, "  No discrepancies found."]

    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n"


def format_report_json(report: ValidationReport) -> dict:
    """camelCase JSON-compatible dict for API responses and --json output."""
    return report.to_json_dict()
