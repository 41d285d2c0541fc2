"""
main.py - Orchestration and CLI for the invoice validator.

This module is orchestration-only:
1. fetch reference drugs  \\ concurrently
2. parse the invoice      /
3. reconcile
4. build the report

A failed reference fetch does not fail the run: the report comes back with
the parsed item count and `reference_data_error` set. A sheet that cannot be
parsed does fail it (ParseError propagates).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Optional

from config import ValidationConfig, load_config
from extract import InvoiceSource, ParseError, parse_invoice_file
from logging_config import get_logger, setup_logging
from match import ReconciliationEngine
from models import ReferenceDrug, ValidationReport
from reference import ReferenceFetchError, ReferenceProvider, build_reference_provider
from report import build_partial_report, build_validation_report, format_report, format_report_json

logger = get_logger("invoice-validator")


async def _fetch_reference(provider: ReferenceProvider) -> tuple[list[ReferenceDrug], Optional[str]]:
    """Fetch reference drugs, turning a fetch failure into an error message."""
    try:
        return await provider.fetch_reference_drugs(), None
    except ReferenceFetchError as exc:
        logger.error(
            "reference_fetch_failed | provider=%s | error=%s | fallback=partial_report",
            provider.name,
            exc,
        )
        return [], str(exc)


async def validate_invoice(
    source: InvoiceSource,
    config: Optional[ValidationConfig] = None,
    provider: Optional[ReferenceProvider] = None,
) -> ValidationReport:
    """Validate one invoice workbook against the reference drug list.

    Raises:
        ParseError: If the workbook is unreadable or lacks required columns.
    """
    config = config or load_config()
    provider = provider or build_reference_provider(config)
    start = time.time()

    logger.info(
        "pipeline_start | provider=%s | threshold=%s | header_row=%s",
        provider.name,
        config.price_threshold,
        config.header_row,
    )

    # The fetch and the parse share no data; parsing is CPU/IO bound pandas
    # work, so it goes to a worker thread while the fetch awaits the network.
    (reference_drugs, reference_error), invoice_lines = await asyncio.gather(
        _fetch_reference(provider),
        asyncio.to_thread(parse_invoice_file, source, config),
    )

    if reference_error is not None:
        report = build_partial_report(
            invoice_lines,
            reference_error,
            time.time() - start,
            patient_name=config.patient_name,
        )
    else:
        result = ReconciliationEngine(config).reconcile(invoice_lines, reference_drugs)
        report = build_validation_report(
            invoice_lines,
            result,
            time.time() - start,
            patient_name=config.patient_name,
        )

    logger.info(
        "pipeline_complete | total_items=%s | findings=%s | partial=%s | duration_s=%.3f",
        report.total_items,
        report.discrepancies_found,
        report.has_reference_error,
        report.processing_time_seconds,
    )
    return report


def validate_invoice_sync(
    source: InvoiceSource,
    config: Optional[ValidationConfig] = None,
    provider: Optional[ReferenceProvider] = None,
) -> ValidationReport:
    """Blocking wrapper around validate_invoice for scripts and the CLI."""
    return asyncio.run(validate_invoice(source, config=config, provider=provider))


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for the invoice validator."""
    parser = argparse.ArgumentParser(
        prog="invoice-validator",
        description=(
            "Pharmacy Invoice Validator\n"
            "Checks invoice line items against the reference drug list for "
            "price, formulation, strength and payer discrepancies."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s invoice.xlsx\n"
            "  %(prog)s invoice.xlsx --threshold 5 --header-row 0\n"
            "  %(prog)s invoice.xlsx --mock --json\n"
        ),
    )
    parser.add_argument("invoice", type=str, help="Path to the invoice workbook (.xlsx, .xls)")
    parser.add_argument(
        "--threshold",
        "-t",
        type=float,
        default=None,
        help="Overcharge percentage above which a price discrepancy is reported",
    )
    parser.add_argument(
        "--header-row",
        type=int,
        default=None,
        help="Zero-based row index holding the column headers",
    )
    parser.add_argument(
        "--reference-url",
        type=str,
        default=None,
        help="Reference drug list endpoint (overrides REFERENCE_API_URL)",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the built-in mock reference list instead of the API",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output the report as JSON instead of formatted text",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG-level) logging",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON lines (for production/log aggregation)",
    )

    args = parser.parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.log_json,
    )

    try:
        config = load_config(
            price_threshold=args.threshold,
            header_row=args.header_row,
            reference_url=args.reference_url,
            reference_source="mock" if args.mock else None,
        )
        logger.info("cli_mode | invoice=%s | source=%s", args.invoice, config.reference_source)
        report = validate_invoice_sync(args.invoice, config=config)

        if args.json:
            print(json.dumps(format_report_json(report), indent=2))
        else:
            print(format_report(report))
    except ParseError as exc:
        logger.error("cli_error | type=ParseError | error=%s", exc)
        print(f"\nError: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    except ValueError as exc:
        logger.error("cli_error | type=ValueError | error=%s", exc)
        print(f"\nError: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        raise SystemExit(130)
    except Exception as exc:
        logger.error(
            "cli_error | type=%s | error=%s",
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        print(f"\nUnexpected error: {exc}", file=sys.stderr)
        print("Run with --verbose for full traceback.", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
