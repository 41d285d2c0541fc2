"""
extract.py - Invoice spreadsheet parsing boundary.

This module turns an uploaded invoice workbook into `InvoiceLine` records.

Pipeline role:
- It is the only module that knows anything about Excel or pandas readers.
- Downstream modules never see cells or column indices; they only consume
  `list[InvoiceLine]` in spreadsheet order (the engine's discrepancy ids are
  built from that order).

Two layers:
    read_invoice_grid(source)          -> raw cells of the first worksheet
    parse_invoice_rows(grid, config)   -> list[InvoiceLine]
    parse_invoice_file(source, config) -> both steps in one call

The grid layer is kept separate so the column/row rules can be exercised
without building workbook files.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Optional, Sequence, Union

import pandas as pd

from config import ColumnAliases, ValidationConfig
from logging_config import get_logger
from models import InvoiceLine
from normalize import cell_text, is_blank, normalize_text, parse_price, parse_quantity

logger = get_logger(__name__)

InvoiceSource = Union[bytes, bytearray, str, Path, BinaryIO]

REQUIRED_FIELDS = ("drug_name", "unit_price", "formulation", "strength", "payer")

# Maximum workbook size accepted by the API layer.
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB

SUPPORTED_EXTENSIONS = {".xlsx", ".xls"}


class ParseError(ValueError):
    """The workbook cannot be read or its header row cannot be resolved."""


@dataclass(frozen=True)
class ColumnMap:
    """Resolved zero-based column index per invoice field."""

    drug_name: int
    unit_price: int
    formulation: int
    strength: int
    payer: int
    quantity: Optional[int] = None


def find_column_index(headers: Sequence[Any], aliases: Sequence[str]) -> int:
    """Index of the first header containing any alias (case-insensitive), or -1."""
    for index, header in enumerate(headers):
        text = normalize_text(header)
        if text and any(alias in text for alias in aliases):
            return index
    return -1


def resolve_columns(headers: Sequence[Any], aliases: ColumnAliases) -> ColumnMap:
    """Map each invoice field to a header column.

    Raises:
        ParseError: If any required field has no matching header.
    """
    indices = {
        field: find_column_index(headers, getattr(aliases, field))
        for field in REQUIRED_FIELDS + ("quantity",)
    }

    logger.debug(
        "column_mapping | headers=%s | %s",
        [cell_text(header) for header in headers],
        " | ".join(f"{field}={index}" for field, index in indices.items()),
    )

    missing = [field for field in REQUIRED_FIELDS if indices[field] == -1]
    if missing:
        raise ParseError(
            "Required columns not found in Excel file: "
            f"{', '.join(missing)} (headers: {[cell_text(header) for header in headers]})"
        )

    quantity_index = indices["quantity"]
    return ColumnMap(
        drug_name=indices["drug_name"],
        unit_price=indices["unit_price"],
        formulation=indices["formulation"],
        strength=indices["strength"],
        payer=indices["payer"],
        quantity=quantity_index if quantity_index != -1 else None,
    )


def _cell(row: Sequence[Any], index: Optional[int]) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


def _row_is_empty(row: Sequence[Any]) -> bool:
    return all(is_blank(value) for value in row)


def parse_invoice_rows(
    grid: Sequence[Sequence[Any]],
    config: Optional[ValidationConfig] = None,
) -> list[InvoiceLine]:
    """Convert raw worksheet cells into invoice lines.

    Rows above `config.header_row` are ignored (title block), the header row
    supplies column names, and every later row is a candidate line. Fully
    empty rows and rows without a drug name are skipped. Price and quantity
    cells that cannot be read become 0.

    Raises:
        ParseError: If the header row is missing or a required column
            cannot be located.
    """
    config = config or ValidationConfig()

    if grid is None:
        raise ParseError("Invoice sheet is empty")

    header_row = config.header_row
    if len(grid) <= header_row:
        raise ParseError(
            f"Header row {header_row + 1} not found: sheet has only {len(grid)} row(s)"
        )

    headers = list(grid[header_row] or [])
    columns = resolve_columns(headers, config.column_aliases)

    lines: list[InvoiceLine] = []
    skipped_empty = 0
    skipped_nameless = 0

    for row in grid[header_row + 1 :]:
        row = list(row or [])
        if _row_is_empty(row):
            skipped_empty += 1
            continue

        drug_name = cell_text(_cell(row, columns.drug_name))
        if not drug_name:
            skipped_nameless += 1
            continue

        lines.append(
            InvoiceLine(
                drug_name=drug_name,
                unit_price=parse_price(_cell(row, columns.unit_price)),
                formulation=cell_text(_cell(row, columns.formulation)),
                strength=cell_text(_cell(row, columns.strength)),
                payer=cell_text(_cell(row, columns.payer)),
                quantity=parse_quantity(_cell(row, columns.quantity)),
            )
        )

    logger.info(
        "invoice_parsed | lines=%s | skipped_empty=%s | skipped_nameless=%s | header_row=%s",
        len(lines),
        skipped_empty,
        skipped_nameless,
        header_row,
    )
    return lines


def read_invoice_grid(source: InvoiceSource) -> list[list[Any]]:
    """Read the first worksheet of an Excel workbook as a header-less grid.

    Blank cells come back as None. Numeric cells keep their numeric type so
    prices typed as numbers skip text parsing.

    Raises:
        ParseError: If the workbook cannot be opened or read.
    """
    if source is None:
        raise ParseError("No invoice file provided")

    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise ParseError("Failed to parse Excel file: file is empty")
        handle: Any = io.BytesIO(bytes(source))
    elif isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise ParseError(f"Invoice file not found: {path}")
        if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            logger.warning(
                "extract_extension_warning | extension=%s | file=%s | supported=%s | fallback=continue",
                path.suffix.lower() or "<none>",
                path.name,
                sorted(SUPPORTED_EXTENSIONS),
            )
        handle = path
    else:
        handle = source

    try:
        df = pd.read_excel(
            handle,
            sheet_name=0,
            header=None,
            dtype=object,
            keep_default_na=False,
        )
    except Exception as exc:
        logger.error(
            "extract_read_error | error_type=%s | error=%s",
            type(exc).__name__,
            exc,
        )
        raise ParseError(f"Failed to parse Excel file: {exc}") from exc

    df = df.astype(object).where(pd.notna(df), None)
    grid = df.values.tolist()
    logger.debug("invoice_grid_loaded | rows=%s | columns=%s", len(grid), df.shape[1])
    return grid


def parse_invoice_file(
    source: InvoiceSource,
    config: Optional[ValidationConfig] = None,
) -> list[InvoiceLine]:
    """Read a workbook and parse its first worksheet into invoice lines."""
    return parse_invoice_rows(read_invoice_grid(source), config)
