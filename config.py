"""
config.py - Validation settings.

All tunables the engine reads live on `ValidationConfig`, which is passed
explicitly into the parser, the engine, and the provider factory. Nothing
reads module-level globals at validation time, so tests and API callers can
override any value per call:

    config = load_config(price_threshold=5)
    report = await validate_invoice(data, config=config)
"""

from __future__ import annotations

import os
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_REFERENCE_URL = "https://685daed17b57aebd2af6da54.mockapi.io/api/v1/drugs"

# Overcharge percentage above which a price difference is reported.
DEFAULT_PRICE_THRESHOLD = 10.0

# Zero-based row holding the column headers. Invoices exported by the
# pharmacy billing system carry two title rows above the header.
DEFAULT_HEADER_ROW = 2

DEFAULT_PATIENT_NAME = "Sample Patient"


class ColumnAliases(BaseModel):
    """Accepted header substrings per invoice field (matched case-insensitively)."""

    drug_name: tuple[str, ...] = ("drugname", "drug name", "drug")
    unit_price: tuple[str, ...] = ("unit price", "unitprice", "price", "cost")
    formulation: tuple[str, ...] = ("formulation", "form")
    strength: tuple[str, ...] = ("strength", "dose")
    payer: tuple[str, ...] = ("payer", "insurance")
    quantity: tuple[str, ...] = ("qty", "quantity", "qty.")

    model_config = ConfigDict(frozen=True)

    @field_validator("*")
    @classmethod
    def _non_empty(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(alias.strip().lower() for alias in value if alias and alias.strip())
        if not cleaned:
            raise ValueError("each field needs at least one non-blank alias")
        return cleaned


class ValidationConfig(BaseModel):
    """Explicit configuration for one validation run."""

    price_threshold: float = Field(default=DEFAULT_PRICE_THRESHOLD, ge=0)
    header_row: int = Field(default=DEFAULT_HEADER_ROW, ge=0)
    column_aliases: ColumnAliases = Field(default_factory=ColumnAliases)
    reference_url: str = DEFAULT_REFERENCE_URL
    reference_timeout_seconds: float = Field(default=10.0, gt=0)
    reference_source: Literal["http", "mock"] = "http"
    patient_name: str = DEFAULT_PATIENT_NAME

    model_config = ConfigDict(frozen=True)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("config_env_invalid | name=%s | raw=%r | fallback=%s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("config_env_invalid | name=%s | raw=%r | fallback=%s", name, raw, default)
        return default


def load_config(**overrides: Any) -> ValidationConfig:
    """Build a ValidationConfig from .env / environment, then apply overrides."""
    try:
        load_dotenv()
    except UnicodeDecodeError:
        # Fallback for legacy Windows-encoded .env files.
        load_dotenv(encoding="cp1252")

    source = os.getenv("REFERENCE_SOURCE", "http").strip().lower() or "http"
    if source not in {"http", "mock"}:
        logger.warning("config_env_invalid | name=REFERENCE_SOURCE | raw=%r | fallback='http'", source)
        source = "http"

    values: dict[str, Any] = {
        "price_threshold": _env_float("PRICE_THRESHOLD", DEFAULT_PRICE_THRESHOLD),
        "header_row": _env_int("INVOICE_HEADER_ROW", DEFAULT_HEADER_ROW),
        "reference_url": os.getenv("REFERENCE_API_URL", "").strip() or DEFAULT_REFERENCE_URL,
        "reference_timeout_seconds": _env_float("REFERENCE_TIMEOUT_SECONDS", 10.0),
        "reference_source": source,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})

    config = ValidationConfig(**values)
    logger.debug(
        "config_loaded | threshold=%s | header_row=%s | source=%s | url=%s",
        config.price_threshold,
        config.header_row,
        config.reference_source,
        config.reference_url,
    )
    return config
