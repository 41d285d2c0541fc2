"""
test_normalize.py - Normalizer and pricing math tests.

Usage: pytest test_normalize.py
"""

from __future__ import annotations

import math

import pytest

from models import Severity
from normalize import (
    calculate_price_difference,
    cell_text,
    determine_severity,
    format_currency,
    format_percentage,
    generate_id,
    is_blank,
    normalize_text,
    parse_price,
    parse_quantity,
    round_half_up,
    texts_match,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (12.5, 12.5),
        (3, 3.0),
        ("$1,234.50", 1234.50),
        ("€ 12.00", 12.0),
        ("£7", 7.0),
        ("¥ 1 000", 1000.0),
        ("  0.35 ", 0.35),
        ("12.5 per unit", 12.5),
        ("-4.20", -4.20),
        ("", 0.0),
        ("   ", 0.0),
        (None, 0.0),
        ("N/A", 0.0),
        ("abc", 0.0),
        (float("nan"), 0.0),
        (True, 0.0),
    ],
)
def test_parse_price(raw, expected):
    assert parse_price(raw) == pytest.approx(expected)


@pytest.mark.parametrize("amount", [0.0, 0.01, 0.35, 12.34, 120.0, 1234.56, 99999.99])
def test_parse_price_reads_back_formatted_currency(amount):
    assert parse_price(format_currency(amount)) == amount


@pytest.mark.parametrize(
    "raw, expected",
    [
        (5, 5),
        (5.9, 5),
        ("12", 12),
        (" 30 ", 30),
        ("3 boxes", 3),
        ("-2", -2),
        ("abc", 0),
        ("", 0),
        (None, 0),
        (float("nan"), 0),
    ],
)
def test_parse_quantity(raw, expected):
    assert parse_quantity(raw) == expected


@pytest.mark.parametrize("price", [0.5, 1.0, 45.0, 200.0, -3.0])
def test_price_difference_of_equal_prices_is_zero(price):
    assert calculate_price_difference(price, price) == 0


def test_price_difference_against_zero_reference():
    assert calculate_price_difference(5.0, 0.0) == 100
    assert calculate_price_difference(0.0, 0.0) == 0
    assert calculate_price_difference(-1.0, 0.0) == 0


def test_price_difference_percentages():
    assert calculate_price_difference(0.61, 0.50) == pytest.approx(22.0)
    assert calculate_price_difference(0.25, 0.50) == pytest.approx(-50.0)


def test_price_difference_non_numeric_inputs():
    assert calculate_price_difference("5", 1.0) == 0
    assert calculate_price_difference(5.0, None) == 0
    assert calculate_price_difference(True, 1.0) == 0


def test_price_difference_clamps_non_finite():
    assert calculate_price_difference(1e308, 1e-308) == 100
    assert calculate_price_difference(-1e308, 1e-308) == -100


@pytest.mark.parametrize(
    "percentage, expected",
    [
        (21, Severity.HIGH),
        (20.5, Severity.HIGH),
        (20, Severity.MEDIUM),
        (11, Severity.MEDIUM),
        (10, Severity.LOW),
        (0, Severity.LOW),
        (-35, Severity.LOW),
    ],
)
def test_determine_severity(percentage, expected):
    assert determine_severity(percentage) is expected


def test_text_comparison_is_trimmed_and_case_insensitive():
    assert texts_match(" Tablet ", "tablet")
    assert texts_match("MEDICAID", "medicaid")
    assert not texts_match("Tablet (ER)", "Tablet")
    assert normalize_text(None) == ""


def test_cell_text():
    assert cell_text(10.0) == "10"
    assert cell_text(0.5) == "0.5"
    assert cell_text(7) == "7"
    assert cell_text("  Capsule ") == "Capsule"
    assert cell_text(None) == ""
    assert cell_text(float("nan")) == ""


def test_is_blank():
    assert is_blank(None)
    assert is_blank("  ")
    assert is_blank(math.nan)
    assert not is_blank(0)
    assert not is_blank("x")


def test_formatting_helpers():
    assert format_currency(0.1) == "$0.10"
    assert format_currency(1234.5) == "$1234.50"
    assert format_currency(-0.0) == "$0.00"
    assert format_percentage(20) == "20.0%"
    assert format_percentage(21.96) == "22.0%"
    assert round_half_up(12.25, 1) == 12.3
    assert round_half_up(21.999999999999996, 1) == 22.0
    assert generate_id("price", 3) == "price-3"
