from decimal import Decimal

import pytest

from buspos.errors import ValidationError
from buspos.services import cash_count_service


def test_one_cent_difference_is_within_default_tolerance():
    result = cash_count_service.validate(100.00, 100.01, 0.01)

    assert result.is_valid is True
    assert result.difference == Decimal("0.01")
    assert "within tolerance" in result.message


def test_two_cent_difference_is_invalid():
    result = cash_count_service.validate(100.00, 100.02, 0.01)

    assert result.is_valid is False
    assert result.difference == Decimal("0.02")
    assert result.message == "Counted total is lower by $0.02"


def test_exact_match_and_higher_count_messages():
    assert cash_count_service.validate("50.00", "50").message == "Totals match exactly"

    higher = cash_count_service.validate(Decimal("55.25"), Decimal("50.00"))
    assert not higher.is_valid
    assert higher.message == "Counted total is higher by $5.25"


def test_validate_for_closing_reports_each_pair():
    result = cash_count_service.validate_for_closing(120, 120, 125)

    assert result.counted_vs_manual.is_valid
    assert not result.counted_vs_expected.is_valid
    assert not result.manual_vs_expected.is_valid
    assert result.overall_valid is False
    assert [label for label, _ in result.mismatches()] == ["counted vs expected", "manual vs expected"]


def test_calculate_total_from_tuples_and_dicts():
    assert cash_count_service.calculate_total([(20, 3), (0.25, 4)]) == Decimal("61.00")
    assert cash_count_service.calculate_total([
        {"denomination": 5, "count": 2, "kind": "bill"},
        {"denomination": "0.10", "count": 3},
    ]) == Decimal("10.30")
    assert cash_count_service.calculate_total([]) == Decimal("0.00")


def test_normalize_breakdown_drops_zero_counts():
    rows = cash_count_service.normalize_breakdown([
        {"denomination": 20, "count": 3, "kind": "bill"},
        {"denomination": 1, "count": 0, "kind": "coin"},
        (0.05, 7),
    ])

    assert rows == [
        {"denomination_cents": 2000, "count": 3, "kind": "bill"},
        {"denomination_cents": 5, "count": 7, "kind": None},
    ]
    assert cash_count_service.calculate_total_cents(rows) == 6035


@pytest.mark.parametrize("entry", [
    {"denomination": 0, "count": 1},
    {"denomination": 5, "count": -1},
    {"denomination": 5, "count": 1.5},
    {"denomination": 5, "count": 1, "kind": "check"},
    {"count": 1},
    ("abc", 1),
])
def test_normalize_breakdown_rejects_bad_entries(entry):
    with pytest.raises(ValidationError):
        cash_count_service.normalize_breakdown([entry])


def test_cents_conversion():
    assert cash_count_service.to_cents(20.25) == 2025
    assert cash_count_service.to_cents("0.1") == 10
    assert cash_count_service.from_cents(1999) == Decimal("19.99")
