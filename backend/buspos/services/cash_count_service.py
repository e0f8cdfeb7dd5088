# Overview: Pure cash-count validation; compares counted, declared and expected drawer totals.

"""
Cash Count Validation

WHY: A cashier declares a drawer total and may also count it bill by bill.
These helpers compare the two (and the system's expected total) within a
tolerance. They never touch the database and never raise on a mismatch:
a discrepancy is a result, the caller decides what to do with it.

All arithmetic is exact decimal. Float inputs are converted through their
string form so 100.01 means one hundred and one cent, not its binary
approximation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from ..errors import ValidationError

CENT = Decimal("0.01")
DEFAULT_TOLERANCE = Decimal("0.01")

KIND_BILL = "bill"
KIND_COIN = "coin"

# USD/Balboa bills and coins offered by the counting screen. A convenience
# for the UI only: breakdowns may contain any positive denomination.
STANDARD_DENOMINATIONS = [
    (Decimal("100"), KIND_BILL),
    (Decimal("50"), KIND_BILL),
    (Decimal("20"), KIND_BILL),
    (Decimal("10"), KIND_BILL),
    (Decimal("5"), KIND_BILL),
    (Decimal("1"), KIND_BILL),
    (Decimal("1"), KIND_COIN),
    (Decimal("0.50"), KIND_COIN),
    (Decimal("0.25"), KIND_COIN),
    (Decimal("0.10"), KIND_COIN),
    (Decimal("0.05"), KIND_COIN),
    (Decimal("0.01"), KIND_COIN),
]


@dataclass(frozen=True)
class CashCountValidation:
    is_valid: bool
    difference: Decimal
    message: str
    tolerance: Decimal

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "difference": str(self.difference),
            "message": self.message,
            "tolerance": str(self.tolerance),
        }


@dataclass(frozen=True)
class ClosingValidation:
    counted_vs_manual: CashCountValidation
    counted_vs_expected: CashCountValidation
    manual_vs_expected: CashCountValidation
    overall_valid: bool

    def mismatches(self) -> list[tuple[str, CashCountValidation]]:
        checks = [
            ("counted vs manual", self.counted_vs_manual),
            ("counted vs expected", self.counted_vs_expected),
            ("manual vs expected", self.manual_vs_expected),
        ]
        return [(label, result) for label, result in checks if not result.is_valid]

    def to_dict(self) -> dict:
        return {
            "counted_vs_manual": self.counted_vs_manual.to_dict(),
            "counted_vs_expected": self.counted_vs_expected.to_dict(),
            "manual_vs_expected": self.manual_vs_expected.to_dict(),
            "overall_valid": self.overall_valid,
        }


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError("Cash amounts must be numeric")
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value).strip())
        except ArithmeticError:
            raise ValidationError(f"Invalid cash amount: {value!r}")
    raise ValidationError(f"Invalid cash amount: {value!r}")


def to_cents(amount: Any) -> int:
    """Convert a currency amount (e.g. 20.25) to integer cents."""
    return int((_to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to a two-place currency amount."""
    return (Decimal(int(cents)) / 100).quantize(CENT)


def validate(counted: Any, manual: Any, tolerance: Any = DEFAULT_TOLERANCE) -> CashCountValidation:
    """
    Compare a counted total with a manually declared total.

    is_valid iff |counted - manual| <= tolerance.
    """
    counted_d = _to_decimal(counted)
    manual_d = _to_decimal(manual)
    tolerance_d = _to_decimal(tolerance)

    difference = abs(counted_d - manual_d)
    is_valid = difference <= tolerance_d

    if is_valid:
        if difference == 0:
            message = "Totals match exactly"
        else:
            message = f"Totals match within tolerance (difference: ${difference:.2f})"
    elif counted_d > manual_d:
        message = f"Counted total is higher by ${difference:.2f}"
    else:
        message = f"Counted total is lower by ${difference:.2f}"

    return CashCountValidation(
        is_valid=is_valid,
        difference=difference,
        message=message,
        tolerance=tolerance_d,
    )


def validate_for_closing(
    counted: Any,
    manual: Any,
    expected: Any,
    tolerance: Any = DEFAULT_TOLERANCE,
) -> ClosingValidation:
    """Cross-check counted, declared and expected drawer totals pairwise."""
    counted_vs_manual = validate(counted, manual, tolerance)
    counted_vs_expected = validate(counted, expected, tolerance)
    manual_vs_expected = validate(manual, expected, tolerance)

    return ClosingValidation(
        counted_vs_manual=counted_vs_manual,
        counted_vs_expected=counted_vs_expected,
        manual_vs_expected=manual_vs_expected,
        overall_valid=(
            counted_vs_manual.is_valid
            and counted_vs_expected.is_valid
            and manual_vs_expected.is_valid
        ),
    )


def _entry_parts(entry: Any) -> tuple[Any, Any, Any]:
    if isinstance(entry, dict):
        if "denomination" not in entry or "count" not in entry:
            raise ValidationError("Breakdown entries need denomination and count")
        return entry["denomination"], entry["count"], entry.get("kind") or entry.get("type")
    try:
        denomination, count = entry[0], entry[1]
    except (TypeError, IndexError, KeyError):
        raise ValidationError(f"Invalid breakdown entry: {entry!r}")
    kind = entry[2] if len(entry) > 2 else None
    return denomination, count, kind


def calculate_total(breakdown: Iterable[Any]) -> Decimal:
    """Sum of denomination * count over (denomination, count) entries."""
    total = Decimal("0")
    for entry in breakdown or []:
        denomination, count, _kind = _entry_parts(entry)
        total += _to_decimal(denomination) * _to_decimal(count)
    return total.quantize(CENT)


def normalize_breakdown(breakdown: Iterable[Any]) -> list[dict]:
    """
    Validate breakdown entries and convert them to storage rows.

    Returns [{"denomination_cents", "count", "kind"}]; rows with a zero
    count are dropped.
    """
    rows = []
    for entry in breakdown or []:
        denomination, count, kind = _entry_parts(entry)

        denomination_cents = to_cents(denomination)
        if denomination_cents <= 0:
            raise ValidationError("Denomination must be positive")

        count_d = _to_decimal(count)
        if count_d != count_d.to_integral_value() or count_d < 0:
            raise ValidationError("Denomination count must be a non-negative integer")

        if kind is not None and kind not in (KIND_BILL, KIND_COIN):
            raise ValidationError(f"Invalid denomination kind: {kind}")

        if count_d == 0:
            continue

        rows.append({
            "denomination_cents": denomination_cents,
            "count": int(count_d),
            "kind": kind,
        })
    return rows


def calculate_total_cents(rows: Iterable[dict]) -> int:
    """Total of normalized breakdown rows, in cents."""
    return sum(row["denomination_cents"] * row["count"] for row in rows)
