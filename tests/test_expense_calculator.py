"""Unit tests for the expense aggregator."""

from decimal import Decimal

import pytest

from app.services.expense_calculator import (
    ExpenseItems,
    compute_expenses,
    compute_total,
    to_amount,
)


class TestToAmount:
    @pytest.mark.parametrize("value", [None, "", "abc", -1, "-0.5", float("nan"), float("inf")])
    def test_absent_or_invalid_is_zero(self, value) -> None:
        assert to_amount(value) == Decimal("0")

    def test_float_goes_through_text(self) -> None:
        assert to_amount(0.1) == Decimal("0.1")

    def test_keeps_decimal(self) -> None:
        assert to_amount(Decimal("12.5")) == Decimal("12.5")


class TestComputeExpenses:
    def test_per_diem_and_accommodation_scenario(self) -> None:
        items = ExpenseItems(
            per_diem_days=3,
            per_diem_rate=10000,
            accommodation_days=2,
            accommodation_unit_price=15000,
        )
        breakdown = compute_expenses(items)
        assert breakdown.per_diem_total == Decimal("30000.00")
        assert breakdown.accommodation_total == Decimal("30000.00")
        assert breakdown.transport_total == Decimal("0.00")
        assert breakdown.fuel_total == Decimal("0.00")
        assert breakdown.other_expenses == Decimal("0.00")
        assert breakdown.total == Decimal("60000.00")

    def test_total_is_sum_of_subtotals(self) -> None:
        breakdown = compute_expenses(ExpenseItems(
            accommodation_days="1.5",
            accommodation_unit_price="12000",
            per_diem_days=2,
            per_diem_rate="7500.25",
            transport_type="Véhicule de service",
            transport_distance=320,
            transport_unit_price="35.5",
            fuel_quantity="40.75",
            fuel_unit_price="815",
            other_expenses="2500",
            other_expenses_description="Péage",
        ))
        assert breakdown.accommodation_total == Decimal("18000.00")
        assert breakdown.per_diem_total == Decimal("15000.50")
        assert breakdown.transport_total == Decimal("11360.00")
        assert breakdown.fuel_total == Decimal("33211.25")
        assert breakdown.total == (
            breakdown.accommodation_total
            + breakdown.per_diem_total
            + breakdown.transport_total
            + breakdown.fuel_total
            + breakdown.other_expenses
        )
        assert breakdown.total == Decimal("80071.75")

    def test_negative_or_missing_contributes_zero(self) -> None:
        breakdown = compute_expenses(ExpenseItems(
            per_diem_days=-3,
            per_diem_rate=10000,
            fuel_quantity=20,
            other_expenses=-500,
        ))
        assert breakdown.per_diem_total == Decimal("0.00")
        assert breakdown.fuel_total == Decimal("0.00")
        assert breakdown.other_expenses == Decimal("0.00")
        assert breakdown.total == Decimal("0.00")
        for field in ("accommodation_total", "per_diem_total", "transport_total", "fuel_total", "other_expenses"):
            assert getattr(breakdown, field) >= 0

    def test_empty_input(self) -> None:
        assert compute_total(ExpenseItems()) == Decimal("0.00")

    def test_subtotals_round_half_up_to_cents(self) -> None:
        breakdown = compute_expenses(ExpenseItems(fuel_quantity="0.333", fuel_unit_price="1.5"))
        # 0.4995 -> 0.50
        assert breakdown.fuel_total == Decimal("0.50")

    def test_same_inputs_same_result_whatever_the_type(self) -> None:
        as_numbers = ExpenseItems(per_diem_days=3, per_diem_rate=10000.0, transport_distance=0.1, transport_unit_price=3)
        as_text = ExpenseItems(per_diem_days="3", per_diem_rate="10000.0", transport_distance="0.1", transport_unit_price="3")
        assert compute_expenses(as_numbers).total == compute_expenses(as_text).total == Decimal("30000.30")

    def test_text_fields_are_cleaned(self) -> None:
        breakdown = compute_expenses(ExpenseItems(transport_type="  Avion ", other_expenses_description="   "))
        assert breakdown.transport_type == "Avion"
        assert breakdown.other_expenses_description is None

    def test_to_dict_exposes_total(self) -> None:
        data = compute_expenses(ExpenseItems(other_expenses=100)).to_dict()
        assert data["total"] == Decimal("100.00")
        assert data["other_expenses"] == Decimal("100.00")
