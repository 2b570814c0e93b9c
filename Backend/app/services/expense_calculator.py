# app/services/expense_calculator.py
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ExpenseItems:
    """Saisie des cinq catégories de frais (quantité × taux, ou forfait pour 'autres')"""
    accommodation_days: Any = None
    accommodation_unit_price: Any = None
    per_diem_days: Any = None
    per_diem_rate: Any = None
    transport_type: Optional[str] = None
    transport_distance: Any = None
    transport_unit_price: Any = None
    fuel_quantity: Any = None
    fuel_unit_price: Any = None
    other_expenses: Any = None
    other_expenses_description: Optional[str] = None


@dataclass(frozen=True)
class ExpenseBreakdown:
    """Détail calculé des frais; total = somme exacte des cinq sous-totaux"""
    accommodation_days: Decimal
    accommodation_unit_price: Decimal
    accommodation_total: Decimal
    per_diem_days: Decimal
    per_diem_rate: Decimal
    per_diem_total: Decimal
    transport_type: Optional[str]
    transport_distance: Decimal
    transport_unit_price: Decimal
    transport_total: Decimal
    fuel_quantity: Decimal
    fuel_unit_price: Decimal
    fuel_total: Decimal
    other_expenses: Decimal
    other_expenses_description: Optional[str]
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def to_amount(value: Any) -> Decimal:
    """
    Normalise une quantité ou un taux: absent, vide, invalide ou négatif -> 0.
    Les flottants passent par leur représentation texte pour que le calcul
    soit identique quel que soit le côté (aperçu client ou soumission).
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return ZERO
    if not amount.is_finite() or amount < 0:
        return ZERO
    return amount


def _subtotal(quantity: Decimal, rate: Decimal) -> Decimal:
    return (quantity * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def compute_expenses(items: ExpenseItems) -> ExpenseBreakdown:
    """Calcule les sous-totaux par catégorie et le montant estimé total"""
    accommodation_days = to_amount(items.accommodation_days)
    accommodation_unit_price = to_amount(items.accommodation_unit_price)
    per_diem_days = to_amount(items.per_diem_days)
    per_diem_rate = to_amount(items.per_diem_rate)
    transport_distance = to_amount(items.transport_distance)
    transport_unit_price = to_amount(items.transport_unit_price)
    fuel_quantity = to_amount(items.fuel_quantity)
    fuel_unit_price = to_amount(items.fuel_unit_price)
    other_expenses = to_amount(items.other_expenses).quantize(CENT, rounding=ROUND_HALF_UP)

    accommodation_total = _subtotal(accommodation_days, accommodation_unit_price)
    per_diem_total = _subtotal(per_diem_days, per_diem_rate)
    transport_total = _subtotal(transport_distance, transport_unit_price)
    fuel_total = _subtotal(fuel_quantity, fuel_unit_price)

    total = accommodation_total + per_diem_total + transport_total + fuel_total + other_expenses

    return ExpenseBreakdown(
        accommodation_days=accommodation_days,
        accommodation_unit_price=accommodation_unit_price,
        accommodation_total=accommodation_total,
        per_diem_days=per_diem_days,
        per_diem_rate=per_diem_rate,
        per_diem_total=per_diem_total,
        transport_type=_clean_text(items.transport_type),
        transport_distance=transport_distance,
        transport_unit_price=transport_unit_price,
        transport_total=transport_total,
        fuel_quantity=fuel_quantity,
        fuel_unit_price=fuel_unit_price,
        fuel_total=fuel_total,
        other_expenses=other_expenses,
        other_expenses_description=_clean_text(items.other_expenses_description),
        total=total,
    )


def compute_total(items: ExpenseItems) -> Decimal:
    return compute_expenses(items).total
