# =============================================================================
# soap_core/analytics/business_logic.py
# Business Rules and Sales Aggregation
# =============================================================================
"""
Pure functions over snapshots of sales and stock.

Nothing here touches storage: callers fetch through the data service and
pass the resulting lists in.

Features:
- Margin and supplier-cost lookup per price tier
- Sale totals, carton/piece conversion, stock percentage
- Monthly aggregation keyed by (year, month) using pandas
- French month labels for presentation only
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd

from soap_core.domain.models import Sale, UNITS_PER_CARTON

# =============================================================================
# CONSTANTS
# =============================================================================

PRICE_TIER_HIGH = 180
PRICE_TIER_LOW = 166

PROFIT_PER_UNIT = {
    PRICE_TIER_HIGH: 25,
    PRICE_TIER_LOW: 17,
}

SUPPLIER_COST_PER_UNIT = {
    PRICE_TIER_HIGH: 155,
    PRICE_TIER_LOW: 149,
}

DEFAULT_MAX_STOCK = 2700  # cartons

FRENCH_MONTHS = (
    "Janvier", "Février", "Mars", "Avril", "Mai", "Juin",
    "Juillet", "Août", "Septembre", "Octobre", "Novembre", "Décembre",
)

MONTH_INDEX = ["year", "month"]


# =============================================================================
# PER-UNIT RULES
# =============================================================================

def profit_per_unit(price_per_unit: float) -> float:
    """Margin per unit for a price tier. Unknown tiers earn nothing."""
    return PROFIT_PER_UNIT.get(price_per_unit, 0)


def supplier_cost_per_unit(price_per_unit: float) -> float:
    """Amount owed to the upstream supplier per unit. Unknown tiers cost nothing."""
    return SUPPLIER_COST_PER_UNIT.get(price_per_unit, 0)


def is_valid_price_per_unit(price_per_unit: float) -> bool:
    return price_per_unit in PROFIT_PER_UNIT


def get_price_option(price_per_unit: float) -> Optional[Dict[str, float]]:
    """Describe a known price tier, or None."""
    if not is_valid_price_per_unit(price_per_unit):
        return None
    return {
        "price": price_per_unit,
        "profit": profit_per_unit(price_per_unit),
        "supplier_cost": supplier_cost_per_unit(price_per_unit),
        "label": f"{price_per_unit:g} DA",
    }


def calculate_profit_margin(price_per_unit: float) -> float:
    """Margin as a percentage of the selling price."""
    if not price_per_unit:
        return 0.0
    return profit_per_unit(price_per_unit) / price_per_unit * 100


def calculate_sale_totals(quantity: int, price_per_unit: float) -> Dict[str, float]:
    """Totals for a prospective sale of ``quantity`` units."""
    return {
        "cartons": quantity // UNITS_PER_CARTON,
        "total_value": quantity * price_per_unit,
        "profit": quantity * profit_per_unit(price_per_unit),
        "supplier_cost": quantity * supplier_cost_per_unit(price_per_unit),
    }


# =============================================================================
# STOCK RULES
# =============================================================================

def convert_cartons_to_pieces(cartons: int) -> int:
    return cartons * UNITS_PER_CARTON


def convert_pieces_to_cartons(pieces: int) -> int:
    return pieces // UNITS_PER_CARTON


def has_sufficient_stock(current_stock: int, requested: int) -> bool:
    return current_stock >= requested


def calculate_remaining_stock(current_stock: int, sold: int) -> int:
    return max(current_stock - sold, 0)


def stock_percentage(current_stock: float, max_stock: float = DEFAULT_MAX_STOCK) -> float:
    """Fill level as a percentage, capped at 100."""
    if max_stock <= 0:
        return 0.0
    return min(max(current_stock, 0) / max_stock, 1) * 100


# =============================================================================
# AGGREGATION
# =============================================================================

def sales_to_frame(sales: Iterable[Sale]) -> pd.DataFrame:
    """Flatten sales into a DataFrame with derived benefit columns."""
    rows = []
    for sale in sales:
        paid_on = sale.payment_date or sale.date
        rows.append({
            "id": sale.id,
            "date": sale.date,
            "year": sale.date.year,
            "month": sale.date.month,
            "paid_year": paid_on.year,
            "paid_month": paid_on.month,
            "supermarket_id": sale.supermarket_id,
            "quantity": sale.quantity,
            "price_per_unit": sale.price_per_unit,
            "total_value": sale.total_value,
            "is_paid": sale.is_paid,
            "net_benefit": sale.quantity * profit_per_unit(sale.price_per_unit),
            "supplier_cost": sale.quantity * supplier_cost_per_unit(sale.price_per_unit),
        })

    columns = [
        "id", "date", "year", "month", "paid_year", "paid_month", "supermarket_id",
        "quantity", "price_per_unit", "total_value", "is_paid", "net_benefit", "supplier_cost",
    ]
    return pd.DataFrame(rows, columns=columns)


def _empty_monthly(columns: List[str]) -> pd.DataFrame:
    index = pd.MultiIndex.from_arrays([[], []], names=MONTH_INDEX)
    return pd.DataFrame(columns=columns, index=index)


def monthly_benefits(sales: Iterable[Sale]) -> pd.DataFrame:
    """
    Quantity, revenue and estimated net benefit per calendar month.

    Returns:
        DataFrame indexed by (year, month), sorted chronologically
    """
    df = sales_to_frame(sales)
    if df.empty:
        return _empty_monthly(["quantity", "revenue", "net_benefit"])

    return (
        df.groupby(MONTH_INDEX)
        .agg(
            quantity=("quantity", "sum"),
            revenue=("total_value", "sum"),
            net_benefit=("net_benefit", "sum"),
        )
        .sort_index()
    )


def monthly_paid_benefits(sales: Iterable[Sale]) -> pd.DataFrame:
    """
    Net benefit of paid sales only, per month of payment.

    Sales without a recorded payment date count in the month they were made.
    """
    df = sales_to_frame(sales)
    df = df[df["is_paid"].astype(bool)]
    if df.empty:
        return _empty_monthly(["quantity", "revenue", "paid_benefit"])

    return (
        df.groupby(["paid_year", "paid_month"])
        .agg(
            quantity=("quantity", "sum"),
            revenue=("total_value", "sum"),
            paid_benefit=("net_benefit", "sum"),
        )
        .rename_axis(MONTH_INDEX)
        .sort_index()
    )


def calculate_total_profit(sales: Iterable[Sale], only_paid: bool = False) -> float:
    return float(sum(
        s.quantity * profit_per_unit(s.price_per_unit)
        for s in sales
        if s.is_paid or not only_paid
    ))


def calculate_total_supplier_payment(sales: Iterable[Sale]) -> float:
    return float(sum(s.quantity * supplier_cost_per_unit(s.price_per_unit) for s in sales))


def _in_month(sales: Iterable[Sale], year: int, month: int) -> List[Sale]:
    return [s for s in sales if s.date.year == year and s.date.month == month]


def _paid_in_month(sales: Iterable[Sale], year: int, month: int) -> List[Sale]:
    """Paid sales whose payment date (else sale date) falls in the month."""
    paid = []
    for s in sales:
        paid_on = s.payment_date or s.date
        if s.is_paid and paid_on.year == year and paid_on.month == month:
            paid.append(s)
    return paid


def calculate_supplier_payment(sales: Iterable[Sale], year: int, month: int) -> float:
    """Supplier amount due for sales made in the given month."""
    return calculate_total_supplier_payment(_in_month(sales, year, month))


def calculate_paid_profit(sales: Iterable[Sale], year: int, month: int) -> float:
    """Profit collected in the given month, by payment date."""
    return calculate_total_profit(_paid_in_month(sales, year, month))


def calculate_monthly_sales(
    sales: Iterable[Sale],
    current_stock: int,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> Dict[str, float]:
    """
    Dashboard summary for one month (defaults to the current month).

    Args:
        sales: Sales snapshot
        current_stock: Current stock in cartons
        year, month: Month to summarise

    Returns:
        Dict with quantity, revenue, profit, stock (pieces),
        supplier_payment and paid_profit (by payment month)
    """
    now = datetime.now()
    year = year or now.year
    month = month or now.month
    sales = list(sales)
    month_sales = _in_month(sales, year, month)

    return {
        "quantity": sum(s.quantity for s in month_sales),
        "revenue": float(sum(s.total_value for s in month_sales)),
        "profit": calculate_total_profit(month_sales),
        "stock": convert_cartons_to_pieces(current_stock),
        "supplier_payment": calculate_total_supplier_payment(month_sales),
        "paid_profit": calculate_paid_profit(sales, year, month),
    }


def format_month_label(year: int, month: int) -> str:
    """Presentation label, e.g. ``format_month_label(2024, 1) == "Janvier 2024"``."""
    return f"{FRENCH_MONTHS[month - 1]} {year}"
