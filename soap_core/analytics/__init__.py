"""Business rules and aggregation over sales snapshots."""

from soap_core.analytics.business_logic import (
    DEFAULT_MAX_STOCK,
    PRICE_TIER_HIGH,
    PRICE_TIER_LOW,
    calculate_monthly_sales,
    calculate_paid_profit,
    calculate_sale_totals,
    calculate_supplier_payment,
    calculate_total_profit,
    calculate_total_supplier_payment,
    format_month_label,
    monthly_benefits,
    monthly_paid_benefits,
    profit_per_unit,
    sales_to_frame,
    stock_percentage,
    supplier_cost_per_unit,
)

__all__ = [
    "DEFAULT_MAX_STOCK",
    "PRICE_TIER_HIGH",
    "PRICE_TIER_LOW",
    "calculate_monthly_sales",
    "calculate_paid_profit",
    "calculate_sale_totals",
    "calculate_supplier_payment",
    "calculate_total_profit",
    "calculate_total_supplier_payment",
    "format_month_label",
    "monthly_benefits",
    "monthly_paid_benefits",
    "profit_per_unit",
    "sales_to_frame",
    "stock_percentage",
    "supplier_cost_per_unit",
]
