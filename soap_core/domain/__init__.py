"""Domain entities for the soap stock dashboard."""

from soap_core.domain.models import (
    UNITS_PER_CARTON,
    DEFAULT_FRAGRANCES,
    ENTITY_MODELS,
    FragranceStock,
    Order,
    OrderStatus,
    Payment,
    PhoneNumber,
    Sale,
    StockHistoryEntry,
    StockMovementType,
    Supermarket,
    default_fragrance_records,
    new_id,
    parse_datetime,
    primary_key,
    to_model,
)

__all__ = [
    "UNITS_PER_CARTON",
    "DEFAULT_FRAGRANCES",
    "ENTITY_MODELS",
    "FragranceStock",
    "Order",
    "OrderStatus",
    "Payment",
    "PhoneNumber",
    "Sale",
    "StockHistoryEntry",
    "StockMovementType",
    "Supermarket",
    "default_fragrance_records",
    "new_id",
    "parse_datetime",
    "primary_key",
    "to_model",
]
