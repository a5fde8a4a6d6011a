"""Inventory and manufacturing-order tracking.

This package provides the stock catalog, the order and production-card
lifecycles with time tracking and material usage, and persistence helpers
for a small manufacturing shop floor.
"""

from .catalog import InventoryCatalog, InventoryFilters
from .domain import (
    CardPriority,
    ComponentProgress,
    InventoryItem,
    InventoryStatus,
    InventoryType,
    LifecycleStatus,
    ManufacturingOrder,
    ProductionCard,
    TimeTracker,
)
from .errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TrackerError,
    ValidationError,
)
from .services import CardFilters, OrderFilters, ProductionService

__all__ = [
    "CardPriority",
    "ComponentProgress",
    "InventoryItem",
    "InventoryStatus",
    "InventoryType",
    "LifecycleStatus",
    "ManufacturingOrder",
    "ProductionCard",
    "TimeTracker",
    "InventoryCatalog",
    "InventoryFilters",
    "ProductionService",
    "OrderFilters",
    "CardFilters",
    "TrackerError",
    "NotFoundError",
    "InvalidStateError",
    "ValidationError",
    "ConflictError",
]
