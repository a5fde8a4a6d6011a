"""Stock catalog: models, components and materials held in inventory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .domain import (
    BillOfMaterial,
    InventoryItem,
    InventoryStatus,
    InventoryType,
    utcnow,
)
from .errors import ConflictError, NotFoundError, ValidationError
from .notifications import INVENTORY_CHANGED, NotificationHub
from .repository import InMemoryRepository, RecordNotFoundError, RecordStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "type",
        "sku",
        "quantity",
        "unit",
        "unit_price",
        "status",
        "minimum_stock",
        "maximum_stock",
        "location",
        "supplier",
        "estimated_manufacturing_time",
        "components",
        "can_manufacture",
        "bill_of_materials",
    }
)

NULLABLE_FIELDS = frozenset({"supplier", "estimated_manufacturing_time"})


@dataclass(slots=True)
class InventoryFilters:
    """Optional criteria for listing catalog items."""

    type: Optional[InventoryType] = None
    status: Optional[InventoryStatus] = None
    location: Optional[str] = None
    supplier: Optional[str] = None
    low_stock: bool = False
    search: Optional[str] = None

    def matches(self, item: InventoryItem) -> bool:
        if self.type is not None and item.type != self.type:
            return False
        if self.status is not None and item.status != self.status:
            return False
        if self.location and self.location.lower() not in item.location.lower():
            return False
        if self.supplier and self.supplier.lower() not in (item.supplier or "").lower():
            return False
        if self.low_stock and not item.is_low_stock:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = (item.name, item.sku, item.description)
            if not any(needle in value.lower() for value in haystack):
                return False
        return True


@dataclass(slots=True)
class InventoryStats:
    total_items: int
    total_value: float
    low_stock_count: int
    by_type: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)


def _check_non_negative(label: str, value: Optional[float]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{label} cannot be negative")


class InventoryCatalog:
    """Use-cases for maintaining stock records."""

    def __init__(
        self,
        repository: Optional[RecordStore[InventoryItem]] = None,
        *,
        notifier: Optional[NotificationHub] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.items: RecordStore[InventoryItem] = (
            repository if repository is not None else InMemoryRepository()
        )
        self.notifier = notifier or NotificationHub()
        self._clock = clock

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def find_by_id(self, item_id: str) -> Optional[InventoryItem]:
        try:
            return self.items.get(item_id)
        except RecordNotFoundError:
            return None

    def find_by_sku(self, sku: str) -> Optional[InventoryItem]:
        normalised = sku.strip().upper()
        for item in self.items:
            if item.sku == normalised:
                return item
        return None

    def get_item(self, item_id: str) -> InventoryItem:
        item = self.find_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Inventory item {item_id!r} not found")
        return item

    def get_item_by_sku(self, sku: str) -> InventoryItem:
        item = self.find_by_sku(sku)
        if item is None:
            raise NotFoundError(f"Inventory item with SKU {sku!r} not found")
        return item

    def list_items(self, filters: Optional[InventoryFilters] = None) -> List[InventoryItem]:
        filters = filters or InventoryFilters()
        items = [item for item in self.items if filters.matches(item)]
        items.sort(key=lambda item: item.updated_at, reverse=True)
        return items

    def low_stock_items(self) -> List[InventoryItem]:
        return self.list_items(InventoryFilters(low_stock=True))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def create_item(
        self,
        name: str,
        type: InventoryType,
        sku: str,
        *,
        quantity: float = 0.0,
        unit: str = "unit",
        unit_price: float = 0.0,
        description: str = "",
        status: InventoryStatus = InventoryStatus.ACTIVE,
        minimum_stock: float = 0.0,
        maximum_stock: float = 100.0,
        location: str = "",
        supplier: Optional[str] = None,
        estimated_manufacturing_time: Optional[float] = None,
        components: Optional[Sequence[str]] = None,
        can_manufacture: bool = False,
        bill_of_materials: Optional[Iterable[BillOfMaterial]] = None,
    ) -> InventoryItem:
        if not name or not name.strip():
            raise ValidationError("Item name is required")
        if not sku or not sku.strip():
            raise ValidationError("SKU is required")
        _check_non_negative("Quantity", quantity)
        _check_non_negative("Unit price", unit_price)
        _check_non_negative("Minimum stock", minimum_stock)
        _check_non_negative("Maximum stock", maximum_stock)
        _check_non_negative("Estimated manufacturing time", estimated_manufacturing_time)
        normalised_sku = sku.strip().upper()
        if self.find_by_sku(normalised_sku) is not None:
            raise ConflictError(f"Item with SKU {normalised_sku} already exists")
        component_ids = list(dict.fromkeys(components or ()))
        if InventoryType(type) == InventoryType.MODEL and component_ids:
            self._validate_components(component_ids)
        now = self._clock()
        item = InventoryItem(
            id=str(uuid4()),
            name=name.strip(),
            type=InventoryType(type),
            sku=normalised_sku,
            quantity=quantity,
            unit=unit or "unit",
            unit_price=unit_price,
            description=description,
            status=InventoryStatus(status),
            minimum_stock=minimum_stock,
            maximum_stock=maximum_stock,
            location=location,
            supplier=supplier,
            estimated_manufacturing_time=estimated_manufacturing_time,
            components=component_ids,
            can_manufacture=can_manufacture,
            bill_of_materials=list(bill_of_materials or ()),
            created_at=now,
            updated_at=now,
        )
        self.items.add(item.id, item)
        logger.info("Created %s %s (%s)", item.type.value, item.sku, item.id)
        self._notify(item)
        return item

    def update_item(self, item_id: str, **changes: object) -> InventoryItem:
        item = self.get_item(item_id)
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        missing = sorted(
            name
            for name, value in changes.items()
            if value is None and name not in NULLABLE_FIELDS
        )
        if missing:
            raise ValidationError(f"Fields cannot be null: {', '.join(missing)}")
        if "name" in changes and not str(changes["name"]).strip():
            raise ValidationError("Item name is required")
        for label in (
            "quantity",
            "unit_price",
            "minimum_stock",
            "maximum_stock",
            "estimated_manufacturing_time",
        ):
            _check_non_negative(label.replace("_", " ").capitalize(), changes.get(label))  # type: ignore[arg-type]
        try:
            new_type = InventoryType(changes.get("type", item.type))
            if "status" in changes:
                changes["status"] = InventoryStatus(changes["status"])
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if "sku" in changes:
            new_sku = str(changes["sku"]).strip().upper()
            if not new_sku:
                raise ValidationError("SKU is required")
            existing = self.find_by_sku(new_sku)
            if existing is not None and existing.id != item_id:
                raise ConflictError(f"Item with SKU {new_sku} already exists")
            changes["sku"] = new_sku
        new_components = changes.get("components")
        if new_type == InventoryType.MODEL and new_components:
            changes["components"] = list(dict.fromkeys(new_components))  # type: ignore[arg-type]
            self._validate_components(changes["components"])  # type: ignore[arg-type]
        if "type" in changes:
            changes["type"] = new_type
        if "name" in changes:
            changes["name"] = str(changes["name"]).strip()
        for name, value in changes.items():
            setattr(item, name, value)
        item.updated_at = self._clock()
        self.items.upsert(item.id, item)
        self._notify(item)
        return item

    def delete_item(self, item_id: str) -> None:
        self.get_item(item_id)
        self.items.remove(item_id)
        logger.info("Deleted inventory item %s", item_id)
        self.notifier.publish(INVENTORY_CHANGED, {"id": item_id, "deleted": True})

    def update_quantity(self, item_id: str, quantity: float) -> InventoryItem:
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")
        item = self.get_item(item_id)
        item.quantity = quantity
        item.updated_at = self._clock()
        self.items.upsert(item.id, item)
        self._notify(item)
        return item

    def bulk_update_quantities(
        self, updates: Iterable[Tuple[str, float]]
    ) -> List[InventoryItem]:
        pending = list(updates)
        for item_id, quantity in pending:
            if quantity < 0:
                raise ValidationError(f"Quantity cannot be negative for item {item_id}")
            self.get_item(item_id)
        return [self.update_quantity(item_id, quantity) for item_id, quantity in pending]

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def inventory_stats(self) -> InventoryStats:
        items = self.items.list()
        stats = InventoryStats(
            total_items=len(items),
            total_value=sum(item.total_value for item in items),
            low_stock_count=sum(1 for item in items if item.is_low_stock),
            by_type={kind.value: 0 for kind in InventoryType},
            by_status={status.value: 0 for status in InventoryStatus},
        )
        for item in items:
            stats.by_type[item.type.value] += 1
            stats.by_status[item.status.value] += 1
        return stats

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _validate_components(self, component_ids: Sequence[str]) -> None:
        for component_id in component_ids:
            component = self.find_by_id(component_id)
            if component is None:
                raise NotFoundError(f"Component with ID {component_id} not found")
            if component.type != InventoryType.COMPONENT:
                raise ValidationError(f"Item {component.name} is not a component")
            if component.status != InventoryStatus.ACTIVE:
                raise ValidationError(f"Component {component.name} is not active")

    def _notify(self, item: InventoryItem) -> None:
        self.notifier.publish(
            INVENTORY_CHANGED,
            {"id": item.id, "sku": item.sku, "quantity": item.quantity},
        )


__all__ = ["InventoryCatalog", "InventoryFilters", "InventoryStats"]
