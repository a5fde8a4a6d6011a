"""Request bodies and response shaping for the HTTP interface."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..domain import (
    BillOfMaterial,
    CardPriority,
    InventoryItem,
    InventoryStatus,
    InventoryType,
    ManufacturingOrder,
    ProductionCard,
)
from ..lifecycle import MaterialAdjustment


class BillOfMaterialIn(BaseModel):
    material_id: str
    material_name: str = ""
    material_sku: str = ""
    required_quantity: float = Field(ge=0)
    unit: str = "unit"
    is_optional: bool = False
    notes: str = ""

    def to_domain(self) -> BillOfMaterial:
        return BillOfMaterial(**self.model_dump())


class InventoryItemCreate(BaseModel):
    name: str
    type: InventoryType
    sku: str
    quantity: float = 0.0
    unit: str = "unit"
    unit_price: float = 0.0
    description: str = ""
    status: InventoryStatus = InventoryStatus.ACTIVE
    minimum_stock: float = 0.0
    maximum_stock: float = 100.0
    location: str = ""
    supplier: Optional[str] = None
    estimated_manufacturing_time: Optional[float] = None
    components: List[str] = Field(default_factory=list)
    can_manufacture: bool = False
    bill_of_materials: List[BillOfMaterialIn] = Field(default_factory=list)


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[InventoryType] = None
    sku: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    unit_price: Optional[float] = None
    description: Optional[str] = None
    status: Optional[InventoryStatus] = None
    minimum_stock: Optional[float] = None
    maximum_stock: Optional[float] = None
    location: Optional[str] = None
    supplier: Optional[str] = None
    estimated_manufacturing_time: Optional[float] = None
    components: Optional[List[str]] = None
    can_manufacture: Optional[bool] = None
    bill_of_materials: Optional[List[BillOfMaterialIn]] = None


class QuantityUpdate(BaseModel):
    quantity: float


class BulkQuantityEntry(BaseModel):
    id: str
    quantity: float


class BulkQuantityUpdate(BaseModel):
    updates: List[BulkQuantityEntry]


class OrderCreate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    quantity: int
    client_name: str
    due_date: datetime
    notes: Optional[str] = None
    component_ids: List[str] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    client_name: Optional[str] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    quantity: Optional[int] = None


class CardUpdate(BaseModel):
    notes: Optional[str] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None


class PriorityUpdate(BaseModel):
    priority: CardPriority


class MaterialAdjustmentIn(BaseModel):
    material_id: str
    actual_quantity: float
    notes: Optional[str] = None
    adjusted_by: Optional[str] = None

    def to_domain(self) -> MaterialAdjustment:
        return MaterialAdjustment(**self.model_dump())


class MaterialsReplace(BaseModel):
    materials: List[MaterialAdjustmentIn]


class MaterialAdd(BaseModel):
    material_id: str
    planned_quantity: float
    actual_quantity: float = 0.0


def item_payload(item: InventoryItem) -> Dict[str, Any]:
    payload = asdict(item)
    payload["is_low_stock"] = item.is_low_stock
    payload["total_value"] = item.total_value
    return payload


def order_payload(order: ManufacturingOrder, now: datetime) -> Dict[str, Any]:
    payload = asdict(order)
    payload["progress"] = order.progress
    payload["is_overdue"] = order.is_overdue(now)
    payload["effective_status"] = order.effective_status(now).value
    payload["remaining_hours"] = order.remaining_hours(now)
    return payload


def card_payload(card: ProductionCard, now: datetime) -> Dict[str, Any]:
    payload = asdict(card)
    payload["progress"] = card.progress
    payload["label"] = card.label
    payload["is_overdue"] = card.is_overdue(now)
    return payload


__all__ = [
    "BillOfMaterialIn",
    "InventoryItemCreate",
    "InventoryItemUpdate",
    "QuantityUpdate",
    "BulkQuantityUpdate",
    "OrderCreate",
    "OrderUpdate",
    "CardUpdate",
    "PriorityUpdate",
    "MaterialAdjustmentIn",
    "MaterialsReplace",
    "MaterialAdd",
    "item_payload",
    "order_payload",
    "card_payload",
]
