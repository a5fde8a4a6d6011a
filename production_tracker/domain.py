"""Core data structures for inventory and manufacturing order tracking."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .errors import InvalidStateError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_minutes(seconds: float) -> int:
    """Round a duration in seconds to whole minutes, halves rounding up."""

    return math.floor(seconds / 60.0 + 0.5)


class InventoryType(str, Enum):
    """Kinds of stock records held in the catalog."""

    MODEL = "model"
    COMPONENT = "component"
    MATERIAL = "material"


class InventoryStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"


class LifecycleStatus(str, Enum):
    """Lifecycle stages shared by manufacturing orders and production cards."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    # Derived for reporting only; never stored on a record.
    OVERDUE = "overdue"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


TERMINAL_STATUSES = frozenset({LifecycleStatus.COMPLETED, LifecycleStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({LifecycleStatus.IN_PROGRESS, LifecycleStatus.PAUSED})
OPEN_STATUSES = frozenset(
    {LifecycleStatus.PENDING, LifecycleStatus.IN_PROGRESS, LifecycleStatus.PAUSED}
)


class CardPriority(str, Enum):
    """Priority levels for production cards."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Sort rank, lower values come first."""

        return {
            CardPriority.URGENT: 1,
            CardPriority.HIGH: 2,
            CardPriority.NORMAL: 3,
            CardPriority.LOW: 4,
        }[self]


@dataclass(slots=True)
class BillOfMaterial:
    """A material required to build one unit of a component."""

    material_id: str
    material_name: str
    material_sku: str
    required_quantity: float
    unit: str
    is_optional: bool = False
    notes: str = ""


@dataclass(slots=True)
class InventoryItem:
    """Stock record for a model, component or material."""

    id: str
    name: str
    type: InventoryType
    sku: str
    quantity: float
    unit: str
    unit_price: float
    description: str = ""
    status: InventoryStatus = InventoryStatus.ACTIVE
    minimum_stock: float = 0.0
    maximum_stock: float = 100.0
    location: str = ""
    supplier: Optional[str] = None
    estimated_manufacturing_time: Optional[float] = None
    components: List[str] = field(default_factory=list)
    can_manufacture: bool = False
    bill_of_materials: List[BillOfMaterial] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.minimum_stock

    @property
    def is_over_stock(self) -> bool:
        return self.quantity >= self.maximum_stock

    @property
    def total_value(self) -> float:
        return self.quantity * self.unit_price


@dataclass(slots=True)
class TimeTracker:
    """Start/pause/resume accounting for active production time.

    ``pause_start_time`` is set exactly when ``is_paused`` is true. Elapsed
    time is measured up to ``end_time`` once the owner reached a terminal
    state, otherwise up to the supplied ``now``.
    """

    start_time: datetime
    end_time: Optional[datetime] = None
    total_time_minutes: int = 0
    is_paused: bool = False
    pause_start_time: Optional[datetime] = None
    total_pause_minutes: int = 0

    @classmethod
    def started(cls, now: datetime) -> "TimeTracker":
        return cls(start_time=now)

    def pause(self, now: datetime) -> None:
        if self.is_paused:
            raise InvalidStateError("Timer is already paused")
        self.is_paused = True
        self.pause_start_time = now

    def resume(self, now: datetime) -> int:
        """Fold the running pause into the total and return its minutes."""

        if not self.is_paused or self.pause_start_time is None:
            raise InvalidStateError("Timer is not paused")
        paused_minutes = round_minutes((now - self.pause_start_time).total_seconds())
        self.total_pause_minutes += paused_minutes
        self.is_paused = False
        self.pause_start_time = None
        return paused_minutes

    def stop(self, now: datetime) -> None:
        if self.end_time is None:
            self.end_time = now

    def elapsed_minutes(self, now: datetime) -> int:
        reference = self.end_time or now
        seconds = (reference - self.start_time).total_seconds()
        seconds -= self.total_pause_minutes * 60
        if self.is_paused and self.pause_start_time is not None:
            seconds -= (reference - self.pause_start_time).total_seconds()
        return max(0, round_minutes(seconds))


@dataclass(slots=True)
class MaterialUsage:
    """Planned versus actual consumption of a material for one component."""

    material_id: str
    material_name: str
    material_sku: str
    planned_quantity: float
    actual_quantity: float
    unit: str
    notes: Optional[str] = None
    adjusted_by: Optional[str] = None
    adjusted_at: Optional[datetime] = None


@dataclass(slots=True)
class ComponentProgress:
    """Completion state of one component within an order or a card.

    Name and SKU are snapshots taken when the order was created.
    """

    component_id: str
    component_name: str
    component_sku: str
    quantity_required: int = 1
    quantity_completed: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    time_tracker: Optional[TimeTracker] = None
    material_usage: List[MaterialUsage] = field(default_factory=list)


def _progress(components: List[ComponentProgress]) -> int:
    if not components:
        return 0
    done = sum(1 for component in components if component.is_completed)
    return int(done * 100 / len(components) + 0.5)


@dataclass(slots=True)
class ManufacturingOrder:
    """A request to build ``quantity`` units of a model for a client."""

    id: str
    model_id: str
    model_name: str
    model_sku: str
    quantity: int
    client_name: str
    due_date: datetime
    estimated_hours: float
    status: LifecycleStatus = LifecycleStatus.PENDING
    components: List[ComponentProgress] = field(default_factory=list)
    notes: Optional[str] = None
    created_date: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_tracker: Optional[TimeTracker] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def progress(self) -> int:
        return _progress(self.components)

    def is_overdue(self, now: datetime) -> bool:
        return self.due_date < now and not self.status.is_terminal

    def effective_status(self, now: datetime) -> LifecycleStatus:
        return LifecycleStatus.OVERDUE if self.is_overdue(now) else self.status

    def remaining_hours(self, now: datetime) -> int:
        if self.status == LifecycleStatus.COMPLETED:
            return 0
        seconds = (self.due_date - now).total_seconds()
        return max(0, math.ceil(seconds / 3600))


@dataclass(slots=True)
class ProductionCard:
    """Unit of work for building a single instance of an order's model."""

    id: str
    order_id: str
    order_name: str
    card_number: int
    total_cards: int
    model_id: str
    model_name: str
    model_sku: str
    due_date: datetime
    estimated_hours: float
    quantity: int = 1
    status: LifecycleStatus = LifecycleStatus.PENDING
    priority: CardPriority = CardPriority.NORMAL
    components: List[ComponentProgress] = field(default_factory=list)
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_tracker: Optional[TimeTracker] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def progress(self) -> int:
        return _progress(self.components)

    @property
    def label(self) -> str:
        return f"{self.order_name} ({self.card_number}/{self.total_cards})"

    def is_overdue(self, now: datetime) -> bool:
        return self.due_date < now and not self.status.is_terminal


__all__ = [
    "InventoryType",
    "InventoryStatus",
    "LifecycleStatus",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    "OPEN_STATUSES",
    "CardPriority",
    "BillOfMaterial",
    "InventoryItem",
    "TimeTracker",
    "MaterialUsage",
    "ComponentProgress",
    "ManufacturingOrder",
    "ProductionCard",
    "utcnow",
    "ensure_utc",
    "round_minutes",
]
