"""Service layer for manufacturing orders and their production cards."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from .catalog import InventoryCatalog
from .domain import (
    OPEN_STATUSES,
    CardPriority,
    ComponentProgress,
    InventoryItem,
    InventoryType,
    LifecycleStatus,
    ManufacturingOrder,
    ProductionCard,
    ensure_utc,
    utcnow,
)
from .errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from .lifecycle import LifecycleEngine
from .notifications import (
    CARD_CHANGED,
    CARD_DELETED,
    ORDER_CHANGED,
    ORDER_DELETED,
    NotificationHub,
)
from .repository import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_HOURS_PER_UNIT = 1.0


def _priority_rank(card: ProductionCard) -> int:
    priority = card.priority or CardPriority.NORMAL
    return CardPriority(priority).rank


def _contains(needle: str, *values: Optional[str]) -> bool:
    lowered = needle.lower()
    return any(lowered in value.lower() for value in values if value)


# ----------------------------------------------------------------------
# Filters and reports
# ----------------------------------------------------------------------
@dataclass(slots=True)
class OrderFilters:
    """Optional criteria for listing manufacturing orders."""

    status: Optional[LifecycleStatus] = None
    client_name: Optional[str] = None
    model_id: Optional[str] = None
    overdue: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None

    def matches(self, order: ManufacturingOrder, now: datetime) -> bool:
        overdue = self.overdue or self.status == LifecycleStatus.OVERDUE
        if overdue and not order.is_overdue(now):
            return False
        if self.status is not None and self.status != LifecycleStatus.OVERDUE:
            if order.status != self.status:
                return False
        if self.client_name and not _contains(self.client_name, order.client_name):
            return False
        if self.model_id and order.model_id != self.model_id:
            return False
        if self.start_date is not None and order.created_date < ensure_utc(self.start_date):
            return False
        if self.end_date is not None and order.created_date > ensure_utc(self.end_date):
            return False
        if self.search and not _contains(
            self.search, order.client_name, order.model_name, order.model_sku, order.notes
        ):
            return False
        return True


@dataclass(slots=True)
class CardFilters:
    """Optional criteria for listing production cards."""

    status: Optional[LifecycleStatus] = None
    priority: Optional[CardPriority] = None
    order_id: Optional[str] = None
    model_id: Optional[str] = None
    overdue: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None

    def matches(self, card: ProductionCard, now: datetime) -> bool:
        overdue = self.overdue or self.status == LifecycleStatus.OVERDUE
        if overdue and not card.is_overdue(now):
            return False
        if self.status is not None and self.status != LifecycleStatus.OVERDUE:
            if card.status != self.status:
                return False
        if self.priority is not None and (card.priority or CardPriority.NORMAL) != self.priority:
            return False
        if self.order_id and card.order_id != self.order_id:
            return False
        if self.model_id and card.model_id != self.model_id:
            return False
        if self.start_date is not None and card.created_at < ensure_utc(self.start_date):
            return False
        if self.end_date is not None and card.created_at > ensure_utc(self.end_date):
            return False
        if self.search and not _contains(
            self.search, card.order_name, card.model_name, card.model_sku
        ):
            return False
        return True


@dataclass(slots=True)
class OrderStats:
    total_orders: int
    total_quantity: int
    overdue_count: int
    by_status: Dict[str, int] = field(default_factory=dict)
    quantity_by_status: Dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class CardStats:
    total_cards: int
    overdue: int
    by_status: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class CardRequest:
    """Everything needed to materialise one production card."""

    order_id: str
    order_name: str
    card_number: int
    total_cards: int
    model_id: str
    model_name: str
    model_sku: str
    due_date: datetime
    components: Sequence[ComponentProgress]
    estimated_hours: float
    notes: Optional[str] = None
    priority: CardPriority = CardPriority.NORMAL


@dataclass(slots=True)
class OrderCreation:
    """Result of creating an order: the order plus one card per unit."""

    order: ManufacturingOrder
    cards: List[ProductionCard]


_STORED_STATUSES = [status for status in LifecycleStatus if status != LifecycleStatus.OVERDUE]


# ----------------------------------------------------------------------
# Production cards
# ----------------------------------------------------------------------
class CardService(LifecycleEngine[ProductionCard]):
    """Per-unit production cards; completing one adds a single unit of stock."""

    label = "card"
    changed_topic = CARD_CHANGED
    deleted_topic = CARD_DELETED

    def stock_increment(self, record: ProductionCard) -> int:
        return 1

    def create_card(self, request: CardRequest) -> ProductionCard:
        if request.card_number < 1 or request.card_number > request.total_cards:
            raise ValidationError("Card number must lie within 1..total cards")
        duplicate = self.records.find(
            lambda card: card.order_id == request.order_id
            and card.card_number == request.card_number
        )
        if duplicate:
            raise ConflictError(
                f"Card {request.card_number} already exists for order {request.order_id}"
            )
        now = self.now()
        card = ProductionCard(
            id=str(uuid4()),
            order_id=request.order_id,
            order_name=request.order_name,
            card_number=request.card_number,
            total_cards=request.total_cards,
            model_id=request.model_id,
            model_name=request.model_name,
            model_sku=request.model_sku,
            quantity=1,
            due_date=request.due_date,
            priority=CardPriority(request.priority),
            components=copy.deepcopy(list(request.components)),
            notes=request.notes,
            estimated_hours=request.estimated_hours,
            created_at=now,
            updated_at=now,
        )
        self.records.add(card.id, card)
        self.notifier.publish(
            self.changed_topic, {"id": card.id, "status": card.status.value, "event": "created"}
        )
        return card

    def create_cards(self, requests: Sequence[CardRequest]) -> List[ProductionCard]:
        return [self.create_card(request) for request in requests]

    def list_cards(self, filters: Optional[CardFilters] = None) -> List[ProductionCard]:
        """Cards matching ``filters``, most urgent priority first, then soonest due."""

        filters = filters or CardFilters()
        now = self.now()
        cards = [card for card in self.records if filters.matches(card, now)]
        cards.sort(key=lambda card: (_priority_rank(card), card.due_date))
        return cards

    def cards_by_order(self, order_id: str) -> List[ProductionCard]:
        cards = self.records.find(lambda card: card.order_id == order_id)
        cards.sort(key=lambda card: card.card_number)
        return cards

    def _by_due_date(self, predicate: Callable[[ProductionCard], bool]) -> List[ProductionCard]:
        cards = self.records.find(predicate)
        cards.sort(key=lambda card: card.due_date)
        return cards

    def cards_by_status(self, status: LifecycleStatus) -> List[ProductionCard]:
        if status == LifecycleStatus.OVERDUE:
            return self.overdue_cards()
        return self._by_due_date(lambda card: card.status == status)

    def cards_by_priority(self, priority: CardPriority) -> List[ProductionCard]:
        return self._by_due_date(
            lambda card: (card.priority or CardPriority.NORMAL) == priority
        )

    def active_cards(self) -> List[ProductionCard]:
        return self._by_due_date(lambda card: card.status in OPEN_STATUSES)

    def overdue_cards(self) -> List[ProductionCard]:
        now = self.now()
        return self._by_due_date(lambda card: card.is_overdue(now))

    def update_card(
        self,
        card_id: str,
        *,
        notes: Optional[str] = None,
        due_date: Optional[datetime] = None,
        estimated_hours: Optional[float] = None,
    ) -> ProductionCard:
        card = self.get(card_id)
        if card.status.is_terminal:
            raise InvalidStateError(f"Cannot update a {card.status.value} card")
        if estimated_hours is not None and estimated_hours < 0:
            raise ValidationError("Estimated hours cannot be negative")
        if due_date is not None:
            due_date = ensure_utc(due_date)
            if due_date <= self.now():
                raise ValidationError("Due date must be in the future")
        if notes is not None:
            card.notes = notes.strip()
        if due_date is not None:
            card.due_date = due_date
        if estimated_hours is not None:
            card.estimated_hours = estimated_hours
        return self._save(card, "updated")

    def set_priority(self, card_id: str, priority: CardPriority) -> ProductionCard:
        try:
            priority = CardPriority(priority)
        except ValueError as exc:
            raise ValidationError(f"Unknown priority {priority!r}") from exc
        card = self.get(card_id)
        if card.status.is_terminal:
            raise InvalidStateError(
                "Cannot change the priority of a completed or cancelled card"
            )
        card.priority = priority
        return self._save(card, "priority-changed")

    def delete_card(self, card_id: str) -> None:
        self.get(card_id)
        self.records.remove(card_id)
        self.notifier.publish(self.deleted_topic, {"id": card_id})

    def delete_cards_by_order(self, order_id: str) -> int:
        cards = self.cards_by_order(order_id)
        for card in cards:
            self.delete_card(card.id)
        return len(cards)

    def card_stats(self) -> CardStats:
        now = self.now()
        cards = self.records.list()
        stats = CardStats(
            total_cards=len(cards),
            overdue=sum(1 for card in cards if card.is_overdue(now)),
            by_status={status.value: 0 for status in _STORED_STATUSES},
            by_priority={priority.value: 0 for priority in CardPriority},
        )
        for card in cards:
            stats.by_status[card.status.value] += 1
            stats.by_priority[CardPriority(card.priority or CardPriority.NORMAL).value] += 1
        return stats


# ----------------------------------------------------------------------
# Manufacturing orders
# ----------------------------------------------------------------------
class OrderService(LifecycleEngine[ManufacturingOrder]):
    """Bulk orders; completing one adds the whole order quantity to stock."""

    label = "order"
    changed_topic = ORDER_CHANGED
    deleted_topic = ORDER_DELETED

    def __init__(
        self,
        repository: Optional[RecordStore[ManufacturingOrder]],
        catalog: InventoryCatalog,
        cards: CardService,
        *,
        notifier: Optional[NotificationHub] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(repository, catalog, notifier=notifier, clock=clock)
        self.cards = cards

    def stock_increment(self, record: ManufacturingOrder) -> int:
        return record.quantity

    def _resolve_components(
        self, model: InventoryItem, component_ids: Optional[Sequence[str]]
    ) -> List[ComponentProgress]:
        source = list(component_ids) if component_ids else list(model.components)
        components: List[ComponentProgress] = []
        for component_id in source:
            component = self.catalog.find_by_id(component_id)
            if component is None:
                logger.info("Skipping unknown component %s for model %s", component_id, model.sku)
                continue
            components.append(
                ComponentProgress(
                    component_id=component.id,
                    component_name=component.name,
                    component_sku=component.sku,
                )
            )
        return components

    def create_order(
        self,
        model_id: str,
        quantity: int,
        client_name: str,
        due_date: datetime,
        *,
        notes: Optional[str] = None,
        component_ids: Optional[Sequence[str]] = None,
    ) -> OrderCreation:
        if not model_id:
            raise ValidationError("A model is required")
        if not client_name or not client_name.strip():
            raise ValidationError("Client name is required")
        if isinstance(quantity, bool) or int(quantity) != quantity or quantity < 1:
            raise ValidationError("Quantity must be a whole number greater than 0")
        now = self.now()
        due_date = ensure_utc(due_date)
        if due_date <= now:
            raise ValidationError("Due date must be in the future")
        model = self.catalog.find_by_id(model_id)
        if model is None:
            raise NotFoundError(f"Model {model_id!r} not found")
        if model.type != InventoryType.MODEL:
            raise InvalidStateError("Manufacturing orders can only be created for models")
        if not model.can_manufacture:
            raise InvalidStateError(f"Model {model.sku} cannot be manufactured")

        quantity = int(quantity)
        client_name = client_name.strip()
        notes = notes.strip() if notes else notes
        hours_per_unit = model.estimated_manufacturing_time or DEFAULT_HOURS_PER_UNIT
        components = self._resolve_components(model, component_ids)
        order = ManufacturingOrder(
            id=str(uuid4()),
            model_id=model.id,
            model_name=model.name,
            model_sku=model.sku,
            quantity=quantity,
            client_name=client_name,
            due_date=due_date,
            estimated_hours=hours_per_unit * quantity,
            components=components,
            notes=notes,
            created_date=now,
            created_at=now,
            updated_at=now,
        )
        self.records.add(order.id, order)
        logger.info("Created order %s for %d x %s", order.id, quantity, model.sku)
        self.notifier.publish(
            self.changed_topic, {"id": order.id, "status": order.status.value, "event": "created"}
        )

        cards = self.cards.create_cards(
            [
                CardRequest(
                    order_id=order.id,
                    order_name=client_name,
                    card_number=number,
                    total_cards=quantity,
                    model_id=model.id,
                    model_name=model.name,
                    model_sku=model.sku,
                    due_date=due_date,
                    components=components,
                    estimated_hours=hours_per_unit,
                    notes=notes,
                )
                for number in range(1, quantity + 1)
            ]
        )
        return OrderCreation(order=order, cards=cards)

    def list_orders(self, filters: Optional[OrderFilters] = None) -> List[ManufacturingOrder]:
        filters = filters or OrderFilters()
        now = self.now()
        orders = [order for order in self.records if filters.matches(order, now)]
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return orders

    def active_orders(self) -> List[ManufacturingOrder]:
        """Pending, running and paused orders, soonest due first."""

        orders = self.records.find(lambda order: order.status in OPEN_STATUSES)
        orders.sort(key=lambda order: order.due_date)
        return orders

    production_queue = active_orders

    def orders_by_status(self, status: LifecycleStatus) -> List[ManufacturingOrder]:
        if status == LifecycleStatus.OVERDUE:
            return self.overdue_orders()
        orders = self.records.find(lambda order: order.status == status)
        orders.sort(key=lambda order: order.due_date)
        return orders

    def overdue_orders(self) -> List[ManufacturingOrder]:
        now = self.now()
        orders = self.records.find(lambda order: order.is_overdue(now))
        orders.sort(key=lambda order: order.due_date)
        return orders

    def update_order(
        self,
        order_id: str,
        *,
        client_name: Optional[str] = None,
        due_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        quantity: Optional[int] = None,
    ) -> ManufacturingOrder:
        order = self.get(order_id)
        if order.status.is_terminal:
            raise InvalidStateError(f"Cannot update a {order.status.value} order")
        if client_name is not None and not client_name.strip():
            raise ValidationError("Client name is required")
        if quantity is not None and (int(quantity) != quantity or quantity < 1):
            raise ValidationError("Quantity must be a whole number greater than 0")
        if due_date is not None:
            due_date = ensure_utc(due_date)
            if due_date <= self.now():
                raise ValidationError("Due date must be in the future")
        if client_name is not None:
            order.client_name = client_name.strip()
        if due_date is not None:
            order.due_date = due_date
        if notes is not None:
            order.notes = notes.strip()
        if quantity is not None:
            order.quantity = int(quantity)
        return self._save(order, "updated")

    def delete_order(self, order_id: str) -> int:
        """Delete an order and its cards; returns how many cards went with it."""

        order = self.get(order_id)
        if order.status == LifecycleStatus.IN_PROGRESS:
            raise InvalidStateError("Cannot delete an order that is in progress")
        removed = self.cards.delete_cards_by_order(order_id)
        self.records.remove(order_id)
        logger.info("Deleted order %s with %d cards", order_id, removed)
        self.notifier.publish(self.deleted_topic, {"id": order_id, "cards": removed})
        return removed

    def order_stats(self) -> OrderStats:
        now = self.now()
        orders = self.records.list()
        stats = OrderStats(
            total_orders=len(orders),
            total_quantity=sum(order.quantity for order in orders),
            overdue_count=sum(1 for order in orders if order.is_overdue(now)),
            by_status={status.value: 0 for status in _STORED_STATUSES},
            quantity_by_status={status.value: 0 for status in _STORED_STATUSES},
        )
        for order in orders:
            stats.by_status[order.status.value] += 1
            stats.quantity_by_status[order.status.value] += order.quantity
        return stats


# ----------------------------------------------------------------------
# Facade
# ----------------------------------------------------------------------
class ProductionService:
    """Facade that wires the catalog, order and card services together."""

    def __init__(
        self,
        inventory_repo: Optional[RecordStore[InventoryItem]] = None,
        order_repo: Optional[RecordStore[ManufacturingOrder]] = None,
        card_repo: Optional[RecordStore[ProductionCard]] = None,
        *,
        notifier: Optional[NotificationHub] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.notifier = notifier or NotificationHub()
        self.catalog = InventoryCatalog(inventory_repo, notifier=self.notifier, clock=clock)
        self.cards = CardService(card_repo, self.catalog, notifier=self.notifier, clock=clock)
        self.orders = OrderService(
            order_repo, self.catalog, self.cards, notifier=self.notifier, clock=clock
        )


__all__ = [
    "ProductionService",
    "OrderService",
    "CardService",
    "OrderFilters",
    "CardFilters",
    "OrderStats",
    "CardStats",
    "CardRequest",
    "OrderCreation",
]
