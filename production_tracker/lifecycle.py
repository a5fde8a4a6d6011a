"""Shared lifecycle engine for manufacturing orders and production cards.

Both record types move through the same states::

    pending --start--> in_progress <--pause/resume--> paused
    in_progress | paused --complete--> completed
    pending | in_progress | paused --cancel--> cancelled

``completed`` and ``cancelled`` are terminal. Every operation loads the
record, runs all of its guards and only then mutates and writes it back, so a
rejected call leaves the stored record untouched.

Subclasses provide the record label, the notification topics and how much
stock a completion adds to the manufactured model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Generic, Iterable, List, Optional, TypeVar, Union

from .catalog import InventoryCatalog
from .domain import (
    ComponentProgress,
    LifecycleStatus,
    ManufacturingOrder,
    MaterialUsage,
    ProductionCard,
    TimeTracker,
    utcnow,
)
from .errors import InvalidStateError, NotFoundError
from .notifications import NotificationHub
from .repository import InMemoryRepository, RecordNotFoundError, RecordStore

logger = logging.getLogger(__name__)

E = TypeVar("E", ManufacturingOrder, ProductionCard)

DEFAULT_MATERIAL_UNIT = "unit"


@dataclass(slots=True)
class MaterialAdjustment:
    """Recorded consumption of one material, as submitted from the floor."""

    material_id: str
    actual_quantity: float
    notes: Optional[str] = None
    adjusted_by: Optional[str] = None


class LifecycleEngine(Generic[E]):
    """Transition guards, time tracking and material ledger for one record type."""

    label = "record"
    changed_topic = "record-changed"
    deleted_topic = "record-deleted"

    def __init__(
        self,
        repository: Optional[RecordStore[E]],
        catalog: InventoryCatalog,
        *,
        notifier: Optional[NotificationHub] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.records: RecordStore[E] = (
            repository if repository is not None else InMemoryRepository()
        )
        self.catalog = catalog
        self.notifier = notifier or catalog.notifier
        self._clock = clock

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    def stock_increment(self, record: E) -> Union[int, float]:
        """Units added to the model's stock when ``record`` is completed."""

        raise NotImplementedError

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def now(self) -> datetime:
        return self._clock()

    def get(self, record_id: str) -> E:
        try:
            return self.records.get(record_id)
        except RecordNotFoundError as exc:
            raise NotFoundError(f"{self.label.capitalize()} {record_id!r} not found") from exc

    def _component(self, record: E, component_id: str) -> ComponentProgress:
        for component in record.components:
            if component.component_id == component_id:
                return component
        raise NotFoundError(f"Component {component_id!r} not found in this {self.label}")

    def _require_active(self, record: E, action: str) -> None:
        if not record.status.is_active:
            raise InvalidStateError(
                f"Only in-progress or paused {self.label}s can {action}"
            )

    def _save(self, record: E, event: str) -> E:
        record.updated_at = self.now()
        self.records.upsert(record.id, record)
        self.notifier.publish(
            self.changed_topic,
            {"id": record.id, "status": record.status.value, "event": event},
        )
        return record

    # ------------------------------------------------------------------
    # Record-level transitions
    # ------------------------------------------------------------------
    def start(self, record_id: str) -> E:
        record = self.get(record_id)
        if record.status != LifecycleStatus.PENDING:
            raise InvalidStateError(f"Only pending {self.label}s can be started")
        now = self.now()
        record.status = LifecycleStatus.IN_PROGRESS
        record.started_at = now
        record.time_tracker = TimeTracker.started(now)
        logger.info("Started %s %s", self.label, record.id)
        return self._save(record, "started")

    def pause(self, record_id: str) -> E:
        record = self.get(record_id)
        if record.status != LifecycleStatus.IN_PROGRESS or record.time_tracker is None:
            raise InvalidStateError(f"Only in-progress {self.label}s can be paused")
        if record.time_tracker.is_paused:
            raise InvalidStateError(f"Production of this {self.label} is already paused")
        record.status = LifecycleStatus.PAUSED
        record.time_tracker.pause(self.now())
        logger.info("Paused %s %s", self.label, record.id)
        return self._save(record, "paused")

    def resume(self, record_id: str) -> E:
        record = self.get(record_id)
        tracker = record.time_tracker
        if record.status != LifecycleStatus.PAUSED or tracker is None:
            raise InvalidStateError(f"Only paused {self.label}s can be resumed")
        if not tracker.is_paused or tracker.pause_start_time is None:
            raise InvalidStateError(f"Production of this {self.label} is not paused")
        paused_minutes = tracker.resume(self.now())
        record.status = LifecycleStatus.IN_PROGRESS
        logger.info("Resumed %s %s after %d paused minutes", self.label, record.id, paused_minutes)
        return self._save(record, "resumed")

    def elapsed_minutes(self, record_id: str) -> int:
        record = self.get(record_id)
        if record.time_tracker is None:
            return 0
        return record.time_tracker.elapsed_minutes(self.now())

    def complete_component(self, record_id: str, component_id: str) -> E:
        record = self.get(record_id)
        self._require_active(record, "have components completed")
        component = self._component(record, component_id)
        if component.is_completed:
            raise InvalidStateError("This component is already completed")
        component.is_completed = True
        component.quantity_completed = component.quantity_required
        component.completed_at = self.now()
        return self._save(record, "component-completed")

    def complete(self, record_id: str) -> E:
        record = self.get(record_id)
        self._require_active(record, "be completed")
        if not all(component.is_completed for component in record.components):
            raise InvalidStateError(
                f"Cannot complete {self.label}: some components are not finished"
            )
        now = self.now()
        record.status = LifecycleStatus.COMPLETED
        record.completed_at = now
        if record.time_tracker is not None:
            record.time_tracker.stop(now)
        self._save(record, "completed")
        logger.info("Completed %s %s", self.label, record.id)
        self._sync_stock(record)
        return record

    def cancel(self, record_id: str) -> E:
        record = self.get(record_id)
        if record.status == LifecycleStatus.COMPLETED:
            raise InvalidStateError(f"Cannot cancel a completed {self.label}")
        if record.status == LifecycleStatus.CANCELLED:
            raise InvalidStateError(f"This {self.label} is already cancelled")
        record.status = LifecycleStatus.CANCELLED
        if record.time_tracker is not None:
            record.time_tracker.stop(self.now())
        logger.info("Cancelled %s %s", self.label, record.id)
        return self._save(record, "cancelled")

    def _sync_stock(self, record: E) -> None:
        """Add the finished units to the model's stock.

        Failures are logged and never surface to the caller; the completed
        record stays completed.
        """

        increment = self.stock_increment(record)
        try:
            model = self.catalog.find_by_id(record.model_id)
            if model is None:
                logger.warning(
                    "Model %s of %s %s no longer exists; stock not updated",
                    record.model_id,
                    self.label,
                    record.id,
                )
                return
            self.catalog.update_quantity(model.id, model.quantity + increment)
        except Exception:  # noqa: BLE001 - stock sync is best effort
            logger.exception(
                "Failed to add %s units of model %s after completing %s %s",
                increment,
                record.model_id,
                self.label,
                record.id,
            )

    # ------------------------------------------------------------------
    # Component timers
    # ------------------------------------------------------------------
    def start_component_timer(self, record_id: str, component_id: str) -> E:
        record = self.get(record_id)
        self._require_active(record, "time components")
        component = self._component(record, component_id)
        if component.is_completed:
            raise InvalidStateError("This component is already completed")
        if component.time_tracker is not None and not component.time_tracker.is_paused:
            raise InvalidStateError("This component already has a running timer")
        now = self.now()
        component.time_tracker = TimeTracker.started(now)
        component.started_at = now
        return self._save(record, "component-timer-started")

    def pause_component_timer(self, record_id: str, component_id: str) -> E:
        record = self.get(record_id)
        self._require_active(record, "time components")
        component = self._component(record, component_id)
        if component.time_tracker is None:
            raise InvalidStateError("This component has no timer")
        if component.time_tracker.is_paused:
            raise InvalidStateError("The component timer is already paused")
        component.time_tracker.pause(self.now())
        return self._save(record, "component-timer-paused")

    def resume_component_timer(self, record_id: str, component_id: str) -> E:
        record = self.get(record_id)
        self._require_active(record, "time components")
        component = self._component(record, component_id)
        tracker = component.time_tracker
        if tracker is None:
            raise InvalidStateError("This component has no timer")
        if not tracker.is_paused or tracker.pause_start_time is None:
            raise InvalidStateError("The component timer is not paused")
        tracker.resume(self.now())
        return self._save(record, "component-timer-resumed")

    def component_elapsed_minutes(self, record_id: str, component_id: str) -> int:
        record = self.get(record_id)
        component = self._component(record, component_id)
        if component.time_tracker is None:
            return 0
        return component.time_tracker.elapsed_minutes(self.now())

    # ------------------------------------------------------------------
    # Material usage ledger
    # ------------------------------------------------------------------
    def replace_materials(
        self,
        record_id: str,
        component_id: str,
        adjustments: Iterable[MaterialAdjustment],
    ) -> E:
        """Replace a component's material list with the submitted usage.

        Names, SKUs and units come from the catalog at write time. Entries
        whose material no longer exists are dropped. Planned quantities of
        materials already on the list are kept; new ones plan for 1.
        """

        record = self.get(record_id)
        self._require_active(record, "adjust materials")
        component = self._component(record, component_id)
        if component.is_completed:
            raise InvalidStateError("Cannot adjust materials of a completed component")
        now = self.now()
        planned = {
            usage.material_id: usage.planned_quantity for usage in component.material_usage
        }
        usage_list: List[MaterialUsage] = []
        for adjustment in adjustments:
            material = self.catalog.find_by_id(adjustment.material_id)
            if material is None:
                logger.info(
                    "Dropping unknown material %s from %s %s",
                    adjustment.material_id,
                    self.label,
                    record.id,
                )
                continue
            usage_list.append(
                MaterialUsage(
                    material_id=material.id,
                    material_name=material.name,
                    material_sku=material.sku,
                    planned_quantity=planned.get(material.id) or 1,
                    actual_quantity=adjustment.actual_quantity,
                    unit=material.unit or DEFAULT_MATERIAL_UNIT,
                    notes=adjustment.notes,
                    adjusted_by=adjustment.adjusted_by,
                    adjusted_at=now,
                )
            )
        component.material_usage = usage_list
        return self._save(record, "materials-updated")

    def add_material(
        self,
        record_id: str,
        component_id: str,
        material_id: str,
        planned_quantity: float,
        actual_quantity: float = 0.0,
    ) -> E:
        record = self.get(record_id)
        self._require_active(record, "adjust materials")
        component = self._component(record, component_id)
        if component.is_completed:
            raise InvalidStateError("Cannot adjust materials of a completed component")
        material = self.catalog.find_by_id(material_id)
        if material is None:
            raise NotFoundError(f"Material {material_id!r} not found in inventory")
        component.material_usage.append(
            MaterialUsage(
                material_id=material.id,
                material_name=material.name,
                material_sku=material.sku,
                planned_quantity=planned_quantity,
                actual_quantity=actual_quantity,
                unit=material.unit or DEFAULT_MATERIAL_UNIT,
            )
        )
        return self._save(record, "material-added")


__all__ = ["LifecycleEngine", "MaterialAdjustment"]
