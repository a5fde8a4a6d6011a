"""Shared fixtures: a controllable clock, a seeded service and a test app."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from production_tracker.config import Settings
from production_tracker.domain import InventoryItem, InventoryType
from production_tracker.notifications import NotificationHub
from production_tracker.services import ProductionService
from production_tracker.web.app import create_app

START = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)


class RecordingHub(NotificationHub):
    """Hub that keeps every published event for assertions."""

    def __init__(self) -> None:
        super().__init__()
        self.events = []

    def publish(self, topic, payload) -> None:
        self.events.append((topic, payload))
        super().publish(topic, payload)

    def topics(self):
        return [topic for topic, _ in self.events]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, minutes: float = 0, seconds: float = 0, hours: float = 0) -> datetime:
        self.current += timedelta(minutes=minutes, seconds=seconds, hours=hours)
        return self.current


@dataclass
class Catalog:
    steel: InventoryItem
    paint: InventoryItem
    frame: InventoryItem
    panel: InventoryItem
    model: InventoryItem


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def service(clock: FakeClock, hub: RecordingHub) -> ProductionService:
    return ProductionService(notifier=hub, clock=clock)


@pytest.fixture
def catalog(service: ProductionService) -> Catalog:
    items = service.catalog
    steel = items.create_item(
        "Steel sheet", InventoryType.MATERIAL, "mat-stl-01", quantity=50, unit="kg", unit_price=3.0
    )
    paint = items.create_item(
        "Primer paint", InventoryType.MATERIAL, "MAT-PNT-02", quantity=8, unit="l", unit_price=12.0
    )
    frame = items.create_item(
        "Welded frame", InventoryType.COMPONENT, "CMP-FRM-01", quantity=3, unit="pcs"
    )
    panel = items.create_item(
        "Side panel", InventoryType.COMPONENT, "CMP-PNL-02", quantity=6, unit="pcs"
    )
    model = items.create_item(
        "Workbench",
        InventoryType.MODEL,
        "MOD-WB-100",
        quantity=0,
        unit="pcs",
        unit_price=400.0,
        estimated_manufacturing_time=2,
        components=[frame.id, panel.id],
        can_manufacture=True,
    )
    return Catalog(steel=steel, paint=paint, frame=frame, panel=panel, model=model)


@pytest.fixture
def due_date(clock: FakeClock) -> datetime:
    return clock() + timedelta(days=7)


@pytest.fixture
def app_settings() -> Settings:
    return Settings(database_path=":memory:", seed_demo_data=False, log_level="warning")


@pytest.fixture
def client(app_settings: Settings):
    app = create_app(app_settings)
    with TestClient(app) as test_client:
        yield test_client
