"""Tests for the stock catalog."""

import pytest

from production_tracker.catalog import InventoryFilters
from production_tracker.domain import InventoryStatus, InventoryType
from production_tracker.errors import ConflictError, NotFoundError, ValidationError
from production_tracker.notifications import INVENTORY_CHANGED


class TestCreateItem:
    def test_sku_is_normalised(self, service, catalog):
        assert catalog.steel.sku == "MAT-STL-01"
        assert service.catalog.get_item_by_sku("mat-stl-01").id == catalog.steel.id

    def test_duplicate_sku_conflicts(self, service, catalog):
        with pytest.raises(ConflictError):
            service.catalog.create_item("Other steel", InventoryType.MATERIAL, "MAT-STL-01")

    def test_negative_values_rejected(self, service):
        with pytest.raises(ValidationError):
            service.catalog.create_item("Bolt", InventoryType.MATERIAL, "BOLT", quantity=-1)
        with pytest.raises(ValidationError):
            service.catalog.create_item("Bolt", InventoryType.MATERIAL, "BOLT", unit_price=-0.5)
        assert len(service.catalog.items) == 0

    def test_model_components_must_exist(self, service):
        with pytest.raises(NotFoundError):
            service.catalog.create_item(
                "Desk", InventoryType.MODEL, "MOD-DSK", components=["missing"]
            )

    def test_model_components_must_be_active_components(self, service, catalog):
        with pytest.raises(ValidationError):
            service.catalog.create_item(
                "Desk", InventoryType.MODEL, "MOD-DSK", components=[catalog.steel.id]
            )
        service.catalog.update_item(catalog.frame.id, status=InventoryStatus.INACTIVE)
        with pytest.raises(ValidationError):
            service.catalog.create_item(
                "Desk", InventoryType.MODEL, "MOD-DSK", components=[catalog.frame.id]
            )

    def test_models_are_not_manufacturable_by_default(self, service):
        item = service.catalog.create_item("Desk", InventoryType.MODEL, "MOD-DSK")
        assert item.can_manufacture is False

    def test_creation_is_published(self, service, hub):
        service.catalog.create_item("Bolt", InventoryType.MATERIAL, "BOLT")
        assert hub.topics() == [INVENTORY_CHANGED]


class TestQueries:
    def test_filters(self, service, catalog):
        materials = service.catalog.list_items(InventoryFilters(type=InventoryType.MATERIAL))
        assert {item.id for item in materials} == {catalog.steel.id, catalog.paint.id}

        found = service.catalog.list_items(InventoryFilters(search="panel"))
        assert [item.id for item in found] == [catalog.panel.id]

    def test_low_stock_uses_minimum_threshold(self, service, catalog):
        service.catalog.update_item(catalog.paint.id, minimum_stock=10)
        low = service.catalog.low_stock_items()
        assert catalog.paint.id in {item.id for item in low}
        assert catalog.steel.id not in {item.id for item in low}

    def test_most_recently_updated_first(self, service, catalog, clock):
        clock.advance(minutes=5)
        service.catalog.update_quantity(catalog.steel.id, 49)
        assert service.catalog.list_items()[0].id == catalog.steel.id

    def test_stats(self, service, catalog):
        stats = service.catalog.inventory_stats()
        assert stats.total_items == 5
        assert stats.by_type == {"model": 1, "component": 2, "material": 2}
        assert stats.total_value == pytest.approx(50 * 3.0 + 8 * 12.0)

    def test_unknown_item(self, service):
        with pytest.raises(NotFoundError):
            service.catalog.get_item("nope")
        assert service.catalog.find_by_id("nope") is None


class TestUpdates:
    def test_update_rejects_unknown_fields(self, service, catalog):
        with pytest.raises(ValidationError):
            service.catalog.update_item(catalog.steel.id, colour="red")

    def test_update_sku_conflict(self, service, catalog):
        with pytest.raises(ConflictError):
            service.catalog.update_item(catalog.steel.id, sku="mat-pnt-02")

    @pytest.mark.parametrize(
        "changes",
        [
            {"quantity": None},
            {"sku": None},
            {"type": None},
            {"name": "  "},
            {"status": "archived"},
            {"estimated_manufacturing_time": -1},
        ],
    )
    def test_update_rejects_bad_values_before_writing(self, service, catalog, changes):
        with pytest.raises(ValidationError):
            service.catalog.update_item(catalog.frame.id, **changes)
        stored = service.catalog.get_item(catalog.frame.id)
        assert stored.quantity == 3
        assert stored.sku == "CMP-FRM-01"
        assert stored.type == InventoryType.COMPONENT

    def test_update_quantity_rejects_negative(self, service, catalog):
        with pytest.raises(ValidationError):
            service.catalog.update_quantity(catalog.steel.id, -3)
        assert service.catalog.get_item(catalog.steel.id).quantity == 50

    def test_bulk_update_validates_everything_first(self, service, catalog):
        with pytest.raises(NotFoundError):
            service.catalog.bulk_update_quantities([(catalog.steel.id, 10), ("missing", 4)])
        assert service.catalog.get_item(catalog.steel.id).quantity == 50

        updated = service.catalog.bulk_update_quantities(
            [(catalog.steel.id, 10), (catalog.paint.id, 4)]
        )
        assert [item.quantity for item in updated] == [10, 4]

    def test_delete(self, service, catalog):
        service.catalog.delete_item(catalog.paint.id)
        assert service.catalog.find_by_id(catalog.paint.id) is None
        with pytest.raises(NotFoundError):
            service.catalog.delete_item(catalog.paint.id)
