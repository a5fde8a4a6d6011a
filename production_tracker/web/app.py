"""FastAPI-based web interface for the production tracker."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates

from ..catalog import InventoryFilters
from ..config import Settings, get_settings
from ..domain import (
    OPEN_STATUSES,
    BillOfMaterial,
    CardPriority,
    InventoryStatus,
    InventoryType,
    LifecycleStatus,
)
from ..errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TrackerError,
    ValidationError,
)
from ..notifications import NotificationHub
from ..services import CardFilters, OrderFilters, ProductionService
from ..storage import TrackerDatabase
from .schemas import (
    BulkQuantityUpdate,
    CardUpdate,
    InventoryItemCreate,
    InventoryItemUpdate,
    MaterialAdd,
    MaterialsReplace,
    OrderCreate,
    OrderUpdate,
    PriorityUpdate,
    QuantityUpdate,
    card_payload,
    item_payload,
    order_payload,
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

ERROR_STATUS_CODES = {
    NotFoundError: 404,
    InvalidStateError: 409,
    ValidationError: 400,
    ConflictError: 409,
}


def ok(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body: Dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return JSONResponse(jsonable_encoder(body), status_code=status_code)


def fail(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


def status_code_for(error: TrackerError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 400


class WebSocketBroadcaster:
    """Forward hub notifications to every connected WebSocket client.

    Sends are scheduled on the server loop and never awaited by the
    publisher; a client that cannot be reached is dropped.
    """

    def __init__(self) -> None:
        self._connections: List[WebSocket] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self._connections.append(websocket)
        logger.info("WebSocket client connected (%d total)", len(self._connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)
            logger.info("WebSocket client disconnected (%d left)", len(self._connections))

    def __call__(self, topic: str, payload: Mapping[str, Any]) -> None:
        if not self._connections or self._loop is None or self._loop.is_closed():
            return
        message = jsonable_encoder({"topic": topic, "payload": dict(payload)})
        asyncio.run_coroutine_threadsafe(self._broadcast(message), self._loop)

    async def _broadcast(self, message: Dict[str, Any]) -> None:
        for websocket in list(self._connections):
            try:
                await websocket.send_json(message)
            except Exception:  # noqa: BLE001 - receivers come and go
                logger.warning("Dropping unreachable WebSocket client", exc_info=True)
                self.disconnect(websocket)


def build_service(database: TrackerDatabase, notifier: NotificationHub) -> ProductionService:
    return ProductionService(
        inventory_repo=database.inventory,
        order_repo=database.orders,
        card_repo=database.cards,
        notifier=notifier,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    service: Optional[ProductionService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    database: Optional[TrackerDatabase] = None
    if service is None:
        database = TrackerDatabase(settings.database_path)
        service = build_service(database, NotificationHub())
    if settings.seed_demo_data:
        ensure_demo_data(service)

    broadcaster = WebSocketBroadcaster()
    service.notifier.subscribe(broadcaster)

    app = FastAPI(title=settings.app_title)
    app.state.production_service = service
    app.state.database = database
    app.state.broadcaster = broadcaster
    app.state.settings = settings

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        if database is not None:
            database.close()

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
        status_code = status_code_for(exc)
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc)
        return fail(str(exc), status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'][1:])}: {error['msg']}"
            for error in exc.errors()
        )
        return fail(f"Invalid request: {details}", 400)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return fail("Internal server error", 500)

    @app.get("/health")
    async def health(request: Request):
        return ok(
            {
                "status": "ok",
                "environment": settings.environment,
                "websocket_clients": broadcaster.connection_count,
            }
        )

    @app.get("/")
    async def dashboard(request: Request):
        tracker = _service(request)
        now = tracker.orders.now()
        queue = tracker.orders.production_queue()
        cards = tracker.cards.list_cards(CardFilters())
        active_cards = [card for card in cards if card.status in OPEN_STATUSES]
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "title": settings.app_title,
                "queue": queue,
                "cards": active_cards,
                "low_stock": tracker.catalog.low_stock_items(),
                "order_stats": tracker.orders.order_stats(),
                "card_stats": tracker.cards.card_stats(),
                "now": now,
            },
        )

    @app.websocket("/ws")
    async def notifications_socket(websocket: WebSocket) -> None:
        await broadcaster.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            broadcaster.disconnect(websocket)

    register_inventory_routes(app)
    register_order_routes(app)
    register_card_routes(app)
    return app


def _service(request: Request) -> ProductionService:
    return request.app.state.production_service


# ----------------------------------------------------------------------
# Inventory
# ----------------------------------------------------------------------
def register_inventory_routes(app: FastAPI) -> None:
    prefix = "/api/inventory"

    @app.post(prefix)
    async def create_item(body: InventoryItemCreate, request: Request):
        values = body.model_dump(exclude={"bill_of_materials"})
        item = _service(request).catalog.create_item(
            bill_of_materials=[entry.to_domain() for entry in body.bill_of_materials],
            **values,
        )
        return ok(item_payload(item), "Inventory item created", status_code=201)

    @app.get(prefix)
    async def list_items(
        request: Request,
        type: Optional[InventoryType] = None,
        status: Optional[InventoryStatus] = None,
        location: Optional[str] = None,
        supplier: Optional[str] = None,
        low_stock: bool = False,
        search: Optional[str] = None,
    ):
        filters = InventoryFilters(
            type=type,
            status=status,
            location=location,
            supplier=supplier,
            low_stock=low_stock,
            search=search,
        )
        items = _service(request).catalog.list_items(filters)
        return ok([item_payload(item) for item in items])

    @app.get(f"{prefix}/stats")
    async def inventory_stats(request: Request):
        return ok(_service(request).catalog.inventory_stats())

    @app.get(f"{prefix}/low-stock")
    async def low_stock(request: Request):
        items = _service(request).catalog.low_stock_items()
        return ok([item_payload(item) for item in items])

    @app.get(f"{prefix}/sku/{{sku}}")
    async def item_by_sku(sku: str, request: Request):
        return ok(item_payload(_service(request).catalog.get_item_by_sku(sku)))

    @app.patch(f"{prefix}/bulk/quantities")
    async def bulk_quantities(body: BulkQuantityUpdate, request: Request):
        items = _service(request).catalog.bulk_update_quantities(
            [(entry.id, entry.quantity) for entry in body.updates]
        )
        return ok([item_payload(item) for item in items])

    @app.get(f"{prefix}/{{item_id}}")
    async def get_item(item_id: str, request: Request):
        return ok(item_payload(_service(request).catalog.get_item(item_id)))

    @app.put(f"{prefix}/{{item_id}}")
    async def update_item(item_id: str, body: InventoryItemUpdate, request: Request):
        changes = body.model_dump(exclude_unset=True, exclude={"bill_of_materials"})
        if "bill_of_materials" in body.model_fields_set:
            changes["bill_of_materials"] = (
                None
                if body.bill_of_materials is None
                else [entry.to_domain() for entry in body.bill_of_materials]
            )
        item = _service(request).catalog.update_item(item_id, **changes)
        return ok(item_payload(item), "Inventory item updated")

    @app.delete(f"{prefix}/{{item_id}}")
    async def delete_item(item_id: str, request: Request):
        _service(request).catalog.delete_item(item_id)
        return ok(None, "Inventory item deleted")

    @app.patch(f"{prefix}/{{item_id}}/quantity")
    async def update_quantity(item_id: str, body: QuantityUpdate, request: Request):
        item = _service(request).catalog.update_quantity(item_id, body.quantity)
        return ok(item_payload(item), "Quantity updated")


# ----------------------------------------------------------------------
# Manufacturing orders
# ----------------------------------------------------------------------
def register_order_routes(app: FastAPI) -> None:
    prefix = "/api/manufacturing-orders"

    def orders_payload(request: Request, orders) -> List[Dict[str, Any]]:
        now = _service(request).orders.now()
        return [order_payload(order, now) for order in orders]

    def one(request: Request, order) -> Dict[str, Any]:
        return order_payload(order, _service(request).orders.now())

    @app.post(prefix)
    async def create_order(body: OrderCreate, request: Request):
        service = _service(request)
        result = service.orders.create_order(
            body.model_id,
            body.quantity,
            body.client_name,
            body.due_date,
            notes=body.notes,
            component_ids=body.component_ids,
        )
        now = service.orders.now()
        data = {
            "order": order_payload(result.order, now),
            "cards": [card_payload(card, now) for card in result.cards],
        }
        message = (
            f"Manufacturing order created with {len(result.cards)} production cards"
        )
        return ok(data, message, status_code=201)

    @app.get(prefix)
    async def list_orders(
        request: Request,
        status: Optional[LifecycleStatus] = None,
        client_name: Optional[str] = None,
        model_id: Optional[str] = None,
        overdue: bool = False,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        search: Optional[str] = None,
    ):
        filters = OrderFilters(
            status=status,
            client_name=client_name,
            model_id=model_id,
            overdue=overdue,
            start_date=_parse_datetime(start_date, "start_date"),
            end_date=_parse_datetime(end_date, "end_date"),
            search=search,
        )
        return ok(orders_payload(request, _service(request).orders.list_orders(filters)))

    @app.get(f"{prefix}/active")
    async def active_orders(request: Request):
        return ok(orders_payload(request, _service(request).orders.active_orders()))

    @app.get(f"{prefix}/production-queue")
    async def production_queue(request: Request):
        return ok(orders_payload(request, _service(request).orders.production_queue()))

    @app.get(f"{prefix}/overdue")
    async def overdue_orders(request: Request):
        return ok(orders_payload(request, _service(request).orders.overdue_orders()))

    @app.get(f"{prefix}/stats")
    async def order_stats(request: Request):
        return ok(_service(request).orders.order_stats())

    @app.get(f"{prefix}/status/{{status}}")
    async def orders_by_status(status: LifecycleStatus, request: Request):
        return ok(orders_payload(request, _service(request).orders.orders_by_status(status)))

    @app.get(f"{prefix}/{{order_id}}")
    async def get_order(order_id: str, request: Request):
        return ok(one(request, _service(request).orders.get(order_id)))

    @app.put(f"{prefix}/{{order_id}}")
    async def update_order(order_id: str, body: OrderUpdate, request: Request):
        order = _service(request).orders.update_order(
            order_id, **body.model_dump(exclude_unset=True)
        )
        return ok(one(request, order), "Order updated")

    @app.delete(f"{prefix}/{{order_id}}")
    async def delete_order(order_id: str, request: Request):
        removed = _service(request).orders.delete_order(order_id)
        return ok({"deleted_cards": removed}, "Order deleted")

    register_lifecycle_routes(app, prefix, "orders", one)


# ----------------------------------------------------------------------
# Production cards
# ----------------------------------------------------------------------
def register_card_routes(app: FastAPI) -> None:
    prefix = "/api/production-cards"

    def cards_payload(request: Request, cards) -> List[Dict[str, Any]]:
        now = _service(request).cards.now()
        return [card_payload(card, now) for card in cards]

    def one(request: Request, card) -> Dict[str, Any]:
        return card_payload(card, _service(request).cards.now())

    @app.get(prefix)
    async def list_cards(
        request: Request,
        status: Optional[LifecycleStatus] = None,
        priority: Optional[CardPriority] = None,
        order_id: Optional[str] = None,
        model_id: Optional[str] = None,
        overdue: bool = False,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        search: Optional[str] = None,
    ):
        filters = CardFilters(
            status=status,
            priority=priority,
            order_id=order_id,
            model_id=model_id,
            overdue=overdue,
            start_date=_parse_datetime(start_date, "start_date"),
            end_date=_parse_datetime(end_date, "end_date"),
            search=search,
        )
        return ok(cards_payload(request, _service(request).cards.list_cards(filters)))

    @app.get(f"{prefix}/active")
    async def active_cards(request: Request):
        return ok(cards_payload(request, _service(request).cards.active_cards()))

    @app.get(f"{prefix}/overdue")
    async def overdue_cards(request: Request):
        return ok(cards_payload(request, _service(request).cards.overdue_cards()))

    @app.get(f"{prefix}/stats")
    async def card_stats(request: Request):
        return ok(_service(request).cards.card_stats())

    @app.get(f"{prefix}/status/{{status}}")
    async def cards_by_status(status: LifecycleStatus, request: Request):
        return ok(cards_payload(request, _service(request).cards.cards_by_status(status)))

    @app.get(f"{prefix}/priority/{{priority}}")
    async def cards_by_priority(priority: CardPriority, request: Request):
        return ok(cards_payload(request, _service(request).cards.cards_by_priority(priority)))

    @app.get(f"{prefix}/order/{{order_id}}")
    async def cards_by_order(order_id: str, request: Request):
        return ok(cards_payload(request, _service(request).cards.cards_by_order(order_id)))

    @app.get(f"{prefix}/{{card_id}}")
    async def get_card(card_id: str, request: Request):
        return ok(one(request, _service(request).cards.get(card_id)))

    @app.put(f"{prefix}/{{card_id}}")
    async def update_card(card_id: str, body: CardUpdate, request: Request):
        card = _service(request).cards.update_card(
            card_id, **body.model_dump(exclude_unset=True)
        )
        return ok(one(request, card), "Card updated")

    @app.delete(f"{prefix}/{{card_id}}")
    async def delete_card(card_id: str, request: Request):
        _service(request).cards.delete_card(card_id)
        return ok(None, "Card deleted")

    @app.patch(f"{prefix}/{{card_id}}/priority")
    async def set_priority(card_id: str, body: PriorityUpdate, request: Request):
        card = _service(request).cards.set_priority(card_id, body.priority)
        return ok(one(request, card), "Priority updated")

    register_lifecycle_routes(app, prefix, "cards", one)


# ----------------------------------------------------------------------
# Shared lifecycle endpoints
# ----------------------------------------------------------------------
def register_lifecycle_routes(app: FastAPI, prefix: str, engine_name: str, one) -> None:
    """Transition, timer and material endpoints common to orders and cards."""

    def engine(request: Request):
        return getattr(_service(request), engine_name)

    def transition(action: str, message: str) -> None:
        async def endpoint(record_id: str, request: Request):
            record = getattr(engine(request), action)(record_id)
            return ok(one(request, record), message)

        endpoint.__name__ = f"{engine_name}_{action}"
        app.post(f"{prefix}/{{record_id}}/{action}")(endpoint)

    transition("start", "Production started")
    transition("pause", "Production paused")
    transition("resume", "Production resumed")
    transition("complete", "Completed")
    transition("cancel", "Cancelled")

    @app.get(f"{prefix}/{{record_id}}/production-time", name=f"{engine_name}_elapsed")
    async def elapsed(record_id: str, request: Request):
        minutes = engine(request).elapsed_minutes(record_id)
        return ok({"minutes": minutes})

    def component_action(path: str, method_name: str, message: str) -> None:
        async def endpoint(record_id: str, component_id: str, request: Request):
            record = getattr(engine(request), method_name)(record_id, component_id)
            return ok(one(request, record), message)

        endpoint.__name__ = f"{engine_name}_{method_name}"
        app.post(f"{prefix}/{{record_id}}/{path}")(endpoint)

    component_action("components/{component_id}/complete", "complete_component", "Component completed")
    component_action("components/{component_id}/start", "start_component_timer", "Component timer started")
    component_action("components/{component_id}/pause", "pause_component_timer", "Component timer paused")
    component_action("components/{component_id}/resume", "resume_component_timer", "Component timer resumed")

    @app.get(
        f"{prefix}/{{record_id}}/components/{{component_id}}/production-time",
        name=f"{engine_name}_component_elapsed",
    )
    async def component_elapsed(record_id: str, component_id: str, request: Request):
        minutes = engine(request).component_elapsed_minutes(record_id, component_id)
        return ok({"minutes": minutes})

    @app.put(
        f"{prefix}/{{record_id}}/components/{{component_id}}/materials",
        name=f"{engine_name}_replace_materials",
    )
    async def replace_materials(
        record_id: str, component_id: str, body: MaterialsReplace, request: Request
    ):
        record = engine(request).replace_materials(
            record_id, component_id, [entry.to_domain() for entry in body.materials]
        )
        return ok(one(request, record), "Materials updated")

    @app.post(
        f"{prefix}/{{record_id}}/components/{{component_id}}/materials",
        name=f"{engine_name}_add_material",
    )
    async def add_material(
        record_id: str, component_id: str, body: MaterialAdd, request: Request
    ):
        record = engine(request).add_material(
            record_id,
            component_id,
            body.material_id,
            body.planned_quantity,
            body.actual_quantity,
        )
        return ok(one(request, record), "Material added")


def _parse_datetime(value: Optional[str], field_name: str):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field_name} must be an ISO date or datetime") from exc


def ensure_demo_data(service: ProductionService) -> None:
    if len(service.catalog.items) > 0:
        return

    catalog = service.catalog
    silicone = catalog.create_item(
        name="Silicone skin sheet",
        type=InventoryType.MATERIAL,
        sku="MAT-SIL-001",
        quantity=40,
        unit="sheet",
        unit_price=18.5,
        minimum_stock=10,
        location="Warehouse A",
        supplier="Polymer Supplies Ltd",
    )
    tubing = catalog.create_item(
        name="Aluminium frame tube",
        type=InventoryType.MATERIAL,
        sku="MAT-ALU-002",
        quantity=120,
        unit="m",
        unit_price=4.2,
        minimum_stock=30,
        location="Warehouse A",
    )
    torso = catalog.create_item(
        name="Torso assembly",
        type=InventoryType.COMPONENT,
        sku="CMP-TOR-001",
        quantity=2,
        unit="pcs",
        unit_price=210.0,
        location="Assembly line 1",
        bill_of_materials=[
            BillOfMaterial(
                material_id=silicone.id,
                material_name=silicone.name,
                material_sku=silicone.sku,
                required_quantity=3,
                unit=silicone.unit,
            ),
            BillOfMaterial(
                material_id=tubing.id,
                material_name=tubing.name,
                material_sku=tubing.sku,
                required_quantity=1.5,
                unit=tubing.unit,
            ),
        ],
    )
    limbs = catalog.create_item(
        name="Limb set",
        type=InventoryType.COMPONENT,
        sku="CMP-LMB-002",
        quantity=4,
        unit="set",
        unit_price=140.0,
        location="Assembly line 2",
    )
    model = catalog.create_item(
        name="Adult CPR training manikin",
        type=InventoryType.MODEL,
        sku="MOD-CPR-100",
        quantity=1,
        unit="pcs",
        unit_price=1450.0,
        minimum_stock=2,
        location="Finished goods",
        estimated_manufacturing_time=6,
        components=[torso.id, limbs.id],
        can_manufacture=True,
    )
    service.orders.create_order(
        model.id,
        2,
        "City Nursing School",
        service.orders.now() + timedelta(days=14),
        notes="Demo order",
    )


__all__ = ["create_app", "ensure_demo_data", "WebSocketBroadcaster"]
