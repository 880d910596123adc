"""
Shared fixtures: an in-memory SQLite database per test, service-level
sessions and an HTTP client wired to the same database.
"""
from decimal import Decimal
from typing import List, Optional, Sequence

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stitchflow import models  # noqa: F401
from stitchflow.core.events import section_events
from stitchflow.database import Base, custom_json_dumps, get_db
from stitchflow.main import app
from stitchflow.schemas.order import OrderCreate, OrderItemCreate, PieceEntry
from stitchflow.services.bom_service import BOMService
from stitchflow.services.inventory_service import InventoryService
from stitchflow.services.order_service import OrderService
from stitchflow.services.packet_service import PacketService
from stitchflow.services.production_service import ProductionService
from stitchflow.services.section_inventory_service import SectionInventoryService


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=custom_json_dumps,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """A single session shared by every service a test builds."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr("stitchflow.main.async_session_factory", session_factory)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_section_events():
    yield
    section_events.clear()


# ==================== FACTORIES ====================

@pytest.fixture
def make_material(db):
    async def _make(sku: str, stock, name: Optional[str] = None, unit: str = "Meter", **extra):
        return await InventoryService(db).create_item({
            "sku": sku,
            "name": name or sku.replace("-", " ").title(),
            "unit": unit,
            "remaining_stock": Decimal(str(stock)),
            **extra,
        })
    return _make


@pytest.fixture
def add_bom_line(db):
    async def _add(material, piece: str, per_unit, product_id: str = "KURTA-01", size: Optional[str] = None):
        return await BOMService(db).add_line({
            "product_id": product_id,
            "size": size,
            "inventory_item_id": material.id,
            "quantity_per_unit": Decimal(str(per_unit)),
            "unit": material.unit,
            "piece": piece,
        })
    return _add


@pytest.fixture
def make_order(db):
    async def _make(
        pieces: Sequence[str] = ("Shirt", "Dupatta"),
        add_ons: Sequence[str] = (),
        quantity: int = 1,
        total_amount="0",
        product_id: str = "KURTA-01",
        size: Optional[str] = None,
        custom_bom: Optional[List[dict]] = None,
        items: int = 1,
    ):
        item = OrderItemCreate(
            product_id=product_id,
            product_name="Embroidered Kurta",
            size=size,
            quantity=quantity,
            included_items=[PieceEntry(piece=p) for p in pieces],
            selected_add_ons=[PieceEntry(piece=p) for p in add_ons],
            custom_bom=custom_bom,
        )
        return await OrderService(db).create_order(OrderCreate(
            customer_name="Ayesha Khan",
            total_amount=Decimal(str(total_amount)),
            items=[item] * items,
        ))
    return _make


@pytest.fixture
def approved_item(db, make_order):
    """Create an order and approve the form of its first item."""
    async def _make(**kwargs):
        order = await make_order(**kwargs)
        item = order.items[0]
        await OrderService(db).approve_form(item.id)
        return order, item
    return _make


@pytest.fixture
def pick_and_approve(db):
    """Run an item's packet through assignment, picking and verification."""
    async def _run(item):
        packets = PacketService(db)
        packet = await packets.assign(item, "Bilal")
        await packets.start(item)
        for pick in list(packet.items):
            if not pick.is_picked:
                await packets.pick_item(item, pick.id)
        await packets.complete(item)
        return await packets.approve(item, checked_by="Supervisor")
    return _run


@pytest.fixture
def produce_all(db):
    """Assign, start and complete production for every ready section."""
    async def _run(item):
        production = ProductionService(db)
        tasks = await production.assign_production(item.id, "Karigar Imran")
        for task in tasks:
            await production.start_task(task.id, worker="Karigar Imran")
            await production.complete_task(task.id)
        return tasks
    return _run


@pytest.fixture
def ready_for_production(db, approved_item, make_material, add_bom_line, pick_and_approve):
    """
    An order whose first item has every section released to production.

    Lawn feeds the shirt and chiffon the dupatta; both are stocked well above
    what one garment needs.
    """
    async def _make(**kwargs):
        lawn = await make_material("FAB-LAWN", 10, rack_location="A-01")
        chiffon = await make_material("FAB-CHIFFON", 10, rack_location="B-04")
        await add_bom_line(lawn, "Shirt", 3)
        await add_bom_line(chiffon, "Dupatta", 2)
        order, item = await approved_item(**kwargs)
        await SectionInventoryService(db).run_inventory_check(item.id)
        await pick_and_approve(item)
        return order, item, {"lawn": lawn, "chiffon": chiffon}
    return _make
