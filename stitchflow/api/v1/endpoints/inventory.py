"""Inventory ledger and BOM line endpoints."""
from typing import List, Optional
import uuid

from fastapi import APIRouter, Query, status

from stitchflow.api.deps import DB
from stitchflow.schemas.inventory import (
    BOMLineCreate,
    BOMLineResponse,
    InventoryItemCreate,
    InventoryItemResponse,
    StockAdjustRequest,
    StockMovementResponse,
)
from stitchflow.services.bom_service import BOMService
from stitchflow.services.inventory_service import InventoryService


router = APIRouter()


@router.get("", response_model=List[InventoryItemResponse])
async def list_inventory_items(db: DB, search: Optional[str] = Query(None)):
    return await InventoryService(db).list_items(search=search)


@router.post("", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(data: InventoryItemCreate, db: DB):
    return await InventoryService(db).create_item(data.model_dump())


@router.get("/low-stock", response_model=List[InventoryItemResponse])
async def get_low_stock_items(db: DB):
    """Items at or below their reorder level."""
    return await InventoryService(db).low_stock_items()


@router.post("/bom-lines", response_model=BOMLineResponse, status_code=status.HTTP_201_CREATED)
async def create_bom_line(data: BOMLineCreate, db: DB):
    return await BOMService(db).add_line(data.model_dump())


@router.get("/{item_id}", response_model=InventoryItemResponse)
async def get_inventory_item(item_id: uuid.UUID, db: DB):
    return await InventoryService(db).get_item(item_id)


@router.post("/{item_id}/stock-in", response_model=StockMovementResponse)
async def stock_in(item_id: uuid.UUID, data: StockAdjustRequest, db: DB):
    """Receive stock, e.g. goods bought against a procurement demand."""
    service = InventoryService(db)
    return await service.stock_in(item_id, data.quantity, notes=data.notes, created_by=data.created_by)


@router.post("/{item_id}/stock-out", response_model=StockMovementResponse)
async def stock_out(item_id: uuid.UUID, data: StockAdjustRequest, db: DB):
    service = InventoryService(db)
    return await service.stock_out(item_id, data.quantity, notes=data.notes, created_by=data.created_by)


@router.get("/{item_id}/movements", response_model=List[StockMovementResponse])
async def list_stock_movements(item_id: uuid.UUID, db: DB):
    service = InventoryService(db)
    await service.get_item(item_id)
    return await service.list_movements(item_id=item_id)
