from fastapi import APIRouter

from stitchflow.api.v1.endpoints import (
    # Orders & order items
    orders,
    order_items,
    # Material flow
    packets,
    procurement,
    inventory,
    # Downstream workflows
    production,
    dyeing,
    qa,
    # Client approval gate
    sales,
)


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

api_router.include_router(
    order_items.router,
    prefix="/order-items",
    tags=["Order Items"]
)

api_router.include_router(
    packets.router,
    prefix="/packets",
    tags=["Packets"]
)

api_router.include_router(
    procurement.router,
    prefix="/procurement-demands",
    tags=["Procurement Demands"]
)

api_router.include_router(
    inventory.router,
    prefix="/inventory",
    tags=["Inventory"]
)

api_router.include_router(
    production.router,
    prefix="/production",
    tags=["Production"]
)

api_router.include_router(
    dyeing.router,
    prefix="/dyeing",
    tags=["Dyeing"]
)

api_router.include_router(
    qa.router,
    prefix="/qa",
    tags=["QA"]
)

api_router.include_router(
    sales.router,
    prefix="/sales",
    tags=["Sales Approval"]
)
