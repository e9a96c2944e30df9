from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Procurement
    purchase_orders,
    sku_splits,
    grn,  # Goods Receipt Notes
    # Stock position
    inventory_ledger,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Purchase Orders ====================
api_router.include_router(
    purchase_orders.router,
    prefix="/purchase-orders",
    tags=["Purchase Orders"]
)

# ==================== SKU Splitting ====================
api_router.include_router(
    sku_splits.router,
    prefix="/sku-splits",
    tags=["SKU Splitting"]
)

# ==================== Goods Receipt ====================
api_router.include_router(
    grn.router,
    prefix="/grn",
    tags=["Goods Receipt Notes"]
)

# ==================== Inventory Ledger ====================
api_router.include_router(
    inventory_ledger.router,
    prefix="/inventory-ledger",
    tags=["Inventory Ledger"]
)
