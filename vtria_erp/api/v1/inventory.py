"""
Inventory API endpoints
Products, warehouses, stock levels and movements
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_db, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.inventory import (
    ProductCreate, ProductResponse, ProductUpdate, StockAdjustment, StockLevelResponse,
    StockMovementResponse, StockTransfer, WarehouseCreate, WarehouseResponse
)
from vtria_erp.services.inventory import InventoryService

router = APIRouter()

inventory_access = require_module("inventory", "products")


# Products

@router.get("/products")
async def list_products(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    active_only: bool = Query(True),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    rows, total = InventoryService(db).list_products(
        search=search, category=category, active_only=active_only, page=page, limit=limit
    )
    return paginated_response([ProductResponse.model_validate(r) for r in rows], page, limit, total)


@router.post("/products", status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    product = InventoryService(db).create_product(body.model_dump())
    return success_response(data=ProductResponse.model_validate(product), message="Product created")


@router.get("/products/{product_id}")
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    product = InventoryService(db).get_product(product_id)
    return success_response(data=ProductResponse.model_validate(product))


@router.put("/products/{product_id}")
async def update_product(
    product_id: int,
    body: ProductUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    product = InventoryService(db).update_product(product_id, body.model_dump(exclude_unset=True))
    return success_response(data=ProductResponse.model_validate(product), message="Product updated")


# Warehouses

@router.get("/warehouses")
async def list_warehouses(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    warehouses = InventoryService(db).list_warehouses(active_only)
    return success_response(data=[WarehouseResponse.model_validate(w) for w in warehouses])


@router.post("/warehouses", status_code=status.HTTP_201_CREATED)
async def create_warehouse(
    body: WarehouseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    warehouse = InventoryService(db).create_warehouse(body.model_dump())
    return success_response(data=WarehouseResponse.model_validate(warehouse), message="Warehouse created")


# Stock

@router.get("/stock")
async def stock_levels(
    product_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    levels = InventoryService(db).get_stock_levels(product_id=product_id, warehouse_id=warehouse_id)
    return success_response(data=[StockLevelResponse.model_validate(l) for l in levels])


@router.get("/stock/low")
async def low_stock(
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    """Products at or below their reorder level"""
    return success_response(data=InventoryService(db).low_stock())


@router.post("/stock/in")
async def add_stock(
    body: StockAdjustment,
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    level = InventoryService(db).add_stock(
        body.product_id, body.warehouse_id, body.quantity, current_user,
        reference_type=body.reference_type, reference_id=body.reference_id, notes=body.notes
    )
    return success_response(data=StockLevelResponse.model_validate(level), message="Stock added")


@router.post("/stock/out")
async def issue_stock(
    body: StockAdjustment,
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    level = InventoryService(db).issue_stock(
        body.product_id, body.warehouse_id, body.quantity, current_user,
        reference_type=body.reference_type, reference_id=body.reference_id, notes=body.notes
    )
    return success_response(data=StockLevelResponse.model_validate(level), message="Stock issued")


@router.post("/stock/transfer")
async def transfer_stock(
    body: StockTransfer,
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    levels = InventoryService(db).transfer_stock(
        body.product_id, body.from_warehouse_id, body.to_warehouse_id, body.quantity, current_user,
        notes=body.notes
    )
    return success_response(
        data={
            "from": StockLevelResponse.model_validate(levels["from"]),
            "to": StockLevelResponse.model_validate(levels["to"]),
        },
        message="Stock transferred"
    )


@router.get("/movements")
async def stock_movements(
    product_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    movement_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(inventory_access)
):
    rows, total = InventoryService(db).get_movements(
        product_id=product_id, warehouse_id=warehouse_id, movement_type=movement_type, page=page, limit=limit
    )
    return paginated_response([StockMovementResponse.model_validate(r) for r in rows], page, limit, total)
