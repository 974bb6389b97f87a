"""
Inventory Service
Products, warehouses, stock levels and stock movements
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from vtria_erp.models.inventory import Product, StockLevel, StockMovement, Warehouse
from vtria_erp.models.location_access import OfficeLocation
from vtria_erp.models.user import User

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("product_code", "name", "category", "unit", "mrp", "last_price", "reorder_level", "is_active")
WAREHOUSE_FIELDS = ("code", "name", "location_id", "is_active")


def to_quantity(value: Any) -> Decimal:
    quantity = Decimal(str(value or 0))
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    return quantity


class InventoryService:
    """Service for stock keeping"""

    def __init__(self, db: Session):
        self.db = db

    # Products

    def list_products(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        active_only: bool = True,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product)
        if active_only:
            query = query.filter(Product.is_active.is_(True))
        if category:
            query = query.filter(Product.category == category)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Product.product_code.ilike(term), Product.name.ilike(term)))
        total = query.count()
        items = query.order_by(Product.product_code).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def get_product(self, product_id: int) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def create_product(self, data: Dict[str, Any]) -> Product:
        values = {k: v for k, v in data.items() if k in PRODUCT_FIELDS and v is not None}
        if not values.get("product_code") or not values.get("name"):
            raise ValidationError("product_code and name are required")
        if self.db.query(Product).filter(Product.product_code == values["product_code"]).first():
            raise ValidationError(f"Product code {values['product_code']} already exists")
        product = Product(**values)
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def update_product(self, product_id: int, data: Dict[str, Any]) -> Product:
        product = self.get_product(product_id)
        code = data.get("product_code")
        if code and code != product.product_code and \
                self.db.query(Product).filter(Product.product_code == code).first():
            raise ValidationError(f"Product code {code} already exists")
        for field, value in data.items():
            if field in PRODUCT_FIELDS and value is not None:
                setattr(product, field, value)
        self.db.commit()
        self.db.refresh(product)
        return product

    # Warehouses

    def list_warehouses(self, active_only: bool = True) -> List[Warehouse]:
        query = self.db.query(Warehouse)
        if active_only:
            query = query.filter(Warehouse.is_active.is_(True))
        return query.order_by(Warehouse.code).all()

    def get_warehouse(self, warehouse_id: int) -> Warehouse:
        warehouse = self.db.query(Warehouse).filter(Warehouse.id == warehouse_id).first()
        if not warehouse:
            raise NotFoundError(f"Warehouse {warehouse_id} not found")
        return warehouse

    def create_warehouse(self, data: Dict[str, Any]) -> Warehouse:
        values = {k: v for k, v in data.items() if k in WAREHOUSE_FIELDS and v is not None}
        if not values.get("code") or not values.get("name"):
            raise ValidationError("code and name are required")
        if self.db.query(Warehouse).filter(Warehouse.code == values["code"]).first():
            raise ValidationError(f"Warehouse code {values['code']} already exists")
        if values.get("location_id") and \
                not self.db.query(OfficeLocation).filter(OfficeLocation.id == values["location_id"]).first():
            raise NotFoundError(f"Office location {values['location_id']} not found")
        warehouse = Warehouse(**values)
        self.db.add(warehouse)
        self.db.commit()
        self.db.refresh(warehouse)
        return warehouse

    # Stock

    def _level(self, product_id: int, warehouse_id: int, create: bool = False) -> Optional[StockLevel]:
        level = self.db.query(StockLevel).filter(
            StockLevel.product_id == product_id,
            StockLevel.warehouse_id == warehouse_id
        ).with_for_update().first()
        if level is None and create:
            level = StockLevel(product_id=product_id, warehouse_id=warehouse_id, quantity=Decimal("0"))
            self.db.add(level)
        return level

    def _movement(self, **values) -> StockMovement:
        movement = StockMovement(**values)
        self.db.add(movement)
        return movement

    def add_stock(
        self,
        product_id: int,
        warehouse_id: int,
        quantity: Any,
        user: Optional[User] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[Any] = None,
        notes: Optional[str] = None,
        commit: bool = True,
    ) -> StockLevel:
        """Increase stock, creating the product/warehouse level row on first receipt"""
        quantity = to_quantity(quantity)
        self.get_product(product_id)
        self.get_warehouse(warehouse_id)

        level = self._level(product_id, warehouse_id, create=True)
        level.quantity = Decimal(str(level.quantity or 0)) + quantity
        self._movement(
            product_id=product_id, to_warehouse_id=warehouse_id, quantity=quantity,
            movement_type="in", reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            notes=notes, created_by=user.id if user else None,
        )
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(level)
        return level

    def issue_stock(
        self,
        product_id: int,
        warehouse_id: int,
        quantity: Any,
        user: Optional[User] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[Any] = None,
        notes: Optional[str] = None,
    ) -> StockLevel:
        quantity = to_quantity(quantity)
        level = self._level(product_id, warehouse_id)
        available = Decimal(str(level.quantity)) if level else Decimal("0")
        if available < quantity:
            raise BusinessLogicError(f"Insufficient stock: available {available}, requested {quantity}")

        level.quantity = available - quantity
        self._movement(
            product_id=product_id, from_warehouse_id=warehouse_id, quantity=quantity,
            movement_type="out", reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            notes=notes, created_by=user.id if user else None,
        )
        self.db.commit()
        self.db.refresh(level)
        return level

    def transfer_stock(
        self,
        product_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity: Any,
        user: Optional[User] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, StockLevel]:
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError("Source and destination warehouses must differ")
        quantity = to_quantity(quantity)
        self.get_warehouse(to_warehouse_id)

        source = self._level(product_id, from_warehouse_id)
        available = Decimal(str(source.quantity)) if source else Decimal("0")
        if available < quantity:
            raise BusinessLogicError(f"Insufficient stock: available {available}, requested {quantity}")

        destination = self._level(product_id, to_warehouse_id, create=True)
        source.quantity = available - quantity
        destination.quantity = Decimal(str(destination.quantity or 0)) + quantity
        self._movement(
            product_id=product_id, from_warehouse_id=from_warehouse_id, to_warehouse_id=to_warehouse_id,
            quantity=quantity, movement_type="transfer", notes=notes, created_by=user.id if user else None,
        )
        self.db.commit()
        self.db.refresh(source)
        self.db.refresh(destination)
        logger.info(f"Transferred {quantity} of product {product_id} from {from_warehouse_id} to {to_warehouse_id}")
        return {"from": source, "to": destination}

    def get_stock_levels(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
    ) -> List[StockLevel]:
        query = self.db.query(StockLevel)
        if product_id:
            query = query.filter(StockLevel.product_id == product_id)
        if warehouse_id:
            query = query.filter(StockLevel.warehouse_id == warehouse_id)
        return query.order_by(StockLevel.product_id, StockLevel.warehouse_id).all()

    def get_movements(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        movement_type: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[StockMovement], int]:
        query = self.db.query(StockMovement)
        if product_id:
            query = query.filter(StockMovement.product_id == product_id)
        if warehouse_id:
            query = query.filter(or_(
                StockMovement.from_warehouse_id == warehouse_id,
                StockMovement.to_warehouse_id == warehouse_id,
            ))
        if movement_type:
            query = query.filter(StockMovement.movement_type == movement_type)
        total = query.count()
        items = query.order_by(desc(StockMovement.created_at), desc(StockMovement.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def low_stock(self) -> List[Dict[str, Any]]:
        """Active products whose total quantity across warehouses is at or below reorder level"""
        totals = dict(
            self.db.query(StockLevel.product_id, func.sum(StockLevel.quantity))
            .group_by(StockLevel.product_id).all()
        )
        result = []
        for product in self.db.query(Product).filter(Product.is_active.is_(True)).order_by(Product.product_code):
            on_hand = Decimal(str(totals.get(product.id) or 0))
            reorder = Decimal(str(product.reorder_level or 0))
            if on_hand <= reorder:
                result.append({
                    "product_id": product.id,
                    "product_code": product.product_code,
                    "name": product.name,
                    "total_quantity": float(on_hand),
                    "reorder_level": float(reorder),
                })
        return result
