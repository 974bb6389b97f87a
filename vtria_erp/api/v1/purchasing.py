"""
Purchasing API endpoints
Vendors, purchase requisitions, purchase orders and goods receipts
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import client_ip, get_db, get_pagination_params, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.purchasing import (
    GRNCreate, GRNResponse, GRNValidationRequest, PurchaseOrderCancel, PurchaseOrderCreate,
    PurchaseOrderResponse, RequisitionCreate, RequisitionResponse, RequisitionStatusUpdate,
    RequisitionTotalUpdate, VendorCreate, VendorResponse, VendorUpdate
)
from vtria_erp.services.purchasing import (
    GRNService, PurchaseOrderService, PurchaseRequisitionService, VendorService
)

vendors_router = APIRouter()
requisitions_router = APIRouter()
purchase_orders_router = APIRouter()
grn_router = APIRouter()

purchasing_access = require_module("purchasing", "suppliers")


# Vendors

@vendors_router.get("/")
async def list_vendors(
    search: Optional[str] = Query(None),
    status_filter: Optional[str] = Query("active", alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    rows, total = VendorService(db).list_vendors(search=search, status=status_filter, page=page, limit=limit)
    return paginated_response([VendorResponse.model_validate(r) for r in rows], page, limit, total)


@vendors_router.get("/{vendor_id}")
async def get_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    return success_response(data=VendorResponse.model_validate(VendorService(db).get_vendor(vendor_id)))


@vendors_router.post("/", status_code=status.HTTP_201_CREATED)
async def create_vendor(
    body: VendorCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    vendor = VendorService(db).create_vendor(body.model_dump())
    return success_response(data=VendorResponse.model_validate(vendor), message="Vendor created")


@vendors_router.put("/{vendor_id}")
async def update_vendor(
    vendor_id: int,
    body: VendorUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    vendor = VendorService(db).update_vendor(vendor_id, body.model_dump(exclude_unset=True))
    return success_response(data=VendorResponse.model_validate(vendor), message="Vendor updated")


@vendors_router.delete("/{vendor_id}")
async def delete_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    """Marks the vendor inactive"""
    VendorService(db).delete_vendor(vendor_id)
    return success_response(message="Vendor deactivated")


# Purchase requisitions

@requisitions_router.get("/")
async def list_requisitions(
    status_filter: Optional[str] = Query(None, alias="status"),
    case_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    rows, total = PurchaseRequisitionService(db).list_requisitions(
        status=status_filter, case_id=case_id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [RequisitionResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@requisitions_router.post("/", status_code=status.HTTP_201_CREATED)
async def create_requisition(
    body: RequisitionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    requisition = PurchaseRequisitionService(db).create_requisition(body.model_dump(exclude_none=True), current_user)
    return success_response(data=RequisitionResponse.model_validate(requisition), message="Requisition created")


@requisitions_router.get("/{pr_id}")
async def get_requisition(
    pr_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    requisition = PurchaseRequisitionService(db).get_requisition(pr_id)
    return success_response(data=RequisitionResponse.model_validate(requisition))


@requisitions_router.put("/{pr_id}/status")
async def update_requisition_status(
    pr_id: int,
    body: RequisitionStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    requisition = PurchaseRequisitionService(db).update_status(pr_id, body.status, current_user, body.notes)
    return success_response(
        data=RequisitionResponse.model_validate(requisition), message=f"Requisition {requisition.status}"
    )


@requisitions_router.put("/{pr_id}/total")
async def update_requisition_total(
    pr_id: int,
    body: RequisitionTotalUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    requisition = PurchaseRequisitionService(db).update_total(
        pr_id, body.total_amount, current_user, reason=body.reason, ip_address=client_ip(request)
    )
    return success_response(data=RequisitionResponse.model_validate(requisition), message="Requisition updated")


# Purchase orders

@purchase_orders_router.get("/")
async def list_purchase_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    vendor_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    rows, total = PurchaseOrderService(db).list_purchase_orders(
        status=status_filter, vendor_id=vendor_id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [PurchaseOrderResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@purchase_orders_router.post("/", status_code=status.HTTP_201_CREATED)
async def create_purchase_order(
    body: PurchaseOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    order = PurchaseOrderService(db).create_purchase_order(body.model_dump(exclude_none=True), current_user)
    return success_response(data=PurchaseOrderResponse.model_validate(order), message="Purchase order created")


@purchase_orders_router.get("/{po_id}")
async def get_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    order = PurchaseOrderService(db).get_purchase_order(po_id)
    return success_response(data=PurchaseOrderResponse.model_validate(order))


@purchase_orders_router.post("/{po_id}/approve")
async def approve_purchase_order(
    po_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    order = PurchaseOrderService(db).approve(po_id, current_user)
    return success_response(data=PurchaseOrderResponse.model_validate(order), message="Purchase order approved")


@purchase_orders_router.post("/{po_id}/cancel")
async def cancel_purchase_order(
    po_id: int,
    body: Optional[PurchaseOrderCancel] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    order = PurchaseOrderService(db).cancel(po_id, current_user, body.reason if body else None)
    return success_response(data=PurchaseOrderResponse.model_validate(order), message="Purchase order cancelled")


@purchase_orders_router.get("/{po_id}/completion")
async def purchase_order_completion(
    po_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    """Ordered against received quantities per line"""
    return success_response(data=GRNService(db).get_po_completion_status(po_id))


# Goods receipt notes

@grn_router.get("/")
async def list_grns(
    purchase_order_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    rows, total = GRNService(db).list_grns(
        po_id=purchase_order_id, status=status_filter, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [GRNResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@grn_router.post("/validate")
async def validate_grn(
    body: GRNValidationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    """Dry run of a receipt against its purchase order"""
    data = body.model_dump(exclude_none=True)
    result = GRNService(db).validate_grn_against_po(data["purchase_order_id"], data["vendor_id"], data["items"])
    return success_response(data=result)


@grn_router.post("/", status_code=status.HTTP_201_CREATED)
async def create_grn(
    body: GRNCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    grn = GRNService(db).create_grn(body.model_dump(exclude_none=True), current_user)
    return success_response(data=GRNResponse.model_validate(grn), message="Goods receipt recorded")


@grn_router.get("/{grn_id}")
async def get_grn(
    grn_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    return success_response(data=GRNResponse.model_validate(GRNService(db).get_grn(grn_id)))


@grn_router.post("/{grn_id}/verify")
async def verify_grn(
    grn_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    grn = GRNService(db).verify(grn_id, current_user)
    return success_response(data=GRNResponse.model_validate(grn), message="Goods receipt verified")


@grn_router.post("/{grn_id}/approve")
async def approve_grn(
    grn_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(purchasing_access)
):
    grn = GRNService(db).approve(grn_id, current_user)
    return success_response(data=GRNResponse.model_validate(grn), message="Goods receipt approved")
