"""
Manufacturing API endpoints
Work orders, delivery notes and the production dashboard
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_db, get_pagination_params, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.manufacturing import (
    DeliveryNoteCreate, DeliveryNoteResponse, WorkOrderAssign, WorkOrderCreate, WorkOrderResponse,
    WorkOrderStatusUpdate
)
from vtria_erp.services.manufacturing import ManufacturingService

router = APIRouter()

manufacturing_access = require_module("manufacturing")


@router.get("/dashboard")
async def production_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    return success_response(data=ManufacturingService(db).production_dashboard())


# Work orders

@router.get("/work-orders")
async def list_work_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    case_id: Optional[int] = Query(None),
    assigned_to: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    rows, total = ManufacturingService(db).list_work_orders(
        status=status_filter, case_id=case_id, assigned_to=assigned_to,
        page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [WorkOrderResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@router.post("/work-orders", status_code=status.HTTP_201_CREATED)
async def create_work_order(
    body: WorkOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    """Create a work order; a case still in order moves to production"""
    work_order = ManufacturingService(db).create_work_order(body.model_dump(exclude_none=True), current_user)
    return success_response(data=WorkOrderResponse.model_validate(work_order), message="Work order created")


@router.get("/work-orders/{work_order_id}")
async def get_work_order(
    work_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    work_order = ManufacturingService(db).get_work_order(work_order_id)
    return success_response(data=WorkOrderResponse.model_validate(work_order))


@router.put("/work-orders/{work_order_id}/assign")
async def assign_technician(
    work_order_id: int,
    body: WorkOrderAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    work_order = ManufacturingService(db).assign_technician(work_order_id, body.technician_id, current_user)
    return success_response(data=WorkOrderResponse.model_validate(work_order), message="Technician assigned")


@router.put("/work-orders/{work_order_id}/status")
async def update_work_order_status(
    work_order_id: int,
    body: WorkOrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    work_order = ManufacturingService(db).update_status(work_order_id, body.status, current_user)
    return success_response(
        data=WorkOrderResponse.model_validate(work_order), message=f"Work order {work_order.status}"
    )


# Delivery notes

@router.get("/delivery-notes")
async def list_delivery_notes(
    status_filter: Optional[str] = Query(None, alias="status"),
    case_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    rows, total = ManufacturingService(db).list_delivery_notes(
        status=status_filter, case_id=case_id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [DeliveryNoteResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@router.post("/delivery-notes", status_code=status.HTTP_201_CREATED)
async def create_delivery_note(
    body: DeliveryNoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    note = ManufacturingService(db).create_delivery_note(body.model_dump(exclude_none=True), current_user)
    return success_response(data=DeliveryNoteResponse.model_validate(note), message="Delivery note created")


@router.get("/delivery-notes/{note_id}")
async def get_delivery_note(
    note_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    note = ManufacturingService(db).get_delivery_note(note_id)
    return success_response(data=DeliveryNoteResponse.model_validate(note))


@router.post("/delivery-notes/{note_id}/dispatch")
async def dispatch_delivery(
    note_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    note = ManufacturingService(db).dispatch(note_id, current_user)
    return success_response(data=DeliveryNoteResponse.model_validate(note), message="Delivery dispatched")


@router.post("/delivery-notes/{note_id}/delivered")
async def mark_delivered(
    note_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(manufacturing_access)
):
    note = ManufacturingService(db).mark_delivered(note_id, current_user)
    return success_response(data=DeliveryNoteResponse.model_validate(note), message="Delivery completed")
