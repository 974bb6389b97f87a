"""
Sales API endpoints
Enquiries, estimations, quotations and sales orders
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import client_ip, get_db, get_pagination_params, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.sales import (
    DecisionRequest, EnquiryAssign, EnquiryCreate, EnquiryResponse, EnquiryStatusUpdate,
    EnquiryUpdate, EstimationCreate, EstimationItemCreate, EstimationItemResponse,
    EstimationResponse, QuotationCreate, QuotationResponse, QuotationUpdate, SalesOrderCreate,
    SalesOrderResponse, SalesOrderStatusUpdate
)
from vtria_erp.services.sales import EnquiryService, EstimationService, QuotationService, SalesOrderService

enquiries_router = APIRouter()
estimations_router = APIRouter()
quotations_router = APIRouter()
sales_orders_router = APIRouter()

sales_access = require_module("sales")
estimation_access = require_module("estimations", "sales")
quotation_access = require_module("quotations", "sales")


# Enquiries

@enquiries_router.get("/")
async def list_enquiries(
    status_filter: Optional[str] = Query(None, alias="status"),
    client_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    rows, total = EnquiryService(db).list_enquiries(
        status=status_filter, client_id=client_id, search=search,
        page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [EnquiryResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@enquiries_router.post("/", status_code=status.HTTP_201_CREATED)
async def create_enquiry(
    body: EnquiryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    """Create an enquiry and open its case"""
    enquiry = EnquiryService(db).create_enquiry(body.model_dump(), current_user)
    data = EnquiryResponse.model_validate(enquiry).model_dump()
    data["case_id"] = enquiry.case.id if enquiry.case else None
    data["case_number"] = enquiry.case.case_number if enquiry.case else None
    return success_response(data=data, message="Enquiry created successfully")


@enquiries_router.get("/{enquiry_id}")
async def get_enquiry(
    enquiry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    enquiry = EnquiryService(db).get_enquiry(enquiry_id)
    data = EnquiryResponse.model_validate(enquiry).model_dump()
    data["case_number"] = enquiry.case.case_number if enquiry.case else None
    data["history"] = [
        {
            "previous_status": h.previous_status,
            "new_status": h.new_status,
            "comments": h.comments,
            "changed_by": h.changed_by,
            "created_at": h.created_at,
        }
        for h in enquiry.history
    ]
    return success_response(data=data)


@enquiries_router.put("/{enquiry_id}")
async def update_enquiry(
    enquiry_id: int,
    body: EnquiryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    enquiry = EnquiryService(db).update_enquiry(enquiry_id, body.model_dump(exclude_unset=True), current_user)
    return success_response(data=EnquiryResponse.model_validate(enquiry), message="Enquiry updated")


@enquiries_router.put("/{enquiry_id}/status")
async def update_enquiry_status(
    enquiry_id: int,
    body: EnquiryStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    enquiry = EnquiryService(db).update_status(enquiry_id, body.status, current_user, body.comments)
    return success_response(data=EnquiryResponse.model_validate(enquiry), message=f"Enquiry {enquiry.status}")


@enquiries_router.put("/{enquiry_id}/assign")
async def assign_enquiry(
    enquiry_id: int,
    body: EnquiryAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    enquiry = EnquiryService(db).assign_enquiry(enquiry_id, body.assigned_to, current_user)
    return success_response(data=EnquiryResponse.model_validate(enquiry), message="Enquiry assigned")


@enquiries_router.delete("/{enquiry_id}")
async def delete_enquiry(
    enquiry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    EnquiryService(db).delete_enquiry(enquiry_id, current_user)
    return success_response(message="Enquiry deleted")


# Estimations

@estimations_router.get("/")
async def list_estimations(
    status_filter: Optional[str] = Query(None, alias="status"),
    case_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    rows, total = EstimationService(db).list_estimations(
        status=status_filter, case_id=case_id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [EstimationResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@estimations_router.post("/", status_code=status.HTTP_201_CREATED)
async def create_estimation(
    body: EstimationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    estimation = EstimationService(db).create_estimation(body.model_dump(), current_user)
    return success_response(data=EstimationResponse.model_validate(estimation), message="Estimation created")


@estimations_router.get("/{estimation_id}")
async def get_estimation(
    estimation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    estimation = EstimationService(db).get_estimation(estimation_id)
    return success_response(data=EstimationResponse.model_validate(estimation))


@estimations_router.post("/{estimation_id}/items", status_code=status.HTTP_201_CREATED)
async def add_estimation_item(
    estimation_id: int,
    body: EstimationItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    item = EstimationService(db).add_item(estimation_id, body.model_dump(), current_user)
    return success_response(data=EstimationItemResponse.model_validate(item), message="Item added")


@estimations_router.delete("/{estimation_id}/items/{item_id}")
async def remove_estimation_item(
    estimation_id: int,
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    EstimationService(db).remove_item(estimation_id, item_id, current_user)
    return success_response(message="Item removed")


@estimations_router.post("/{estimation_id}/submit")
async def submit_estimation(
    estimation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    estimation = EstimationService(db).submit(estimation_id, current_user)
    return success_response(data=EstimationResponse.model_validate(estimation), message="Estimation submitted")


@estimations_router.post("/{estimation_id}/approve")
async def approve_estimation(
    estimation_id: int,
    body: Optional[DecisionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    estimation = EstimationService(db).approve(estimation_id, current_user, body.notes if body else None)
    return success_response(data=EstimationResponse.model_validate(estimation), message="Estimation approved")


@estimations_router.post("/{estimation_id}/reject")
async def reject_estimation(
    estimation_id: int,
    body: Optional[DecisionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(estimation_access)
):
    estimation = EstimationService(db).reject(estimation_id, current_user, body.reason if body else None)
    return success_response(data=EstimationResponse.model_validate(estimation), message="Estimation rejected")


@estimations_router.post("/{estimation_id}/quotation", status_code=status.HTTP_201_CREATED)
async def create_quotation(
    estimation_id: int,
    body: Optional[QuotationCreate] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(quotation_access)
):
    """Create the quotation for an approved estimation"""
    data = body.model_dump(exclude_none=True) if body else {}
    quotation = QuotationService(db).create_from_estimation(estimation_id, data, current_user)
    return success_response(data=QuotationResponse.model_validate(quotation), message="Quotation created")


# Quotations

@quotations_router.get("/")
async def list_quotations(
    status_filter: Optional[str] = Query(None, alias="status"),
    case_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(quotation_access)
):
    rows, total = QuotationService(db).list_quotations(
        status=status_filter, case_id=case_id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [QuotationResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@quotations_router.get("/{quotation_id}")
async def get_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(quotation_access)
):
    quotation = QuotationService(db).get_quotation(quotation_id)
    return success_response(data=QuotationResponse.model_validate(quotation))


@quotations_router.put("/{quotation_id}")
async def update_quotation(
    quotation_id: int,
    body: QuotationUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(quotation_access)
):
    """Update terms or totals; value changes are tracked as scope changes"""
    quotation = QuotationService(db).update_quotation(
        quotation_id, body.model_dump(exclude_none=True), current_user, ip_address=client_ip(request)
    )
    return success_response(data=QuotationResponse.model_validate(quotation), message="Quotation updated")


@quotations_router.post("/{quotation_id}/send")
async def send_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(quotation_access)
):
    quotation = QuotationService(db).send(quotation_id, current_user)
    return success_response(data=QuotationResponse.model_validate(quotation), message="Quotation sent")


@quotations_router.post("/{quotation_id}/approve")
async def approve_quotation(
    quotation_id: int,
    body: Optional[DecisionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(quotation_access)
):
    quotation = QuotationService(db).approve(quotation_id, current_user, body.notes if body else None)
    return success_response(data=QuotationResponse.model_validate(quotation), message="Quotation approved")


@quotations_router.post("/{quotation_id}/reject")
async def reject_quotation(
    quotation_id: int,
    body: Optional[DecisionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(quotation_access)
):
    quotation = QuotationService(db).reject(quotation_id, current_user, body.reason if body else None)
    return success_response(data=QuotationResponse.model_validate(quotation), message="Quotation rejected")


@quotations_router.post("/{quotation_id}/sales-order", status_code=status.HTTP_201_CREATED)
async def create_sales_order(
    quotation_id: int,
    body: Optional[SalesOrderCreate] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    """Create a sales order from an approved quotation"""
    data = body.model_dump(exclude_none=True) if body else {}
    order = SalesOrderService(db).create_from_quotation(quotation_id, data, current_user)
    return success_response(data=SalesOrderResponse.model_validate(order), message="Sales order created")


# Sales orders

@sales_orders_router.get("/")
async def list_sales_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    case_id: Optional[int] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    rows, total = SalesOrderService(db).list_sales_orders(
        status=status_filter, case_id=case_id, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [SalesOrderResponse.model_validate(r) for r in rows], pagination["page"], pagination["limit"], total
    )


@sales_orders_router.get("/{order_id}")
async def get_sales_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    order = SalesOrderService(db).get_sales_order(order_id)
    return success_response(data=SalesOrderResponse.model_validate(order))


@sales_orders_router.post("/{order_id}/confirm")
async def confirm_sales_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    order = SalesOrderService(db).confirm(order_id, current_user)
    return success_response(data=SalesOrderResponse.model_validate(order), message="Sales order confirmed")


@sales_orders_router.put("/{order_id}/status")
async def update_sales_order_status(
    order_id: int,
    body: SalesOrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(sales_access)
):
    order = SalesOrderService(db).update_status(order_id, body.status, current_user)
    return success_response(data=SalesOrderResponse.model_validate(order), message=f"Sales order {order.status}")
