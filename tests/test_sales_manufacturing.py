"""
Tests for the sales chain and manufacturing
Enquiry -> estimation -> quotation -> sales order -> work order -> delivery
"""

import pytest

from vtria_erp.core.exceptions import (
    BusinessLogicError, InsufficientPermissionsError, ValidationError
)
from vtria_erp.models.audit import AuditLog, ScopeChange
from vtria_erp.services.case_workflow import CaseWorkflowService
from vtria_erp.services.manufacturing import ManufacturingService
from vtria_erp.services.sales import (
    EnquiryService, EstimationService, QuotationService, SalesOrderService
)


@pytest.fixture
def enquiry(db_session, sample_client, director):
    return EnquiryService(db_session).create_enquiry({
        "client_id": sample_client.id,
        "project_name": "MCC panel for pumping station",
        "priority": "high",
    }, director)


@pytest.fixture
def estimation(db_session, enquiry, director):
    return EstimationService(db_session).create_estimation({"enquiry_id": enquiry.id}, director)


@pytest.fixture
def approved_estimation(db_session, estimation, sample_product, director):
    service = EstimationService(db_session)
    service.add_item(estimation.id, {
        "section_id": estimation.sections[0].id,
        "product_id": sample_product.id,
        "quantity": 2,
        "discount_percentage": 10,
    }, director)
    service.submit(estimation.id, director)
    return service.approve(estimation.id, director)


@pytest.fixture
def approved_quotation(db_session, approved_estimation, director):
    service = QuotationService(db_session)
    quotation = service.create_from_estimation(approved_estimation.id, {}, director)
    return service.approve(quotation.id, director)


@pytest.fixture
def confirmed_order(db_session, approved_quotation, director):
    service = SalesOrderService(db_session)
    order = service.create_from_quotation(approved_quotation.id, {"advance_amount": 100000}, director)
    return service.confirm(order.id, director)


class TestEnquiries:
    """Enquiries open cases"""

    def test_enquiry_creates_linked_case(self, enquiry):
        assert enquiry.status == "new"
        assert enquiry.enquiry_number.startswith("VESPL/EQ/")
        assert enquiry.case is not None
        assert enquiry.case.enquiry_id == enquiry.id
        assert enquiry.case.current_state == "enquiry"
        assert enquiry.case.priority == "high"

    def test_assigned_enquiry_starts_assigned(self, db_session, sample_client, director, technician):
        enquiry = EnquiryService(db_session).create_enquiry({
            "client_id": sample_client.id, "project_name": "Retrofit", "assigned_to": technician.id
        }, director)
        assert enquiry.status == "assigned"
        assert enquiry.case.assigned_to == technician.id

    def test_unknown_priority_rejected(self, db_session, sample_client, director):
        with pytest.raises(ValidationError):
            EnquiryService(db_session).create_enquiry(
                {"client_id": sample_client.id, "project_name": "X", "priority": "critical"}, director
            )


class TestEstimations:
    """Costing a case"""

    def test_estimation_moves_case_and_enquiry(self, estimation, enquiry):
        assert estimation.status == "draft"
        assert len(estimation.sections) == 5
        assert enquiry.case.current_state == "estimation"
        assert enquiry.status == "for_estimation"

    def test_only_one_live_estimation_per_case(self, db_session, estimation, enquiry, director):
        with pytest.raises(BusinessLogicError):
            EstimationService(db_session).create_estimation({"enquiry_id": enquiry.id}, director)

    def test_item_pricing_and_totals(self, db_session, estimation, sample_product, director):
        item = EstimationService(db_session).add_item(estimation.id, {
            "section_id": estimation.sections[0].id,
            "product_id": sample_product.id,
            "quantity": 2,
            "discount_percentage": 10,
        }, director)

        db_session.refresh(estimation)
        assert float(item.discounted_price) == 225000
        assert float(item.final_price) == 450000
        assert float(estimation.total_mrp) == 500000
        assert float(estimation.total_discount) == 50000
        assert float(estimation.total_final_price) == 450000

    def test_empty_estimation_cannot_be_submitted(self, db_session, estimation, director):
        with pytest.raises(BusinessLogicError):
            EstimationService(db_session).submit(estimation.id, director)

    def test_technician_cannot_approve(self, db_session, estimation, sample_product, director, technician):
        service = EstimationService(db_session)
        service.add_item(estimation.id, {
            "section_id": estimation.sections[0].id, "product_id": sample_product.id, "quantity": 1
        }, director)
        service.submit(estimation.id, director)
        with pytest.raises(InsufficientPermissionsError):
            service.approve(estimation.id, technician)

    def test_approval_marks_enquiry_estimated(self, approved_estimation, enquiry):
        assert approved_estimation.status == "approved"
        assert enquiry.status == "estimated"


class TestQuotations:
    """Quotations from approved estimations"""

    def test_totals_include_tax(self, db_session, approved_estimation, director):
        quotation = QuotationService(db_session).create_from_estimation(approved_estimation.id, {}, director)

        assert quotation.status == "draft"
        assert float(quotation.total_amount) == 450000
        assert float(quotation.total_tax) == 81000
        assert float(quotation.grand_total) == 531000
        assert quotation.payment_terms

    def test_one_quotation_per_estimation(self, db_session, approved_estimation, director):
        service = QuotationService(db_session)
        service.create_from_estimation(approved_estimation.id, {}, director)
        with pytest.raises(BusinessLogicError):
            service.create_from_estimation(approved_estimation.id, {}, director)

    def test_large_total_change_needs_approval(self, db_session, approved_estimation, director):
        service = QuotationService(db_session)
        quotation = service.create_from_estimation(approved_estimation.id, {}, director)

        service.update_quotation(quotation.id, {"grand_total": 600000, "reason": "Added spares"}, director)

        entry = db_session.query(AuditLog).filter(
            AuditLog.table_name == "quotations", AuditLog.action == "UPDATE"
        ).one()
        assert entry.approval_status == "pending"
        change = db_session.query(ScopeChange).one()
        assert float(change.value_difference) == 69000

    def test_approval_moves_case_to_quotation(self, approved_quotation, enquiry):
        assert approved_quotation.status == "approved"
        assert enquiry.case.current_state == "quotation"
        assert enquiry.status == "quoted"


class TestSalesOrders:
    """Orders from approved quotations"""

    def test_balance_and_terms(self, confirmed_order, approved_quotation):
        assert float(confirmed_order.total_amount) == 531000
        assert float(confirmed_order.balance_amount) == 431000
        assert confirmed_order.payment_terms == approved_quotation.payment_terms
        assert confirmed_order.production_priority == "high"

    def test_advance_cannot_exceed_total(self, db_session, approved_quotation, director):
        with pytest.raises(ValidationError):
            SalesOrderService(db_session).create_from_quotation(
                approved_quotation.id, {"advance_amount": 10 ** 7}, director
            )

    def test_confirm_moves_case_to_order(self, confirmed_order, enquiry):
        assert confirmed_order.status == "confirmed"
        assert enquiry.case.current_state == "order"
        assert enquiry.status == "converted"

    def test_status_flow(self, db_session, confirmed_order, director):
        service = SalesOrderService(db_session)
        with pytest.raises(BusinessLogicError):
            service.update_status(confirmed_order.id, "completed", director)
        assert service.update_status(confirmed_order.id, "in_production", director).status == "in_production"


class TestManufacturing:
    """Work orders and deliveries"""

    def test_work_order_moves_case_to_production(self, db_session, confirmed_order, enquiry, director, technician):
        work_order = ManufacturingService(db_session).create_work_order({
            "case_id": enquiry.case.id, "title": "Panel fabrication", "assigned_to": technician.id
        }, director)

        assert work_order.status == "pending"
        assert work_order.sales_order_id == confirmed_order.id
        assert work_order.assigned_to == technician.id
        assert enquiry.case.current_state == "production"

    def test_work_order_needs_ordered_case(self, db_session, enquiry, director):
        with pytest.raises(BusinessLogicError):
            ManufacturingService(db_session).create_work_order(
                {"case_id": enquiry.case.id, "title": "Too early"}, director
            )

    def test_only_technicians_can_be_assigned(self, db_session, confirmed_order, enquiry, director, admin):
        with pytest.raises(ValidationError):
            ManufacturingService(db_session).create_work_order(
                {"case_id": enquiry.case.id, "title": "Wiring", "assigned_to": admin.id}, director
            )

    def test_work_order_status_flow(self, db_session, confirmed_order, enquiry, director):
        service = ManufacturingService(db_session)
        work_order = service.create_work_order({"case_id": enquiry.case.id, "title": "Wiring"}, director)

        with pytest.raises(BusinessLogicError):
            service.update_status(work_order.id, "completed", director)
        started = service.update_status(work_order.id, "in_progress", director)
        assert started.started_at is not None
        assert service.update_status(work_order.id, "completed", director).completed_at is not None

    def test_dispatch_and_deliver_then_close(self, db_session, confirmed_order, enquiry, director):
        service = ManufacturingService(db_session)
        service.create_work_order({"case_id": enquiry.case.id, "title": "Wiring"}, director)

        note = service.create_delivery_note({"case_id": enquiry.case.id, "transporter": "VRL"}, director)
        assert note.status == "pending"
        service.dispatch(note.id, director)
        assert enquiry.case.current_state == "delivery"

        delivered = service.mark_delivered(note.id, director)
        assert delivered.status == "delivered"

        case = CaseWorkflowService(db_session).transition_case(enquiry.case.id, "closed", director)
        assert case.status == "closed"
        assert enquiry.status == "closed"

    def test_production_dashboard(self, db_session, confirmed_order, enquiry, director):
        service = ManufacturingService(db_session)
        service.create_work_order({"case_id": enquiry.case.id, "title": "Wiring"}, director)

        dashboard = service.production_dashboard()
        assert dashboard["work_orders"]["pending"] == 1
        assert dashboard["cases_in_production"] == 1
