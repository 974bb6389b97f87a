"""
VTRIA Database Models
SQLAlchemy models for every ERP table
"""

from vtria_erp.models.user import User
from vtria_erp.models.client import Client
from vtria_erp.models.case import Case, CaseStateTransition, CaseWorkflowDefinition
from vtria_erp.models.notification import (
    NotificationTemplate, NotificationQueue, EscalationRule, CaseEscalation
)
from vtria_erp.models.audit import AuditLog, ScopeChange
from vtria_erp.models.location_access import (
    OfficeLocation, EmployeeLocationPermission, IPAccessRule, LoginAttemptLog
)
from vtria_erp.models.sales import (
    SalesEnquiry, EnquiryStatusHistory, Estimation, EstimationSection, EstimationItem,
    Quotation, QuotationItem, SalesOrder, SalesOrderItem
)
from vtria_erp.models.purchasing import (
    Vendor, PurchaseRequisition, PurchaseRequisitionItem, PurchaseOrder,
    PurchaseOrderItem, GoodsReceiptNote, GRNItem
)
from vtria_erp.models.inventory import Product, Warehouse, StockLevel, StockMovement
from vtria_erp.models.manufacturing import WorkOrder, DeliveryNote
from vtria_erp.models.hr import (
    Department, Employee, AttendanceRecord, LeaveType, LeaveBalance, LeaveApplication
)
from vtria_erp.models.system import DocumentSequence

__all__ = [
    "User", "Client",
    "Case", "CaseStateTransition", "CaseWorkflowDefinition",
    "NotificationTemplate", "NotificationQueue", "EscalationRule", "CaseEscalation",
    "AuditLog", "ScopeChange",
    "OfficeLocation", "EmployeeLocationPermission", "IPAccessRule", "LoginAttemptLog",
    "SalesEnquiry", "EnquiryStatusHistory", "Estimation", "EstimationSection", "EstimationItem",
    "Quotation", "QuotationItem", "SalesOrder", "SalesOrderItem",
    "Vendor", "PurchaseRequisition", "PurchaseRequisitionItem", "PurchaseOrder",
    "PurchaseOrderItem", "GoodsReceiptNote", "GRNItem",
    "Product", "Warehouse", "StockLevel", "StockMovement",
    "WorkOrder", "DeliveryNote",
    "Department", "Employee", "AttendanceRecord", "LeaveType", "LeaveBalance", "LeaveApplication",
    "DocumentSequence",
]
