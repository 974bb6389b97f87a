"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from vtria_erp.api.v1 import (
    audit,
    auth,
    cases,
    clients,
    dashboard,
    hr,
    inventory,
    location_access,
    manufacturing,
    notifications,
    purchasing,
    sales,
    users,
)

api_router = APIRouter()

# Dashboard routes
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])

# Authentication and user management
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(users.router, prefix="/users", tags=["users"])

# Clients and case workflow
api_router.include_router(clients.router, prefix="/clients", tags=["clients"])
api_router.include_router(cases.router, prefix="/cases", tags=["cases"])

# Audit trail and access control
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
api_router.include_router(location_access.router, prefix="/access", tags=["access-control"])

# Notifications, escalations and SLA monitoring
api_router.include_router(notifications.router, tags=["notifications"])

# Sales routes
api_router.include_router(sales.enquiries_router, prefix="/sales/enquiries", tags=["sales-enquiries"])
api_router.include_router(sales.estimations_router, prefix="/sales/estimations", tags=["estimations"])
api_router.include_router(sales.quotations_router, prefix="/sales/quotations", tags=["quotations"])
api_router.include_router(sales.sales_orders_router, prefix="/sales/orders", tags=["sales-orders"])

# Purchasing routes
api_router.include_router(purchasing.vendors_router, prefix="/purchasing/vendors", tags=["vendors"])
api_router.include_router(
    purchasing.requisitions_router, prefix="/purchasing/requisitions", tags=["purchase-requisitions"]
)
api_router.include_router(purchasing.purchase_orders_router, prefix="/purchasing/orders", tags=["purchase-orders"])
api_router.include_router(purchasing.grn_router, prefix="/purchasing/grn", tags=["goods-receipts"])

# Inventory, manufacturing and HR
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(manufacturing.router, prefix="/manufacturing", tags=["manufacturing"])
api_router.include_router(hr.router, prefix="/hr", tags=["hr"])
