"""
VTRIA Pydantic Schemas
Request/Response models for the VTRIA ERP API
"""
