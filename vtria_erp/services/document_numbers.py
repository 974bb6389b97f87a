"""
Document Number Service
Business keys such as VESPL/PO/2526/001 backed by document_sequences
"""
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.models.system import DocumentSequence


class DocumentType:
    ENQUIRY = "EQ"
    CASE = "C"
    ESTIMATION = "ET"
    QUOTATION = "Q"
    SALES_ORDER = "SO"
    PURCHASE_ORDER = "PO"
    PURCHASE_REQUISITION = "PR"
    GOODS_RECEIPT_NOTE = "GRN"
    DELIVERY_CHALLAN = "DC"
    WORK_ORDER = "WO"
    LEAVE_APPLICATION = "LA"
    EMPLOYEE = "EMP"


def current_financial_year(today: Optional[date] = None) -> str:
    """
    Financial year code running April to March

    2025-04-01 -> "2526", 2026-03-31 -> "2526"
    """
    today = today or date.today()
    start = today.year if today.month >= 4 else today.year - 1
    return f"{start % 100:02d}{(start + 1) % 100:02d}"


class DocumentNumberService:
    """Issues sequential business keys within a session"""

    def __init__(self, db: Session):
        self.db = db

    def _next_sequence(self, doc_type: str, period: str) -> int:
        sequence = self.db.query(DocumentSequence).filter(
            DocumentSequence.document_type == doc_type,
            DocumentSequence.financial_year == period
        ).with_for_update().first()

        if sequence is None:
            sequence = DocumentSequence(document_type=doc_type, financial_year=period, last_sequence=0)
            self.db.add(sequence)

        sequence.last_sequence += 1
        self.db.flush()
        return sequence.last_sequence

    def next_number(self, doc_type: str, today: Optional[date] = None) -> str:
        fy = current_financial_year(today)
        seq = self._next_sequence(doc_type, fy)
        return f"{settings.COMPANY_PREFIX}/{doc_type}/{fy}/{seq:03d}"

    def next_leave_number(self, today: Optional[date] = None) -> str:
        year = (today or date.today()).year
        seq = self._next_sequence(DocumentType.LEAVE_APPLICATION, str(year))
        return f"LA/{year}/{seq:04d}"

    def next_employee_code(self) -> str:
        seq = self._next_sequence(DocumentType.EMPLOYEE, "ALL")
        return f"EMP/{seq:04d}"
