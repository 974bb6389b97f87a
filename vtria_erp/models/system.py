"""
System Models
Document number sequences
"""
from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from datetime import datetime

from vtria_erp.core.database import Base


class DocumentSequence(Base):
    """Last issued sequence per document type and financial year"""
    __tablename__ = "document_sequences"
    __table_args__ = (UniqueConstraint("document_type", "financial_year"),)

    id = Column(Integer, primary_key=True, index=True)
    document_type = Column(String(10), nullable=False)
    financial_year = Column(String(10), nullable=False)
    last_sequence = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
