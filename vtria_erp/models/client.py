"""
Client Model
Customer companies that raise enquiries
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey
from datetime import datetime

from vtria_erp.core.database import Base


class Client(Base):
    """Customer master"""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    company_name = Column(String(150), nullable=False, index=True)
    contact_person = Column(String(100))
    email = Column(String(100))
    phone = Column(String(30))
    address = Column(Text)
    city = Column(String(60))
    state = Column(String(60))
    gstin = Column(String(20))
    status = Column(String(20), default="active", index=True)

    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
