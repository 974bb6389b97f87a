"""
Client Service
Customer master maintenance
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from vtria_erp.models.case import Case
from vtria_erp.models.client import Client
from vtria_erp.models.user import User
from vtria_erp.services.audit import AuditService

logger = logging.getLogger(__name__)

CLIENT_FIELDS = ("company_name", "contact_person", "email", "phone", "address", "city", "state", "gstin", "status")


class ClientService:
    """Service for client records"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    def list_clients(
        self, search: Optional[str] = None, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Client], int]:
        query = self.db.query(Client).filter(Client.status != "deleted")
        if status:
            query = query.filter(Client.status == status)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Client.company_name.ilike(term),
                Client.contact_person.ilike(term),
                Client.email.ilike(term),
                Client.city.ilike(term),
            ))
        total = query.count()
        items = query.order_by(Client.company_name).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def get_client(self, client_id: int) -> Client:
        client = self.db.query(Client).filter(Client.id == client_id, Client.status != "deleted").first()
        if not client:
            raise NotFoundError(f"Client {client_id} not found")
        return client

    def create_client(self, data: Dict[str, Any], user: User) -> Client:
        values = {k: v for k, v in data.items() if k in CLIENT_FIELDS and v is not None}
        if not values.get("company_name"):
            raise ValidationError("Company name is required")
        values.setdefault("status", "active")

        client = Client(created_by=user.id, **values)
        self.db.add(client)
        self.db.flush()
        self.audit.log_audit("clients", client.id, "CREATE", new_values=values, user=user)
        self.db.commit()
        self.db.refresh(client)
        logger.info(f"Client created: {client.company_name}")
        return client

    def update_client(self, client_id: int, data: Dict[str, Any], user: User) -> Client:
        client = self.get_client(client_id)
        values = {k: v for k, v in data.items() if k in CLIENT_FIELDS and v is not None}
        if not values:
            raise ValidationError("No updatable fields supplied")

        old_values = {k: getattr(client, k) for k in values}
        for field, value in values.items():
            setattr(client, field, value)
        self.audit.log_audit("clients", client.id, "UPDATE", old_values=old_values, new_values=values, user=user)
        self.db.commit()
        self.db.refresh(client)
        return client

    def delete_client(self, client_id: int, user: User):
        """Soft delete; refused while the client has active cases"""
        client = self.get_client(client_id)
        active_cases = self.db.query(Case).filter(Case.client_id == client.id, Case.status == "active").count()
        if active_cases:
            raise BusinessLogicError(
                f"Client has {active_cases} active case(s) and cannot be deleted",
                details={"active_cases": active_cases}
            )

        old_status = client.status
        client.status = "deleted"
        self.audit.log_audit(
            "clients", client.id, "DELETE",
            old_values={"status": old_status}, new_values={"status": "deleted"}, user=user
        )
        self.db.commit()
        logger.info(f"Client deleted: {client.company_name}")
