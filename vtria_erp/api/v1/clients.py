"""
Clients API endpoints
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from vtria_erp.api.deps import get_current_active_user, get_db, get_pagination_params, require_module
from vtria_erp.core.responses import paginated_response, success_response
from vtria_erp.models.user import User
from vtria_erp.schemas.client import ClientCreate, ClientResponse, ClientUpdate
from vtria_erp.services.clients import ClientService

router = APIRouter()


@router.get("/")
async def list_clients(
    pagination: dict = Depends(get_pagination_params),
    search: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    clients, total = ClientService(db).list_clients(
        search=search, status=status_filter, page=pagination["page"], limit=pagination["limit"]
    )
    return paginated_response(
        [ClientResponse.model_validate(c) for c in clients], pagination["page"], pagination["limit"], total
    )


@router.get("/{client_id}")
async def get_client(
    client_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    client = ClientService(db).get_client(client_id)
    return success_response(data=ClientResponse.model_validate(client))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("customers"))
):
    client = ClientService(db).create_client(client_data.model_dump(), current_user)
    return success_response(data=ClientResponse.model_validate(client), message="Client created successfully")


@router.put("/{client_id}")
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("customers"))
):
    client = ClientService(db).update_client(client_id, client_data.model_dump(exclude_unset=True), current_user)
    return success_response(data=ClientResponse.model_validate(client), message="Client updated successfully")


@router.delete("/{client_id}")
async def delete_client(
    client_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_module("customers"))
):
    """Soft delete; refused while the client has active cases"""
    ClientService(db).delete_client(client_id, current_user)
    return success_response(message="Client deleted successfully")
