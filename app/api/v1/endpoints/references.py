"""
Reference data endpoints
Counterparties, contract types, departments and other directories
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_admin
from app.db.database import get_db
from app.models.reference import ReferenceType
from app.models.user import User
from app.schemas.base import MessageResponse, PaginatedResponse, Pagination
from app.schemas.reference import ReferenceCreate, ReferenceResponse, ReferenceUpdate
from app.services.reference_service import ReferenceService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[ReferenceResponse])
async def list_references(
    reference_type: Optional[ReferenceType] = Query(None, alias="type"),
    is_active: Optional[bool] = Query(None),
    parent_code: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List reference entries

    Counterparties carry the number of contracts signed with them and the
    date of the most recent one.
    """
    items, total = await ReferenceService(db).list_references(
        reference_type=reference_type,
        is_active=is_active,
        parent_code=parent_code,
        search=search,
        page=page,
        limit=limit,
    )
    return PaginatedResponse[ReferenceResponse](
        items=items, pagination=Pagination.build(total, page, limit)
    )


@router.post("", response_model=ReferenceResponse, status_code=status.HTTP_201_CREATED)
async def create_reference(
    request: ReferenceCreate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    return await ReferenceService(db).create_reference(request, current_user)


@router.get("/{reference_id}", response_model=ReferenceResponse)
async def get_reference(
    reference_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await ReferenceService(db).get_reference(reference_id)


@router.put("/{reference_id}", response_model=ReferenceResponse)
async def update_reference(
    reference_id: str,
    request: ReferenceUpdate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    """Update an entry; renaming a code moves its children along"""
    return await ReferenceService(db).update_reference(reference_id, request, current_user)


@router.delete("/{reference_id}", response_model=MessageResponse)
async def delete_reference(
    reference_id: str,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db),
):
    await ReferenceService(db).delete_reference(reference_id)
    return MessageResponse(message="Reference deleted")
