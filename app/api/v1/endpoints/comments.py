"""
Comment endpoints
Discussion on contracts between initiators and approvers
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.user import User
from app.schemas.base import MessageResponse, Pagination
from app.schemas.comment import (
    CommentCreate,
    CommentListResponse,
    CommentResponse,
    CommentUpdate,
)
from app.services.comment_service import CommentService, comment_response

router = APIRouter()


@router.get("", response_model=CommentListResponse)
async def list_comments(
    contract_id: str = Query(..., description="Contract whose comments to list"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Comments of a contract, newest first by default"""
    comments, total = await CommentService(db).list_comments(
        contract_id, sort_order=sort_order, page=page, limit=limit
    )
    return CommentListResponse(
        comments=[comment_response(c, current_user) for c in comments],
        pagination=Pagination.build(total, page, limit),
    )


@router.post("", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_comment(
    request: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    comment = await CommentService(db).create_comment(request, current_user)
    return comment_response(comment, current_user)


@router.put("/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: str,
    request: CommentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit a comment; only its author may do so"""
    comment = await CommentService(db).update_comment(comment_id, request, current_user)
    return comment_response(comment, current_user)


@router.delete("/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    await CommentService(db).delete_comment(comment_id, current_user)
    return MessageResponse(message="Comment deleted")
