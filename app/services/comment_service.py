"""
Comment Service
Discussion threads on contracts; every change is mirrored into contract history
"""

import logging
from typing import List, Tuple

from fastapi import HTTPException, status
from sqlalchemy import asc, desc
from sqlalchemy.orm import Session

from app.models.comment import Comment
from app.models.contract import Contract, ContractHistory
from app.models.user import User
from app.schemas.comment import CommentCreate, CommentResponse, CommentUpdate

logger = logging.getLogger(__name__)

HISTORY_EXCERPT_LENGTH = 100


def excerpt(content: str) -> str:
    if len(content) > HISTORY_EXCERPT_LENGTH:
        return content[:HISTORY_EXCERPT_LENGTH] + "..."
    return content


def comment_response(comment: Comment, viewer: User) -> CommentResponse:
    """Serialize a comment with the viewer's permissions on it"""
    is_author = comment.author_id == viewer.id
    return CommentResponse.model_validate(comment).model_copy(
        update={"can_edit": is_author, "can_delete": is_author or viewer.is_admin}
    )


class CommentService:
    """Service for contract comments"""

    def __init__(self, db: Session):
        self.db = db

    def _get_comment(self, comment_id: str) -> Comment:
        comment = self.db.query(Comment).filter(Comment.id == comment_id).first()
        if not comment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found"
            )
        return comment

    def _add_history(self, comment: Comment, action: str, details, actor_id):
        self.db.add(
            ContractHistory(
                contract_id=comment.contract_id,
                action=action,
                details={"comment_id": comment.id, **details},
                actor_id=actor_id,
            )
        )

    async def list_comments(
        self,
        contract_id: str,
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Comment], int]:
        if not self.db.query(Contract).filter(Contract.id == contract_id).first():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found"
            )

        query = self.db.query(Comment).filter(Comment.contract_id == contract_id)
        order = asc if sort_order == "asc" else desc

        total = query.count()
        comments = (
            query.order_by(order(Comment.created_at), Comment.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return comments, total

    async def create_comment(self, data: CommentCreate, user: User) -> Comment:
        try:
            contract = self.db.query(Contract).filter(Contract.id == data.contract_id).first()
            if not contract:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found"
                )

            comment = Comment(contract_id=contract.id, author_id=user.id, content=data.content)
            self.db.add(comment)
            self.db.flush()

            self._add_history(
                comment, "COMMENT_ADDED", {"content": excerpt(comment.content)}, user.id
            )
            self.db.commit()
            self.db.refresh(comment)
            logger.info(f"Comment {comment.id} added to contract {contract.number}")
            return comment

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating comment: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create comment",
            )

    async def update_comment(
        self, comment_id: str, data: CommentUpdate, user: User
    ) -> Comment:
        try:
            comment = self._get_comment(comment_id)
            if comment.author_id != user.id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only the author can edit a comment",
                )

            if data.content != comment.content:
                comment.content = data.content
                comment.is_edited = True
                self._add_history(
                    comment, "COMMENT_UPDATED", {"content": excerpt(data.content)}, user.id
                )

            self.db.commit()
            self.db.refresh(comment)
            return comment

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating comment {comment_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update comment",
            )

    async def delete_comment(self, comment_id: str, user: User):
        """Authors delete their own comments; administrators may moderate any"""
        try:
            comment = self._get_comment(comment_id)
            if comment.author_id != user.id and not user.is_admin:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only the author can delete a comment",
                )

            self._add_history(
                comment,
                "COMMENT_DELETED",
                {"author_id": comment.author_id, "content": excerpt(comment.content)},
                user.id,
            )
            self.db.delete(comment)
            self.db.commit()
            logger.info(f"Comment {comment_id} deleted by {user.id}")

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting comment {comment_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to delete comment",
            )
