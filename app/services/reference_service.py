"""
Reference Data Service
Lookup entries (counterparties, contract types, policies, ...) used across the app
"""

import logging
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.contract import Contract
from app.models.reference import Reference, ReferenceType
from app.models.user import User
from app.schemas.reference import ReferenceCreate, ReferenceResponse, ReferenceUpdate

logger = logging.getLogger(__name__)


class ReferenceService:
    """Service for managing reference data"""

    def __init__(self, db: Session):
        self.db = db

    def _get_reference(self, reference_id: str) -> Reference:
        reference = self.db.query(Reference).filter(Reference.id == reference_id).first()
        if not reference:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Reference not found"
            )
        return reference

    def _code_taken(self, code: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(Reference).filter(Reference.code == code)
        if exclude_id:
            query = query.filter(Reference.id != exclude_id)
        return query.first() is not None

    def _check_parent(self, parent_code: Optional[str]):
        if parent_code and not (
            self.db.query(Reference).filter(Reference.code == parent_code).first()
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Parent reference '{parent_code}' does not exist",
            )

    def _counterparty_stats(self, names: List[str]) -> Dict[str, Tuple[int, object]]:
        if not names:
            return {}
        rows = (
            self.db.query(
                Contract.counterparty,
                func.count(Contract.id),
                func.max(Contract.created_at),
            )
            .filter(Contract.counterparty.in_(names))
            .group_by(Contract.counterparty)
            .all()
        )
        return {name: (count, last) for name, count, last in rows}

    def to_response(
        self, reference: Reference, stats: Optional[Dict[str, Tuple[int, object]]] = None
    ) -> ReferenceResponse:
        response = ReferenceResponse.model_validate(reference)
        if reference.type != ReferenceType.COUNTERPARTY:
            return response

        if stats is None:
            stats = self._counterparty_stats([reference.name])
        count, last = stats.get(reference.name, (0, None))
        return response.model_copy(
            update={"contract_count": count, "last_contract_date": last}
        )

    async def list_references(
        self,
        reference_type: Optional[ReferenceType] = None,
        is_active: Optional[bool] = None,
        parent_code: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[ReferenceResponse], int]:
        query = self.db.query(Reference)
        if reference_type:
            query = query.filter(Reference.type == reference_type)
        if is_active is not None:
            query = query.filter(Reference.is_active == is_active)
        if parent_code:
            query = query.filter(Reference.parent_code == parent_code)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Reference.name.ilike(pattern),
                    Reference.code.ilike(pattern),
                    Reference.description.ilike(pattern),
                )
            )

        total = query.count()
        references = (
            query.order_by(Reference.type, Reference.sort_order, Reference.name)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        stats = self._counterparty_stats(
            [r.name for r in references if r.type == ReferenceType.COUNTERPARTY]
        )
        return [self.to_response(r, stats) for r in references], total

    async def get_reference(self, reference_id: str) -> ReferenceResponse:
        return self.to_response(self._get_reference(reference_id))

    async def create_reference(self, data: ReferenceCreate, user: User) -> ReferenceResponse:
        try:
            if self._code_taken(data.code):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Reference code '{data.code}' already exists",
                )
            self._check_parent(data.parent_code)

            payload = data.model_dump(exclude={"metadata"})
            reference = Reference(
                **payload, extra=data.metadata, created_by=user.id, updated_by=user.id
            )
            self.db.add(reference)
            self.db.commit()
            self.db.refresh(reference)
            logger.info(f"Reference {reference.type.value}/{reference.code} created")
            return self.to_response(reference)

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating reference: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create reference",
            )

    async def update_reference(
        self, reference_id: str, data: ReferenceUpdate, user: User
    ) -> ReferenceResponse:
        try:
            reference = self._get_reference(reference_id)
            update_data = data.model_dump(exclude_unset=True)

            new_code = update_data.get("code")
            if new_code and new_code != reference.code and self._code_taken(
                new_code, exclude_id=reference.id
            ):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Reference code '{new_code}' already exists",
                )

            parent_code = update_data.get("parent_code")
            if parent_code:
                if parent_code in (reference.code, new_code):
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="Reference cannot be its own parent",
                    )
                self._check_parent(parent_code)

            if "metadata" in update_data:
                reference.extra = update_data.pop("metadata")
            old_code = reference.code
            for field, value in update_data.items():
                setattr(reference, field, value)
            reference.updated_by = user.id

            # Keep children attached when the code is renamed
            if new_code and new_code != old_code:
                self.db.query(Reference).filter(Reference.parent_code == old_code).update(
                    {Reference.parent_code: new_code}, synchronize_session=False
                )

            self.db.commit()
            self.db.refresh(reference)
            return self.to_response(reference)

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating reference {reference_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update reference",
            )

    async def delete_reference(self, reference_id: str):
        try:
            reference = self._get_reference(reference_id)
            children = (
                self.db.query(Reference)
                .filter(Reference.parent_code == reference.code)
                .count()
            )
            if children:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Reference has {children} child entries",
                )

            self.db.delete(reference)
            self.db.commit()
            logger.info(f"Reference {reference.code} deleted")

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting reference {reference_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to delete reference",
            )
