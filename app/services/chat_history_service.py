"""
Assistant chat history, one conversation per (contract, user)
"""

import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import HTTPException
from sqlalchemy import and_
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.models.ai import ChatHistory
from app.models.contract import Contract
from app.models.user import User
from app.schemas.ai import ChatHistoryMessage

logger = logging.getLogger(__name__)

MAX_STORED_MESSAGES = 200


class ChatHistoryService:
    def __init__(self, db: Session):
        self.db = db

    def _find(self, contract_id: str, user_id: str):
        return (
            self.db.query(ChatHistory)
            .filter(
                and_(
                    ChatHistory.contract_id == contract_id,
                    ChatHistory.user_id == user_id,
                )
            )
            .first()
        )

    async def get_history(self, contract_id: str, user: User) -> Dict[str, Any]:
        history = self._find(contract_id, user.id)
        return {
            "contract_id": contract_id,
            "user_id": user.id,
            "messages": history.messages if history else [],
            "updated_at": history.updated_at if history else None,
        }

    async def append_messages(
        self, contract_id: str, messages: List[ChatHistoryMessage], user: User
    ) -> Dict[str, Any]:
        try:
            contract = self.db.query(Contract).filter(Contract.id == contract_id).first()
            if not contract:
                raise HTTPException(status_code=404, detail="Contract not found")

            history = self._find(contract_id, user.id)
            if history is None:
                history = ChatHistory(contract_id=contract_id, user_id=user.id, messages=[])
                self.db.add(history)

            now = datetime.utcnow()
            stored = list(history.messages or [])
            for message in messages:
                stored.append(
                    {
                        "role": message.role,
                        "content": message.content,
                        "timestamp": (message.timestamp or now).isoformat(),
                    }
                )
            history.messages = stored[-MAX_STORED_MESSAGES:]
            flag_modified(history, "messages")

            self.db.commit()
            self.db.refresh(history)
            return {
                "contract_id": contract_id,
                "user_id": user.id,
                "messages": history.messages,
                "updated_at": history.updated_at,
            }

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error saving chat history for contract {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to save chat history")

    async def clear_history(self, contract_id: str, user: User):
        try:
            history = self._find(contract_id, user.id)
            if history is None:
                raise HTTPException(status_code=404, detail="Chat history not found")
            self.db.delete(history)
            self.db.commit()

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error clearing chat history for contract {contract_id}: {str(e)}")
            self.db.rollback()
            raise HTTPException(status_code=500, detail="Failed to clear chat history")
