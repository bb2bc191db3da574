"""
Contract discussion comments
"""

from sqlalchemy import Boolean, Column, ForeignKey, Text
from sqlalchemy.orm import relationship

from app.models.base import GUID, BaseModel


class Comment(BaseModel):
    """Comment left on a contract by one of its participants"""

    __tablename__ = "contract_comments"

    contract_id = Column(GUID(), ForeignKey("contracts.id"), nullable=False, index=True)
    author_id = Column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_edited = Column(Boolean, default=False, nullable=False)

    contract = relationship("Contract", back_populates="comments")
    author = relationship("User")

    def __repr__(self):
        return f"<Comment(contract='{self.contract_id}', author='{self.author_id}')>"

    @property
    def author_name(self):
        return self.author.display_name if self.author else None

    @property
    def author_role(self):
        return self.author.role_code if self.author else None
