"""
Company structure model
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.models.base import GUID, BaseModel


class Department(BaseModel):
    """Department in the company hierarchy; path is 'Parent/Child'"""

    __tablename__ = "departments"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(GUID(), ForeignKey("departments.id"), nullable=True, index=True)
    level = Column(Integer, default=0, nullable=False)
    path = Column(String(1000), nullable=False)
    children_count = Column(Integer, default=0, nullable=False)

    parent = relationship("Department", remote_side="Department.id", backref="children")
    users = relationship("User", back_populates="department")

    def __repr__(self):
        return f"<Department(path='{self.path}')>"
