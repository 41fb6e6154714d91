from sqlalchemy import Column, Uuid, Date, ForeignKey, Numeric, Text
from sqlalchemy.orm import relationship
from .base import BaseModel


class Worklog(BaseModel):
    """Hours a user logged against a task on a given day"""
    __tablename__ = "worklogs"

    date = Column(Date, nullable=False)
    hours = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)

    # Foreign keys
    task_id = Column(Uuid, ForeignKey("tasks.id"), nullable=True, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    # Relationships
    task = relationship("Task", back_populates="worklogs")
    user = relationship("User")
