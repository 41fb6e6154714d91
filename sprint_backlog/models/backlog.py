from sqlalchemy import Column, Uuid, String, Integer, Text, ForeignKey, JSON, Numeric, Boolean
from sqlalchemy.orm import relationship
from .base import BaseModel


class Story(BaseModel):
    __tablename__ = "stories"

    # Core fields
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    acceptance_criteria = Column(JSON, default=list)
    story_points = Column(Integer, nullable=True)
    priority = Column(Integer, nullable=True)

    # Estimates
    estimated_dev_hours = Column(Numeric(10, 2), nullable=True)
    estimated_test_hours = Column(Numeric(10, 2), nullable=True)

    # Foreign keys
    feature_id = Column(Uuid, ForeignKey("features.id"), nullable=False, index=True)

    # Relationships
    feature = relationship("Feature", back_populates="stories")
    tasks = relationship("Task", back_populates="story")


class Task(BaseModel):
    __tablename__ = "tasks"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, default="feature")
    status = Column(String, default="todo")  # todo, in_progress, done (free-form)

    # Effort and cost
    dev_hours = Column(Numeric(10, 2), nullable=True)
    test_hours = Column(Numeric(10, 2), nullable=True)
    cost_dev = Column(Numeric(12, 2), nullable=True)
    cost_test = Column(Numeric(12, 2), nullable=True)
    total_cost = Column(Numeric(12, 2), nullable=True)  # explicit override

    # Backlog placement
    is_in_product_backlog = Column(Boolean, default=True)
    is_in_sprint_backlog = Column(Boolean, default=False)

    # Foreign keys
    story_id = Column(Uuid, ForeignKey("stories.id"), nullable=True, index=True)
    sprint_id = Column(Uuid, ForeignKey("sprints.id"), nullable=True, index=True)
    assignee_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    # Relationships
    story = relationship("Story", back_populates="tasks")
    sprint = relationship("Sprint", back_populates="tasks")
    assignee = relationship("User")
    worklogs = relationship("Worklog", back_populates="task")
