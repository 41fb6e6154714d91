from enum import Enum

from sqlalchemy import Column, Uuid, String, Integer, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel


class SprintStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"


class Sprint(BaseModel):
    __tablename__ = "sprints"

    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String, default=SprintStatus.PLANNED.value)  # planned, active, completed

    # Foreign keys
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)

    # Relationships
    project = relationship("Project", back_populates="sprints")
    memberships = relationship("SprintStory", back_populates="sprint", passive_deletes=True)
    tasks = relationship("Task", back_populates="sprint", passive_deletes=True)


class SprintStory(BaseModel):
    """Membership of a story in a sprint, ordered by a dense 1..N priority."""
    __tablename__ = "sprint_stories"
    __table_args__ = (
        UniqueConstraint("sprint_id", "story_id", name="uq_sprint_stories_sprint_story"),
        UniqueConstraint("story_id", name="uq_sprint_stories_story"),
    )

    priority = Column(Integer, nullable=False)

    # Foreign keys
    sprint_id = Column(Uuid, ForeignKey("sprints.id"), nullable=False, index=True)
    story_id = Column(Uuid, ForeignKey("stories.id"), nullable=False)

    # Relationships
    sprint = relationship("Sprint", back_populates="memberships")
    story = relationship("Story")
