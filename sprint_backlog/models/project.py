from sqlalchemy import Column, Uuid, String, Integer, Text, ForeignKey
from sqlalchemy.orm import relationship
from .base import BaseModel


class Project(BaseModel):
    __tablename__ = "projects"

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)

    # Relationships
    epics = relationship("Epic", back_populates="project")
    sprints = relationship("Sprint", back_populates="project")


class Epic(BaseModel):
    __tablename__ = "epics"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=True)
    estimated_points = Column(Integer, nullable=True)

    # Foreign keys
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)

    # Relationships
    project = relationship("Project", back_populates="epics")
    features = relationship("Feature", back_populates="epic")


class Feature(BaseModel):
    __tablename__ = "features"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=True)

    # Foreign keys
    epic_id = Column(Uuid, ForeignKey("epics.id"), nullable=False, index=True)

    # Relationships
    epic = relationship("Epic", back_populates="features")
    stories = relationship("Story", back_populates="feature")
