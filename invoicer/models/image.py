"""Project image model"""

from sqlalchemy import Column, String, Integer, ForeignKey
from sqlalchemy.orm import relationship
from invoicer.models.base import BaseModel


class ProjectImage(BaseModel):
    """
    One image of a project, backed by a blob in the object store.

    display_order is zero-based and dense within a project. Its uniqueness is
    maintained by the coordinator, not by a constraint.
    """

    __tablename__ = "images"

    project_id = Column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    blob_key = Column(String(1024), nullable=False, unique=True)
    display_order = Column(Integer, nullable=False, default=0)
    content_type = Column(String(100), nullable=True)

    # Relationships
    project = relationship("Project", back_populates="images")

    def __repr__(self):
        return f"<ProjectImage(id={self.id}, blob_key={self.blob_key}, order={self.display_order})>"
