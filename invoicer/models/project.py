"""Project model"""

from sqlalchemy import Column, String, Integer, BigInteger, Index
from sqlalchemy.orm import relationship
from invoicer.models.base import BaseModel


class Project(BaseModel):
    """
    A billable project on a client's monthly invoice.

    The id is the root of the project's blob key namespace, so ids are never
    reused (AUTOINCREMENT on SQLite, a sequence on postgres).
    """

    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_client_month", "client_id", "invoice_month"),
        {"sqlite_autoincrement": True},
    )

    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False)
    price_minor_units = Column(BigInteger, nullable=False, default=0)
    client_id = Column(String(100), nullable=False)
    invoice_month = Column(String(20), nullable=False)  # e.g. 2025-01
    version = Column(Integer, nullable=False, default=1, server_default="1")

    # Relationships
    images = relationship(
        "ProjectImage",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectImage.display_order",
    )

    def __repr__(self):
        return f"<Project(id={self.id}, name={self.name}, category={self.category})>"
