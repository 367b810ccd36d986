"""Database models package"""

from invoicer.models.base import BaseModel
from invoicer.models.project import Project
from invoicer.models.image import ProjectImage

# Export all models
__all__ = [
    "BaseModel",
    "Project",
    "ProjectImage",
]
