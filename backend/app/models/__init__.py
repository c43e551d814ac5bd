from app.models.base import Base
from app.models.milestone import Milestone, MilestoneType
from app.models.user import User

__all__ = [
    "Base",
    "User",
    "Milestone",
    "MilestoneType",
]
