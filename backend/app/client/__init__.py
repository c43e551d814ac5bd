from app.client.api_client import ApiError, MilestoneApiClient
from app.client.session import AuthSession
from app.client.sync import MilestoneSync

__all__ = ["ApiError", "AuthSession", "MilestoneApiClient", "MilestoneSync"]
