"""
Centralised import point for all SQLAlchemy models.
Imports are ordered so foreign key targets are registered before the tables that
reference them. Import models from this file instead of individual modules.
"""

from .base import Base                                  # Always import Base first - foundation for all models
from .workspace import Workspace                        # Independent core model
from .user import User, PlaybackSource                  # Depends on Workspace
from .user_session import UserSession                   # Depends on User

__all__ = [
    "Base",
    "Workspace",
    "User",
    "PlaybackSource",
    "UserSession",
]
