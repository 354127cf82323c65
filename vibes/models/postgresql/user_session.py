import uuid

from sqlalchemy import Column, String, Boolean, ForeignKey, func
from .base import Base, UTCDateTime

class UserSession(Base):
    __tablename__ = 'user_sessions'

    user_session_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(32), ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
    expires_at = Column(UTCDateTime, nullable=False)
    is_invalidated = Column(Boolean, nullable=False, default=False)
