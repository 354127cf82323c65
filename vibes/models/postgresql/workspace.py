from sqlalchemy import Column, String, Text, func
from .base import Base, UTCDateTime

class Workspace(Base):
    __tablename__ = 'workspaces'

    workspace_id = Column(String(32), primary_key=True)  # Slack team id
    name = Column(String(255), nullable=False)
    encrypted_bot_token = Column(Text, nullable=False)
    bot_user_id = Column(String(32), nullable=False)
    installed_at = Column(UTCDateTime, nullable=False, server_default=func.now())
