from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Text, func
from .base import Base, UTCDateTime


class PlaybackSource(str, Enum):
    SPOTIFY = "spotify"
    YOUTUBE_MUSIC = "youtube-music"


class User(Base):
    __tablename__ = 'users'

    user_id = Column(String(32), primary_key=True)  # Slack user id
    workspace_id = Column(String(32), ForeignKey('workspaces.workspace_id', ondelete='CASCADE'), nullable=False, index=True)
    encrypted_slack_token = Column(Text, nullable=False)

    encrypted_spotify_access_token = Column(Text)  # NULL when Spotify is not connected
    encrypted_spotify_refresh_token = Column(Text)
    spotify_expires_at = Column(UTCDateTime)

    extension_token_hash = Column(String(64), unique=True, index=True)

    is_sharing = Column(Boolean, nullable=False, default=False)
    last_source = Column(String(32))
    last_track_id = Column(Text)
    last_track_name = Column(Text)
    last_artist_name = Column(Text)
    is_currently_playing = Column(Boolean, nullable=False, default=False)
    last_polled_at = Column(UTCDateTime)
    poll_error_count = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def is_spotify_connected(self) -> bool:
        return self.encrypted_spotify_access_token is not None
