from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator

from vibes.models.schemas.playback import Track

MAX_SOURCE_LENGTH = 32
MAX_TEXT_LENGTH = 500
MAX_URL_LENGTH = 2000

class ExtensionTrack(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source: StrictStr
    title: StrictStr
    artist: StrictStr
    album: StrictStr | None = None
    thumbnail_url: StrictStr | None = Field(default=None, alias="thumbnailUrl")
    url: StrictStr | None = None

    @field_validator('source')
    def validate_source(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('must not be empty')
        if len(v) > MAX_SOURCE_LENGTH:
            raise ValueError(f'must be at most {MAX_SOURCE_LENGTH} characters long')
        return v

    @field_validator('title', 'artist')
    def validate_text(cls, v: str) -> str:
        if len(v) > MAX_TEXT_LENGTH:
            raise ValueError(f'must be at most {MAX_TEXT_LENGTH} characters long')
        return v

    @field_validator('url', 'thumbnail_url')
    def validate_url(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_URL_LENGTH:
            raise ValueError(f'must be at most {MAX_URL_LENGTH} characters long')
        return v

    @property
    def track_id(self) -> str:
        return f"{self.source}:{self.title}:{self.artist}"

    def to_track(self) -> Track:
        return Track(
            track_id=self.track_id,
            title=self.title,
            artists=[self.artist],
            album=self.album,
            url=self.url,
        )


class NowPlayingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    track: ExtensionTrack | None = None
    is_playing: StrictBool = Field(alias="isPlaying")
    timestamp: StrictInt | StrictFloat
