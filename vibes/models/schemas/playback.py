from pydantic import BaseModel, ConfigDict


class Track(BaseModel):
    track_id: str | None
    title: str
    artists: list[str]
    album: str | None = None
    url: str | None = None

    @property
    def artist_names(self) -> str:
        return ", ".join(self.artists)


class PlaybackState(BaseModel):
    is_playing: bool
    track: Track | None = None

    @property
    def track_id(self) -> str | None:
        return self.track.track_id if self.track else None


NO_ACTIVE_DEVICE = PlaybackState(is_playing=False, track=None)


class SpotifyArtist(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class SpotifyAlbum(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""


class SpotifyItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None  # local files have no Spotify id
    name: str
    artists: list[SpotifyArtist] = []  # podcast episodes have none
    album: SpotifyAlbum | None = None
    external_urls: dict[str, str] = {}

    def to_track(self) -> Track:
        return Track(
            track_id=self.id,
            title=self.name,
            artists=[artist.name for artist in self.artists],
            album=self.album.name if self.album else None,
            url=self.external_urls.get("spotify"),
        )


class SpotifyPlayerResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    is_playing: bool = False
    item: SpotifyItem | None = None

    def to_playback_state(self) -> PlaybackState:
        return PlaybackState(
            is_playing=self.is_playing,
            track=self.item.to_track() if self.item else None,
        )
