import pytest
from pydantic import ValidationError

from vibes.models.schemas.extension.now_playing_request import NowPlayingRequest
from vibes.models.schemas.playback import SpotifyPlayerResponse

def test_spotify_player_response_to_playback_state():
    playback = SpotifyPlayerResponse.model_validate({
        "is_playing": True,
        "device": {"id": "d1"},
        "item": {
            "id": "track-1",
            "name": "Song",
            "artists": [{"name": "A"}, {"name": "B"}],
            "album": {"name": "Album", "images": []},
            "external_urls": {"spotify": "https://open.spotify.com/track/track-1"},
        },
    }).to_playback_state()

    assert playback.is_playing
    assert playback.track_id == "track-1"
    assert playback.track.artist_names == "A, B"
    assert playback.track.url == "https://open.spotify.com/track/track-1"

def test_spotify_player_response_without_item():
    playback = SpotifyPlayerResponse.model_validate({"is_playing": False, "item": None}).to_playback_state()

    assert not playback.is_playing
    assert playback.track is None
    assert playback.track_id is None

def test_local_file_has_no_track_id():
    playback = SpotifyPlayerResponse.model_validate({"is_playing": True, "item": {"id": None, "name": "Local Song", "artists": []}}).to_playback_state()

    assert playback.track_id is None
    assert playback.track.title == "Local Song"

def test_now_playing_request_builds_track():
    request = NowPlayingRequest.model_validate_json(
        '{"track": {"source": "youtube-music", "title": "Song", "artist": "Artist", "thumbnailUrl": "https://x"}, "isPlaying": true, "timestamp": 1}'
    )

    track = request.track.to_track()
    assert track.track_id == "youtube-music:Song:Artist"
    assert track.artists == ["Artist"]
    assert request.track.thumbnail_url == "https://x"

@pytest.mark.parametrize("raw", [
    '{"track": null, "isPlaying": 1, "timestamp": 1}',
    '{"track": null, "isPlaying": true, "timestamp": true}',
    '{"track": {"source": "", "title": "t", "artist": "a"}, "isPlaying": true, "timestamp": 1}',
    '{"track": {"source": "' + "s" * 33 + '", "title": "t", "artist": "a"}, "isPlaying": true, "timestamp": 1}',
])
def test_now_playing_request_rejects_bad_types(raw):
    with pytest.raises(ValidationError):
        NowPlayingRequest.model_validate_json(raw)
