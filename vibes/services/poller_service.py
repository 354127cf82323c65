"""
Background reconciliation of Spotify playback with Slack profile status.

Every tick the poller selects a small batch of users that are sharing, not
parked by repeated failures, and not polled within the per-user interval. Each
selected user is polled concurrently in its own task and its own database
session, so one user's failure never reaches the others or the scheduler.

The Slack call is guarded by change detection against the stored snapshot
(`last_track_id`, `is_currently_playing`), which only moves after a successful
push. A user whose consecutive failures reach the ceiling is left out of
selection and has their status cleared once.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from vibes.clients.database_client import DatabaseClient
from vibes.config.logger import correlation_id_ctx, logger
from vibes.config.settings import get_settings
from vibes.exceptions import SpotifyError, SpotifyRetryableError
from vibes.models.postgresql import PlaybackSource, User
from vibes.services.postgresql.user_service import SNAPSHOT_RESET, UserService
from vibes.services.providers.slack_service import SlackService
from vibes.services.providers.spotify_service import SpotifyService

class PollerService:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(PollerService, cls).__new__(cls)
            cls._instance._init()
        return cls._instance


    def _init(self):
        settings = get_settings()
        self.poll_interval_seconds = settings.poll_interval_seconds
        self.batch_size = settings.poll_batch_size
        self.min_user_poll_interval_seconds = settings.min_user_poll_interval_seconds
        self.max_error_count = settings.max_poll_error_count
        self.extension_priority = timedelta(seconds=settings.extension_priority_seconds)

        self.database_client = DatabaseClient()
        self.user_service = UserService()
        self.spotify_service = SpotifyService()
        self.slack_service = SlackService()

        self._task: asyncio.Task | None = None


    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()


    def start(self):
        if self.is_running:
            return

        self._task = asyncio.create_task(self._run(), name="vibes-poller")
        logger.info("Poller started")


    async def stop(self):
        if not self._task:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Poller stopped")


    async def _run(self):
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            try:
                await self.poll_batch()
            except Exception as e:
                logger.error(f"Poll batch failed with {type(e).__name__}: {e}")


    async def poll_batch(self, now: datetime = None):
        now = now or datetime.now(timezone.utc)

        async with self.database_client.session() as session:
            users = await self.user_service.get_users_due_for_poll(
                session,
                now,
                self.batch_size,
                self.min_user_poll_interval_seconds,
                self.max_error_count
            )
            user_ids = [user.user_id for user in users]

        if not user_ids:
            return []

        logger.info(f"Polling {len(user_ids)} users")

        results = await asyncio.gather(*(self.poll_user(user_id) for user_id in user_ids), return_exceptions=True)
        for user_id, result in zip(user_ids, results):
            if isinstance(result, Exception):
                logger.error(f"Could not record poll failure for user {user_id}: {type(result).__name__}")

        return user_ids


    async def poll_user(self, user_id: str):
        correlation_id_ctx.set(f"poll-{user_id}")

        async with self.database_client.session() as session:
            try:
                async with session.begin():
                    user = await self.user_service.get_user_by_user_id(session, user_id)
                    if not user or not user.is_sharing:
                        return

                    await self.reconcile_user(session, user)
            except Exception as e:
                logger.error(f"Error polling user {user_id}: {type(e).__name__}: {e}")

                async with session.begin():
                    user = await self.user_service.get_user_by_user_id(session, user_id)
                    if user:
                        await self.record_poll_failure(session, user)


    def is_extension_authoritative(self, user: User, now: datetime) -> bool:
        if user.last_source in (None, PlaybackSource.SPOTIFY.value) or not user.last_polled_at:
            return False

        return now - user.last_polled_at < self.extension_priority


    async def reconcile_user(self, session: AsyncSession, user: User, now: datetime = None):
        """
        Poll Spotify for one user and push a Slack status if the playback changed.

        Returns True when the snapshot was reconciled, False when the attempt was
        counted as a failure, and None when the poll was skipped because the browser
        extension reported more recently.
        """
        now = now or datetime.now(timezone.utc)

        if self.is_extension_authoritative(user, now):
            logger.info(f"User {user.user_id}: skipping Spotify poll, {user.last_source} extension is active")
            return None

        try:
            playback = await self.spotify_service.get_playback_state(user)
        except SpotifyError as e:
            log = logger.warning if isinstance(e, SpotifyRetryableError) else logger.error
            log(f"User {user.user_id}: {e.detail}")
            await self.record_poll_failure(session, user, now)
            return False

        if playback is None:
            logger.warning(f"User {user.user_id}: could not determine Spotify playback state")
            await self.record_poll_failure(session, user, now)
            return False

        current_track = playback.track
        track_changed = playback.track_id != user.last_track_id
        playing_state_changed = playback.is_playing != user.is_currently_playing

        if track_changed or playing_state_changed:
            logger.info(f"User {user.user_id}: updating status (track_changed={track_changed}, playing_state_changed={playing_state_changed})")

            if not await self.slack_service.set_user_status(user, current_track, playback.is_playing):
                await self.record_poll_failure(session, user, now)
                return False

        await self.user_service.update_user(
            session,
            user,
            last_source=PlaybackSource.SPOTIFY.value if playback.is_playing else None,
            last_track_id=playback.track_id,
            last_track_name=current_track.title if current_track else None,
            last_artist_name=current_track.artist_names if current_track else None,
            is_currently_playing=playback.is_playing,
            last_polled_at=now,
            poll_error_count=0
        )

        return True


    async def record_poll_failure(self, session: AsyncSession, user: User, now: datetime = None):
        now = now or datetime.now(timezone.utc)
        error_count = user.poll_error_count + 1

        await self.user_service.update_user(session, user, poll_error_count=error_count, last_polled_at=now)

        if error_count < self.max_error_count:
            return

        logger.warning(f"User {user.user_id} reached {error_count} consecutive poll errors, pausing polling")

        try:
            cleared = await self.slack_service.clear_user_status(user)
        except Exception as e:
            logger.warning(f"Ignoring failure to clear status for parked user {user.user_id}: {type(e).__name__}")
            return

        if cleared:
            await self.user_service.update_user(session, user, **SNAPSHOT_RESET)
