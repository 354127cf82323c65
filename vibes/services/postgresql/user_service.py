from datetime import datetime, timedelta, timezone

from fastapi import HTTPException
from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vibes.models.postgresql import User, UserSession

SNAPSHOT_RESET = {
    "last_source": None,
    "last_track_id": None,
    "last_track_name": None,
    "last_artist_name": None,
    "is_currently_playing": False,
}

class UserService:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(UserService, cls).__new__(cls)
        return cls._instance


    async def get_user_by_user_id(self, session: AsyncSession, user_id: str):
        stmt = select(User).where(User.user_id == user_id)
        result = await session.execute(stmt)
        user = result.scalars().first()

        return user


    async def get_user_by_extension_token_hash(self, session: AsyncSession, extension_token_hash: str):
        stmt = select(User).where(User.extension_token_hash == extension_token_hash)
        result = await session.execute(stmt)
        user = result.scalars().first()

        return user


    async def get_users_due_for_poll(self, session: AsyncSession, now: datetime, batch_size: int, min_poll_interval_seconds: int, max_error_count: int):
        min_poll_time = now - timedelta(seconds=min_poll_interval_seconds)

        stmt = (
            select(User)
            .where(
                User.is_sharing == True,
                User.poll_error_count < max_error_count,
                User.encrypted_spotify_access_token.is_not(None),
                or_(User.last_polled_at.is_(None), User.last_polled_at <= min_poll_time),
            )
            .order_by(User.last_polled_at.asc().nulls_first())
            .limit(batch_size)
        )
        result = await session.execute(stmt)
        users = result.scalars().all()

        return users


    async def upsert_user_from_install(self, session: AsyncSession, user_id: str, workspace_id: str, encrypted_slack_token: str):
        user = await self.get_user_by_user_id(session, user_id)
        if user:
            user.workspace_id = workspace_id
            user.encrypted_slack_token = encrypted_slack_token
        else:
            user = User(user_id=user_id, workspace_id=workspace_id, encrypted_slack_token=encrypted_slack_token)
            session.add(user)

        await session.flush()
        await session.refresh(user)

        return user


    async def update_user(self, session: AsyncSession, user: User, **fields):
        """
        Partial update of a loaded user. The unit of work only writes the columns that
        changed, so writers touching disjoint fields (the poller and a sharing toggle,
        say) never clobber each other.
        """
        for key, value in fields.items():
            setattr(user, key, value)

        await session.flush()

        return user


    async def set_spotify_tokens(self, session: AsyncSession, user: User, encrypted_access_token: str, expires_in_seconds: int, encrypted_refresh_token: str = None):
        fields = {
            "encrypted_spotify_access_token": encrypted_access_token,
            "spotify_expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds),
        }
        if encrypted_refresh_token:
            fields["encrypted_spotify_refresh_token"] = encrypted_refresh_token

        return await self.update_user(session, user, **fields)


    async def connect_spotify(self, session: AsyncSession, user_id: str, encrypted_access_token: str, encrypted_refresh_token: str | None, expires_in_seconds: int):
        user = await self.get_user_by_user_id(session, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        return await self.update_user(
            session,
            user,
            encrypted_spotify_access_token=encrypted_access_token,
            encrypted_spotify_refresh_token=encrypted_refresh_token,
            spotify_expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds),
            is_sharing=True,
            poll_error_count=0,
        )


    async def disconnect_spotify(self, session: AsyncSession, user: User):
        return await self.update_user(
            session,
            user,
            encrypted_spotify_access_token=None,
            encrypted_spotify_refresh_token=None,
            spotify_expires_at=None,
            is_sharing=False,
            **SNAPSHOT_RESET,
        )


    async def set_sharing(self, session: AsyncSession, user: User, is_sharing: bool):
        fields = {"is_sharing": is_sharing}
        if is_sharing:
            fields["poll_error_count"] = 0
        else:
            fields.update(SNAPSHOT_RESET)

        return await self.update_user(session, user, **fields)


    async def set_extension_token_hash(self, session: AsyncSession, user: User, extension_token_hash: str):
        return await self.update_user(session, user, extension_token_hash=extension_token_hash)


    async def delete_users_by_workspace_id(self, session: AsyncSession, workspace_id: str):
        user_ids = select(User.user_id).where(User.workspace_id == workspace_id)
        await session.execute(delete(UserSession).where(UserSession.user_id.in_(user_ids)))
        await session.execute(delete(User).where(User.workspace_id == workspace_id))

        await session.flush()
