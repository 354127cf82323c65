from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vibes.models.postgresql import Workspace
from vibes.services.postgresql.user_service import UserService

class WorkspaceService:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(WorkspaceService, cls).__new__(cls)
            cls._instance._init()
        return cls._instance


    def _init(self):
        self.user_service = UserService()


    async def get_workspace_by_id(self, session: AsyncSession, workspace_id: str):
        stmt = select(Workspace).where(Workspace.workspace_id == workspace_id)
        result = await session.execute(stmt)
        workspace = result.scalars().first()

        return workspace


    async def upsert_workspace(self, session: AsyncSession, workspace_id: str, name: str, encrypted_bot_token: str, bot_user_id: str):
        workspace = await self.get_workspace_by_id(session, workspace_id)
        if workspace:
            workspace.name = name
            workspace.encrypted_bot_token = encrypted_bot_token
            workspace.bot_user_id = bot_user_id
        else:
            workspace = Workspace(workspace_id=workspace_id, name=name, encrypted_bot_token=encrypted_bot_token, bot_user_id=bot_user_id)
            session.add(workspace)

        await session.flush()
        await session.refresh(workspace)

        return workspace


    async def delete_workspace(self, session: AsyncSession, workspace_id: str):
        workspace = await self.get_workspace_by_id(session, workspace_id)
        if not workspace:
            return False

        # Delete dependents explicitly rather than relying on ON DELETE CASCADE being enabled
        await self.user_service.delete_users_by_workspace_id(session, workspace_id)
        await session.delete(workspace)

        await session.flush()

        return True
