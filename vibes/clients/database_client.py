from pathlib import Path

from fastapi import HTTPException
from alembic.config import Config
from alembic import command
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from vibes.config.logger import logger
from vibes.config.settings import get_settings

PROJECT_ROOT = Path(__file__).resolve().parents[2]

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseClient:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DatabaseClient, cls).__new__(cls)
            cls._instance._init()
        return cls._instance


    def _init(self):
        self._database_url = make_url(get_settings().database_url)

        logger.info(f"Initialising database client for {self._database_url.render_as_string(hide_password=True)}...")

        self._engine = create_async_engine(self._database_url, pool_pre_ping=True)
        if self._database_url.get_backend_name() == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._SessionLocal = sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

        logger.info("Database client initialised successfully.")


    @property
    def engine(self):
        return self._engine


    def run_migrations(self):
        alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
        alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
        alembic_cfg.set_main_option("sqlalchemy.url", self._database_url.render_as_string(hide_password=False).replace("%", "%%"))

        try:
            logger.info("Starting Alembic migration process...")
            command.upgrade(alembic_cfg, "head")
            logger.info("Migrations applied successfully.")
        except OperationalError as e:
            raise RuntimeError("Could not connect to the database. Check your connection settings.") from e
        except Exception as e:
            raise RuntimeError("Alembic migration process failed.") from e


    def session(self) -> AsyncSession:
        return self._SessionLocal()


    async def get_session(self):
        try:
            async with self._SessionLocal() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error of type {type(e).__name__}")
            raise HTTPException(status_code=500, detail="Database error occurred")


    async def dispose(self):
        await self._engine.dispose()
