from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlmodel import SQLModel

from shared.settings import Settings
from shared.logging import get_logger

# Import your SQLModel table definitions here
# This ensures that SQLModel.metadata knows about them.
from shared.models_db import StoredObject # noqa

logger = get_logger(__name__)

def create_engine(app_settings: Settings) -> AsyncEngine:
    """Creates the async engine. Owned by the application lifespan, not by this module."""
    return create_async_engine(
        app_settings.DATABASE_URL,
        echo=app_settings.DB_ECHO_LOG,
        future=True # Use the new style execution for SQLAlchemy 2.0
    )

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False, # Prevent SQLAlchemy from expiring objects after commit
        autoflush=False, # Disable autoflush, manage manually for more control
    )

async def create_db_and_tables(engine: AsyncEngine):
    """Utility function to create all tables defined by SQLModel metadata."""
    logger.info("Initializing database and creating tables if they don't exist...")
    async with engine.begin() as conn:
        try:
            await conn.run_sync(SQLModel.metadata.create_all)
            logger.info("Database tables checked/created successfully.")
        except Exception as e:
            logger.error(f"Error creating database tables: {e}", exc_info=True)
            raise

async def close_db_connection(engine: AsyncEngine):
    logger.info("Closing database connection pool...")
    await engine.dispose()
    logger.info("Database connection pool closed.")
