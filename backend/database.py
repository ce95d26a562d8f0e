from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from models import Base
from sqlalchemy import event, text
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./mockprep.db")


def configure_sqlite(async_engine):
    # aiosqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
    # Let SQLAlchemy emit BEGIN itself so nested transactions behave.
    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return async_engine


engine = create_async_engine(DATABASE_URL, echo=False)
if DATABASE_URL.startswith("sqlite"):
    configure_sqlite(engine)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        # Databases created before call_id was unique may hold duplicates.
        # Keep the newest record per call before enforcing uniqueness.
        await conn.execute(text(
            """
            DELETE FROM interviews
            WHERE id NOT IN (
                SELECT MAX(id)
                FROM interviews
                GROUP BY call_id
            )
            """
        ))
        await conn.execute(text(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_interviews_call_id ON interviews(call_id)"
        ))


async def get_db():
    async with async_session() as session:
        yield session
