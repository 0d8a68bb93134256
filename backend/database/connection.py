import os
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from dotenv import load_dotenv
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

# Load environment variables
ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Get database URL
DATABASE_URL = os.environ.get('DATABASE_URL')

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")

# asyncpg takes ssl via connect_args, not the URL
DATABASE_SSL = os.environ.get('DATABASE_SSL', 'require')
connect_args = {"ssl": DATABASE_SSL} if DATABASE_SSL and DATABASE_SSL != 'disable' else {}

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
    connect_args=connect_args
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """Dependency to get database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Verify the connection and that the phone tables exist"""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("PostgreSQL connection successful")

            result = await conn.execute(text("""
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
                  AND table_name IN ('phone_numbers', 'phone_messages')
            """))
            tables = [row[0] for row in result.fetchall()]
            missing = {'phone_numbers', 'phone_messages'} - set(tables)
            if missing:
                logger.warning(f"Missing tables {sorted(missing)}; run migrations/create_phone_tables.py")
            else:
                logger.info(f"Phone tables present: {sorted(tables)}")

            return True
    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        raise
