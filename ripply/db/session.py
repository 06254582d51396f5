from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ripply.core.config import settings

engine = create_async_engine(settings.database_url, pool_pre_ping=True)

AsyncSessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
