import os
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

load_dotenv()

# Device-local store: stored credentials and the item-scan outbox
DATABASE_URL = os.getenv("STORE_OPS_DATABASE_URL", "sqlite+aiosqlite:///./store_ops.db")

engine = create_async_engine(DATABASE_URL, echo=False)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def init_db(bind=engine):
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
