# auth_api/app/db/session.py
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.pool import StaticPool
from app.core.config import settings
from typing import AsyncGenerator, Optional

# --- Delay Engine and Session Creation ---
_async_engine: Optional[AsyncEngine] = None
_AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None

def get_async_engine() -> AsyncEngine:
    """Creates the engine if it doesn't exist yet."""
    global _async_engine
    if _async_engine is None:
        # O usuário é responsável por fornecer o driver async correto no .env
        # Ex: "postgresql+asyncpg://...", "sqlite+aiosqlite:///..."
        db_url = settings.DATABASE_URL
        if not db_url:
            raise RuntimeError("DATABASE_URL not loaded from settings. Check .env file and config.py")

        engine_kwargs: dict = {"echo": False}
        if db_url.startswith("sqlite") and ":memory:" in db_url:
            # Banco em memória: todas as sessões precisam da mesma conexão
            engine_kwargs.update(
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine_kwargs["pool_pre_ping"] = True

        try:
            _async_engine = create_async_engine(db_url, **engine_kwargs)
        except Exception as e:
            raise RuntimeError(f"Could not create async engine: {e}") from e
    return _async_engine

def get_session_local() -> async_sessionmaker[AsyncSession]:
    """Creates the session factory if it doesn't exist yet."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        engine = get_async_engine() # Ensure engine is created first
        _AsyncSessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _AsyncSessionLocal
# --- End Delay ---


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    SessionLocal = get_session_local() # Get or create the session factory
    async with SessionLocal() as db:
        yield db

async def dispose_engine() -> None:
    global _async_engine, _AsyncSessionLocal
    if _async_engine:
        await _async_engine.dispose()
    _async_engine = None
    _AsyncSessionLocal = None
