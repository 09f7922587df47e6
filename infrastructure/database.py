"""
数据库引擎与会话工厂

仓储的 create 依赖 SAVEPOINT（唯一约束冲突只回滚本次插入），
SQLite 驱动默认自行管理 BEGIN，会破坏 SAVEPOINT，这里统一修正。
"""
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from core.config import settings
from infrastructure.models import Base


_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}. 请使用 async 驱动或更新 DATABASE__URL")
    return url.set(drivername=_ASYNC_DRIVERS[url.drivername]).render_as_string(hide_password=False)


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """让 SQLAlchemy 接管 SQLite 的事务边界，使 begin_nested() 可用"""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, *, echo: bool = False, **kwargs) -> AsyncEngine:
    async_url = _build_async_url(database_url)
    is_sqlite = make_url(async_url).get_backend_name() == "sqlite"
    if not is_sqlite:
        kwargs.setdefault("pool_pre_ping", True)
    engine = create_async_engine(async_url, echo=echo, **kwargs)
    if is_sqlite:
        enable_sqlite_savepoints(engine)
    return engine


engine = build_engine(
    settings.database.url,
    echo=settings.DEBUG if settings.database.echo is None else settings.database.echo,
)

AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables():
    """
    创建所有表（仅开发环境；生产使用 alembic upgrade head）
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
