from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from medreminder.core.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sessions may be handed to executor threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 300,   # Recycle connections every 5 minutes
        "pool_pre_ping": True,  # Validate connections before use
        "pool_timeout": 45,
    }


def _set_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def enable_sqlite_foreign_keys(target: Engine) -> Engine:
    """SQLite ignores ON DELETE CASCADE unless each connection turns foreign keys on"""
    if target.dialect.name == "sqlite":
        event.listen(target, "connect", _set_sqlite_foreign_keys)
    return target


engine = enable_sqlite_foreign_keys(
    create_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        **_engine_kwargs(settings.DATABASE_URL),
    )
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
