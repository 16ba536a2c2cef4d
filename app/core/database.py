from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from app.core.config import settings


def build_engine(database_url: str):
    """Create an engine with the per-dialect tuning used across the app."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}  # Allow SQLite to work with FastAPI
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            # Share one in-memory database across sessions
            from sqlalchemy.pool import StaticPool
            kwargs["poolclass"] = StaticPool
        sqlite_engine = create_engine(database_url, **kwargs)

        @event.listens_for(sqlite_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # Allocations are removed together with their budget
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA temp_store=MEMORY;")
            cursor.close()

        return sqlite_engine

    # Postgres or others
    return create_engine(
        database_url,
        pool_pre_ping=True,
        use_insertmanyvalues=False  # Avoid UUID sentinel mismatch with RETURNING
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
