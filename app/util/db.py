from sqlalchemy import Engine, create_engine, event
from sqlmodel import Session, SQLModel, text
import structlog

from app.internal.env_settings import Settings

logger = structlog.stdlib.get_logger()


def build_engine(settings: Settings) -> Engine:
    db = settings.db
    if db.use_postgres:
        engine = create_engine(
            f"postgresql://{db.postgres_user}:{db.postgres_password}@{db.postgres_host}:{db.postgres_port}/{db.postgres_db}?sslmode={db.postgres_ssl_mode}",
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_pre_ping=db.pool_pre_ping,
        )
    else:
        engine = create_engine(
            f"sqlite+pysqlite:///{settings.get_sqlite_path()}",
            connect_args={"check_same_thread": False},
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_pre_ping=db.pool_pre_ping,
        )

        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            dbapi_conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "Database connection pool configured",
        database_type="PostgreSQL" if db.use_postgres else "SQLite",
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_pre_ping=db.pool_pre_ping,
    )
    return engine


def create_tables(engine: Engine) -> None:
    """Create the catalog tables when running without migrations (tests, local dev)."""
    # Import for the side effect of registering the tables on SQLModel.metadata
    import app.internal.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session(engine: Engine):
    with Session(engine) as session:
        if engine.dialect.name == "sqlite":
            session.execute(text("PRAGMA foreign_keys=ON"))
        yield session
