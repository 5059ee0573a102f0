from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session
import logging

from config import get_settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        # SQLite for development and tests
        return create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})

    # PostgreSQL for production with connection pooling
    return create_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Handle stale connections
        pool_recycle=300,
    )


settings = get_settings()
# SECURITY: keep DB_ECHO off in production to avoid leaking patient data into logs
engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)


def get_session():
    with Session(engine) as session:
        yield session


def create_db_and_tables(bind: Engine = None):
    import models  # noqa: F401  register tables with SQLModel.metadata

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database tables ensured")
