from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns one engine and its session factory for the lifetime of the process."""

    def __init__(self, url: str, engine: Optional[Engine] = None):
        self.url = url
        self.engine = engine or self._create_engine(url)
        self.session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )

    @staticmethod
    def _create_engine(url: str) -> Engine:
        if url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            # In-memory databases must share one connection or every session sees an empty schema
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
            return create_engine(url, **kwargs)
        return create_engine(url, pool_pre_ping=True)

    def create_all(self):
        """Create all tables registered on Base"""
        # Models must be imported so their tables are registered
        import app.models  # noqa: F401

        logger.info("create_all: Entry")
        Base.metadata.create_all(bind=self.engine)
        logger.info("create_all: Success")

    def drop_all(self):
        Base.metadata.drop_all(bind=self.engine)

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self):
        logger.info("dispose: Disposing database engine")
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency yielding a session from the application's Database"""
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()
