import logging
from typing import Callable, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from slipbox import settings
from slipbox.entities import Base

logger = logging.getLogger("slipbox_backend")


class DBConnection:
    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        # ---- engine is injectable (tests hand in an in-memory SQLite one) ----
        self._engine = engine
        self.DATABASE_URL = database_url or (str(engine.url) if engine is not None else settings.get_database_url())
        self._sessionmaker = None

    # -------- Engine --------
    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = self._build_engine(self.DATABASE_URL)
        return self._engine

    def _build_engine(self, url: str) -> Engine:
        if url.startswith("sqlite"):
            logger.info(f"[DB] Using SQLite URL: {url}")
            engine = create_engine(url, future=True)
            enable_sqlite_foreign_keys(engine)
            return engine

        logger.info(f"[DB] Connecting to {url.split('@')[-1]}")
        # pg8000 supports 'timeout' in seconds
        return create_engine(
            url,
            future=True,
            pool_pre_ping=True,
            connect_args={"timeout": 10},  # fail in 10s instead of hanging forever
        )

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    # -------- SQLAlchemy Session factory --------
    def build_db_session_factory(self) -> Callable[[], Session]:
        if not getattr(self, "_sessionmaker", None):
            self._sessionmaker = sessionmaker(
                bind=self.engine,
                autoflush=False,
                autocommit=False,
                future=True,
                expire_on_commit=False,
            )

        def _factory() -> Session:
            return self._sessionmaker()

        return _factory


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
