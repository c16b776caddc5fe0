import logging
import os
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

logger = logging.getLogger(__name__)


class ConnectionBroker:
    """
    Owns the SQLAlchemy engine and session factory for one store file.

    Read-write brokers are used by ingestion; read-only brokers open the
    SQLite file with ``mode=ro`` and may be shared by concurrent readers.
    """

    def __init__(self, db_path: str, read_only: bool = False):
        self.db_path = os.path.abspath(db_path)
        self.read_only = read_only
        self._engine = None
        self._SessionLocal = None

    def get_engine(self):
        """Get or create SQLAlchemy engine."""
        if self._engine is None:
            if self.read_only:
                connection_string = f"sqlite:///file:{self.db_path}?mode=ro&uri=true"
            else:
                connection_string = f"sqlite:///{self.db_path}"
            self._engine = create_engine(
                connection_string,
                connect_args={"check_same_thread": False},
                echo=False  # Set to True for SQL debug logging
            )
            logger.debug(f"Opened engine for {self.db_path} (read_only={self.read_only})")
        return self._engine

    def get_session_factory(self):
        """Get or create SQLAlchemy session factory."""
        if self._SessionLocal is None:
            self._SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=self.get_engine()
            )
        return self._SessionLocal

    @contextmanager
    def get_session(self):
        """
        Get a SQLAlchemy session with automatic cleanup.

        Usage:
            with broker.get_session() as session:
                session.query(Model).all()
        """
        SessionLocal = self.get_session_factory()
        session: Session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self):
        """Release all pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None
