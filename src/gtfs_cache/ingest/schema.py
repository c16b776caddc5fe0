"""
Database Schema Module

SQLAlchemy models for the three persisted relations and atomic database
initialization. The store is rebuilt from scratch on every ingestion run,
so there are no incremental migrations: drop + recreate.

Relations:
    - stops: one row per feed stop, agency resolved during ingestion
    - routes: one row per feed route
    - stop_routes: derived (stop, route) associations
"""

import logging

from sqlalchemy import Column, String, Float, Integer, Index
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base

from gtfs_cache.data.errors import SchemaMissingError

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

REQUIRED_TABLES = ('stops', 'routes', 'stop_routes')


class Stop(Base):
    """Feed stops with their resolved operating agency."""

    __tablename__ = 'stops'

    stop_id = Column(String, primary_key=True)
    stop_name = Column(String, nullable=False)
    stop_code = Column(String, nullable=True)
    stop_lat = Column(Float, nullable=False)
    stop_lon = Column(Float, nullable=False)
    stop_url = Column(String, nullable=True)  # only used for agency inference
    agency = Column(String, nullable=True)

    __table_args__ = (
        Index('idx_stops_lat_lon', 'stop_lat', 'stop_lon'),
        Index('idx_stops_code', 'stop_code'),
    )

    def __repr__(self):
        return f"<Stop(id='{self.stop_id}', name='{self.stop_name}', agency='{self.agency}')>"


class Route(Base):
    """Feed routes (bus lines, rail lines, etc.)."""

    __tablename__ = 'routes'

    route_id = Column(String, primary_key=True)
    route_short_name = Column(String, nullable=True)
    route_long_name = Column(String, nullable=True)
    route_type = Column(Integer, nullable=True)
    route_color = Column(String, nullable=True)
    route_text_color = Column(String, nullable=True)
    route_url = Column(String, nullable=True)
    agency_id = Column(String, nullable=True)

    __table_args__ = (
        Index('idx_routes_short_name', 'route_short_name'),
    )

    def __repr__(self):
        return f"<Route(id='{self.route_id}', short_name='{self.route_short_name}', agency='{self.agency_id}')>"


class StopRoute(Base):
    """Association meaning "this route serves this stop"."""

    __tablename__ = 'stop_routes'

    stop_id = Column(String, primary_key=True)
    route_id = Column(String, primary_key=True, index=True)

    def __repr__(self):
        return f"<StopRoute(stop='{self.stop_id}', route='{self.route_id}')>"


# ============================================================================
# DATABASE INITIALIZATION
# ============================================================================

def initialize_database(engine, drop_existing=False, metadata=None):
    """
    Initialize database schema atomically.

    Args:
        engine: SQLAlchemy engine instance
        drop_existing: If True, drops the cache tables before creation
        metadata: Schema definition to create (defaults to Base.metadata)

    Raises:
        SchemaMissingError: the schema definition lacks one of the required
            tables, or the tables could not be created
    """
    if metadata is None:
        metadata = Base.metadata

    missing = [name for name in REQUIRED_TABLES if name not in metadata.tables]
    if missing:
        raise SchemaMissingError(f"Schema definition is missing tables: {', '.join(missing)}")

    try:
        if drop_existing:
            logger.info("Dropping existing cache tables")
            metadata.drop_all(bind=engine)

        metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        raise SchemaMissingError(f"Could not create schema: {e}") from e

    logger.info(f"Database schema initialized ({', '.join(REQUIRED_TABLES)})")
