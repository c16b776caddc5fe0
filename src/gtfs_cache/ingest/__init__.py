"""
GTFS Stop Cache Ingestion Module

Builds the read-optimized stop cache from a static GTFS feed.

Entry Point:
    python -m gtfs_cache.ingest --feed-dir feed --db-path gtfs.db

Components:
    - feed_parser: Delimited feed file reader
    - schema: Database models and atomic initialization
    - static_network: Stops, agencies, routes and stop-route associations
    - orchestrator: Main entry point coordinating all ingestion steps
"""

from .schema import initialize_database, Base
from .orchestrator import run_full_ingestion

__all__ = ['initialize_database', 'Base', 'run_full_ingestion']
