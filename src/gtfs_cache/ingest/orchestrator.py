"""
Ingestion Orchestrator

Single entry point for building the stop cache from a GTFS feed directory.
Each step runs in its own transaction; a failure aborts the run and the
store should be rebuilt from scratch.

Usage:
    python -m gtfs_cache.ingest --feed-dir feed --db-path gtfs.db
    python -m gtfs_cache.ingest --no-swap
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from typing import Dict

from gtfs_cache.config.config_main import cache_config
from gtfs_cache.data.db_broker import ConnectionBroker

from .schema import initialize_database
from .static_network import (
    ingest_stops, apply_agency_mapping, infer_missing_agencies,
    ingest_routes, build_stop_routes
)

logger = logging.getLogger(__name__)


def _build(feed_dir: str, db_path: str, agency_map_file: str) -> Dict:
    broker = ConnectionBroker(db_path)
    counts = {}

    try:
        initialize_database(broker.get_engine(), drop_existing=True)

        # Step 1: Stops
        with broker.get_session() as session:
            stop_stats = ingest_stops(session, os.path.join(feed_dir, 'stops.txt'))
        counts['stops'] = stop_stats['written']
        counts['stops_skipped'] = stop_stats['skipped'] + stop_stats['errors']

        # Step 2: Agencies, explicit mapping first so it always wins over inference
        with broker.get_session() as session:
            counts['agencies_mapped'] = apply_agency_mapping(
                session, os.path.join(feed_dir, agency_map_file)
            )
        with broker.get_session() as session:
            counts['agencies_inferred'] = infer_missing_agencies(session)

        # Step 3: Routes
        with broker.get_session() as session:
            route_stats = ingest_routes(session, os.path.join(feed_dir, 'routes.txt'))
        counts['routes'] = route_stats['written']

        # Step 4: Stop-route associations
        with broker.get_session() as session:
            counts['stop_routes'] = build_stop_routes(
                session,
                os.path.join(feed_dir, 'trips.txt'),
                os.path.join(feed_dir, 'stop_times.txt'),
            )
    finally:
        broker.dispose()

    return counts


def run_full_ingestion(
    feed_dir: str = None,
    db_path: str = None,
    atomic_swap: bool = True,
    agency_map_file: str = None
) -> Dict:
    """
    Execute the complete ingestion pipeline.

    Args:
        feed_dir: Directory holding stops.txt, routes.txt, trips.txt,
            stop_times.txt and the agency mapping (default from env)
        db_path: Store file to produce (default from env)
        atomic_swap: Build into a side file and rename it over db_path only
            once every step has committed, so readers never see a partial store
        agency_map_file: Agency mapping file name inside feed_dir

    Returns:
        Dictionary of row counts per step

    Raises:
        SchemaMissingError: the schema could not be created
    """
    feed_dir = feed_dir or cache_config.feed_dir
    db_path = db_path or cache_config.db_path
    agency_map_file = agency_map_file or cache_config.agency_map_file

    print(f"\n{'#'*70}")
    print(f"# GTFS STOP CACHE - INGESTION PIPELINE")
    print(f"# Feed: {feed_dir}")
    print(f"# Store: {db_path}")
    print(f"# Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"{'#'*70}\n")

    overall_start = datetime.now()
    build_path = f"{db_path}.building" if atomic_swap else db_path

    if atomic_swap and os.path.exists(build_path):
        os.remove(build_path)

    try:
        counts = _build(feed_dir, build_path, agency_map_file)
    except Exception as e:
        print(f"\n{'!'*70}")
        print(f"! PIPELINE FAILED")
        print(f"! Error: {e}")
        print(f"{'!'*70}\n")
        raise

    if atomic_swap:
        os.replace(build_path, db_path)
        logger.info(f"Swapped new store into place at {db_path}")

    overall_duration = (datetime.now() - overall_start).total_seconds()

    print(f"\n{'='*70}")
    print("INGESTION COMPLETE")
    print(f"{'='*70}")
    print(f"  ✓ {counts['stops']} stops ({counts['stops_skipped']} skipped)")
    print(f"  ✓ {counts['agencies_mapped']} agencies from mapping, {counts['agencies_inferred']} inferred")
    print(f"  ✓ {counts['routes']} routes")
    print(f"  ✓ {counts['stop_routes']} stop-route associations")
    print(f"  Total duration: {overall_duration:.2f} seconds")
    print(f"{'='*70}\n")

    return counts


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description='GTFS Stop Cache Ingestion Pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build from the configured feed directory
  python -m gtfs_cache.ingest

  # Build a specific store from a specific feed
  python -m gtfs_cache.ingest --feed-dir ./feed --db-path ./gtfs.db

  # Write the store in place (only during maintenance windows)
  python -m gtfs_cache.ingest --no-swap
        """
    )

    parser.add_argument(
        '--feed-dir',
        type=str,
        default=None,
        help='Directory containing the GTFS text files (default: GTFS_FEED_DIR env var)'
    )

    parser.add_argument(
        '--db-path',
        type=str,
        default=None,
        help='Store file to build (default: GTFS_DB_PATH env var)'
    )

    parser.add_argument(
        '--no-swap',
        action='store_true',
        help='Write directly to the store file instead of swapping a fresh copy into place'
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    feed_dir = args.feed_dir or cache_config.feed_dir
    if not os.path.isdir(feed_dir):
        print(f"Feed directory not found: {feed_dir}")
        sys.exit(1)

    run_full_ingestion(
        feed_dir=feed_dir,
        db_path=args.db_path,
        atomic_swap=not args.no_swap
    )


if __name__ == "__main__":
    main()
