"""
Static Network Ingestion

Loads feed stops and routes into the store, resolves each stop's operating
agency and derives stop-route associations from trips and stop times.

Every function takes an open session; the caller owns the transaction so
that each step commits or fails as a unit.
"""

import json
import logging
import math
import os
from typing import Dict, Optional, Set, Tuple

from sqlalchemy import insert, update, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tqdm import tqdm

from gtfs_cache.config.config_main import agency_config
from .feed_parser import read_feed, read_header
from .schema import Stop, Route, StopRoute

logger = logging.getLogger(__name__)

STOP_COLUMNS = {
    'stop_id': 'stop_id',
    'stop_name': 'stop_name',
    'stop_code': 'stop_code',
    'stop_lat': 'stop_lat',
    'stop_lon': 'stop_lon',
    'stop_url': 'stop_url',
}

ROUTE_COLUMNS = {
    'route_id': 'route_id',
    'route_short_name': 'route_short_name',
    'route_long_name': 'route_long_name',
    'route_type': 'route_type',
    'route_color': 'route_color',
    'route_text_color': 'route_text_color',
    'route_url': 'route_url',
    'agency_id': 'agency_id',
}

ASSOCIATION_BATCH_SIZE = 5000


def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


# ============================================================================
# STOPS
# ============================================================================

def ingest_stops(session: Session, stops_path: str) -> Dict:
    """
    Upsert every valid stop row from stops.txt.

    Rows without id or name are skipped, rows without usable coordinates
    are rejected with a warning. A write rejected by the store is logged
    and does not abort the step.

    Returns:
        Statistics dictionary with counts
    """
    stats = {'written': 0, 'skipped': 0, 'errors': 0}

    if not os.path.exists(stops_path):
        logger.info(f"No stops file at {stops_path}, skipping stops")
        return stats

    logger.info(f"Importing stops from {stops_path}")
    stmt = insert(Stop.__table__).prefix_with('OR REPLACE')

    for row in tqdm(read_feed(stops_path, list(STOP_COLUMNS.values())), desc="Importing stops", unit="stop"):
        stop_id = row.get(STOP_COLUMNS['stop_id'])
        stop_name = row.get(STOP_COLUMNS['stop_name'])

        if not stop_id or not stop_name:
            stats['skipped'] += 1
            continue

        lat = _to_float(row.get(STOP_COLUMNS['stop_lat']))
        lon = _to_float(row.get(STOP_COLUMNS['stop_lon']))
        if lat is None or lon is None:
            logger.warning(f"Stop {stop_id} rejected: missing or invalid coordinates")
            stats['skipped'] += 1
            continue

        values = {
            'stop_id': stop_id,
            'stop_name': stop_name,
            'stop_code': row.get(STOP_COLUMNS['stop_code']),
            'stop_lat': lat,
            'stop_lon': lon,
            'stop_url': row.get(STOP_COLUMNS['stop_url']),
            'agency': None,
        }

        try:
            session.execute(stmt, values)
            stats['written'] += 1
        except SQLAlchemyError as e:
            logger.error(f"Failed to write stop {stop_id}: {e}")
            stats['errors'] += 1

    logger.info(
        f"Stops complete: {stats['written']} written, "
        f"{stats['skipped']} skipped, {stats['errors']} errors"
    )
    return stats


# ============================================================================
# AGENCY RESOLUTION
# ============================================================================

def translate_agency(code: str) -> str:
    """Translate a feed agency code to the live API's code, passing unknown codes through."""
    return agency_config.synonyms.get(code, code)


def infer_agency(stop_id: str, stop_url: Optional[str]) -> Optional[str]:
    """Infer an agency from the stop id prefix ("SF:1234"), then from the stop URL."""
    separator = agency_config.id_separator
    if separator in stop_id:
        prefix = stop_id.split(separator, 1)[0].upper()
        agency = agency_config.synonyms.get(prefix)
        if agency:
            return agency

    if stop_url:
        for fragment, agency in agency_config.url_hints:
            if fragment in stop_url:
                return agency

    return None


def apply_agency_mapping(session: Session, mapping_path: str) -> int:
    """
    Assign agencies from an explicit {stop_id: agency_code} JSON document.

    Returns:
        Number of stops updated
    """
    if not os.path.exists(mapping_path):
        logger.info(f"No agency mapping at {mapping_path}, skipping explicit agencies")
        return 0

    with open(mapping_path, 'r', encoding='utf-8') as handle:
        mapping = json.load(handle)

    stops = Stop.__table__
    updated = 0
    for stop_id, source_agency in tqdm(mapping.items(), desc="Mapping agencies", unit="stop"):
        result = session.execute(
            update(stops)
            .where(stops.c.stop_id == stop_id)
            .values(agency=translate_agency(source_agency))
        )
        updated += result.rowcount

    logger.info(f"Agency mapping applied to {updated} stops ({len(mapping)} entries)")
    return updated


def infer_missing_agencies(session: Session) -> int:
    """
    Infer agencies for stops the explicit mapping did not cover.

    Stops matching no rule keep a null agency.

    Returns:
        Number of stops updated
    """
    stops = Stop.__table__
    pending = session.execute(
        select(stops.c.stop_id, stops.c.stop_url)
        .where(stops.c.agency.is_(None))
        .order_by(stops.c.stop_id)
    ).all()

    if not pending:
        return 0

    inferred = 0
    for stop_id, stop_url in pending:
        agency = infer_agency(stop_id, stop_url)
        if agency is None:
            continue
        session.execute(update(stops).where(stops.c.stop_id == stop_id).values(agency=agency))
        inferred += 1

    logger.info(f"Inferred agency for {inferred} of {len(pending)} unmapped stops")
    return inferred


# ============================================================================
# ROUTES
# ============================================================================

def ingest_routes(session: Session, routes_path: str) -> Dict:
    """
    Upsert every route row from routes.txt.

    Returns:
        Statistics dictionary with counts
    """
    stats = {'written': 0, 'skipped': 0, 'errors': 0}

    if not os.path.exists(routes_path):
        logger.info(f"No routes file at {routes_path}, skipping routes")
        return stats

    logger.info(f"Importing routes from {routes_path}")
    stmt = insert(Route.__table__).prefix_with('OR REPLACE')

    for row in tqdm(read_feed(routes_path, list(ROUTE_COLUMNS.values())), desc="Importing routes", unit="route"):
        route_id = row.get(ROUTE_COLUMNS['route_id'])
        if not route_id:
            logger.warning(f"Route row without route_id skipped: {row}")
            stats['skipped'] += 1
            continue

        values = {column: row.get(source) for column, source in ROUTE_COLUMNS.items()}
        values['route_type'] = _to_int(values['route_type'])

        try:
            session.execute(stmt, values)
            stats['written'] += 1
        except SQLAlchemyError as e:
            logger.error(f"Failed to write route {route_id}: {e}")
            stats['errors'] += 1

    logger.info(
        f"Routes complete: {stats['written']} written, "
        f"{stats['skipped']} skipped, {stats['errors']} errors"
    )
    return stats


# ============================================================================
# STOP-ROUTE ASSOCIATIONS
# ============================================================================

def _has_columns(path: str, *columns: str) -> bool:
    header = read_header(path)
    missing = [column for column in columns if column not in header]
    if missing:
        logger.warning(f"{path} lacks columns {missing}, skipping stop-route associations")
        return False
    return True


def load_trip_routes(trips_path: str) -> Dict[str, str]:
    """Build the trip_id -> route_id lookup used for one association build."""
    trip_routes = {}
    for row in read_feed(trips_path, ['trip_id', 'route_id']):
        trip_id = row.get('trip_id')
        route_id = row.get('route_id')
        if trip_id and route_id:
            trip_routes[trip_id] = route_id
    return trip_routes


def collect_stop_routes(stop_times_path: str, trip_routes: Dict[str, str]) -> Set[Tuple[str, str]]:
    """Join stop times to routes through their trip. Orphaned stop times are dropped."""
    pairs = set()
    for row in tqdm(read_feed(stop_times_path, ['trip_id', 'stop_id']), desc="Scanning stop times", unit="row"):
        trip_id = row.get('trip_id')
        stop_id = row.get('stop_id')
        if not trip_id or not stop_id:
            continue

        route_id = trip_routes.get(trip_id)
        if route_id is None:
            continue

        pairs.add((stop_id, route_id))
    return pairs


def build_stop_routes(session: Session, trips_path: str, stop_times_path: str) -> int:
    """
    Derive stop-route associations from trips.txt and stop_times.txt.

    Returns:
        Number of distinct associations derived
    """
    if not os.path.exists(trips_path) or not os.path.exists(stop_times_path):
        logger.info("Trips or stop times file missing, skipping stop-route associations")
        return 0

    if not _has_columns(trips_path, 'trip_id', 'route_id'):
        return 0
    if not _has_columns(stop_times_path, 'trip_id', 'stop_id'):
        return 0

    trip_routes = load_trip_routes(trips_path)
    logger.info(f"Loaded {len(trip_routes)} trips")

    pairs = sorted(collect_stop_routes(stop_times_path, trip_routes))
    del trip_routes

    stmt = insert(StopRoute.__table__).prefix_with('OR IGNORE')
    for start in range(0, len(pairs), ASSOCIATION_BATCH_SIZE):
        batch = pairs[start:start + ASSOCIATION_BATCH_SIZE]
        session.execute(stmt, [{'stop_id': stop_id, 'route_id': route_id} for stop_id, route_id in batch])

    logger.info(f"Derived {len(pairs)} stop-route associations")
    return len(pairs)
