"""
Stop Cache Query Engine

Read-only access to the store built by ``gtfs_cache.ingest``: nearest-stop
search, exact stop lookups and route lookups.

Usage:
    cache = StopCache("gtfs.db").initialize()
    stops = cache.find_nearby_stops(37.7749, -122.4194, 1609, 50)
"""

import logging
import os
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_, not_

from gtfs_cache.config.config_main import agency_config, query_config
from gtfs_cache.ingest.schema import Stop, Route, StopRoute
from .db_broker import ConnectionBroker
from .errors import NotReadyError, StoreNotFoundError
from .geo import haversine_distance, bounding_box
from .models import StopData, RouteData

logger = logging.getLogger(__name__)


def _stop_data(stop: Stop, distance: float = None) -> StopData:
    return StopData(
        stop_id=stop.stop_id,
        stop_name=stop.stop_name,
        stop_code=stop.stop_code,
        lat=stop.stop_lat,
        lon=stop.stop_lon,
        agency=stop.agency,
        distance=distance,
    )


def _route_data(route: Route) -> RouteData:
    return RouteData(
        route_id=route.route_id,
        route_short_name=route.route_short_name,
        route_long_name=route.route_long_name,
        agency_id=route.agency_id,
    )


class StopCache:
    """Handle on one read-only store file. Call initialize() before querying."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._broker: Optional[ConnectionBroker] = None

    @property
    def is_ready(self) -> bool:
        return self._broker is not None

    def initialize(self) -> 'StopCache':
        """Open the store read-only. Safe to call more than once."""
        if self._broker is not None:
            return self

        if not os.path.exists(self.db_path):
            raise StoreNotFoundError(self.db_path)

        self._broker = ConnectionBroker(self.db_path, read_only=True)
        logger.info(f"Stop cache opened: {self.db_path}")
        return self

    def close(self):
        if self._broker is not None:
            self._broker.dispose()
            self._broker = None

    def _require_broker(self, operation: str) -> ConnectionBroker:
        if self._broker is None:
            raise NotReadyError(operation)
        return self._broker

    # ------------------------------------------------------------------
    # Stops
    # ------------------------------------------------------------------

    def find_nearby_stops(
        self,
        lat: float,
        lon: float,
        radius_meters: float = 2000,
        max_results: int = None
    ) -> List[StopData]:
        """
        Stops within radius_meters of (lat, lon), nearest first.

        Candidates come from a bounding-box query, then are filtered by exact
        haversine distance. Equal distances keep stop id order.
        """
        broker = self._require_broker('find_nearby_stops')
        min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius_meters)

        with broker.get_session() as session:
            candidates = (
                session.query(Stop)
                .filter(Stop.stop_lat.between(min_lat, max_lat))
                .filter(Stop.stop_lon.between(min_lon, max_lon))
                .order_by(Stop.stop_id)
                .all()
            )

            nearby = []
            for stop in candidates:
                distance = haversine_distance(lat, lon, stop.stop_lat, stop.stop_lon)
                if distance <= radius_meters:
                    nearby.append(_stop_data(stop, distance))

        nearby.sort(key=lambda stop: stop.distance)

        if max_results is not None:
            nearby = nearby[:max_results]
        return nearby

    def get_stop(self, stop_id: str) -> Optional[StopData]:
        broker = self._require_broker('get_stop')
        with broker.get_session() as session:
            stop = session.get(Stop, stop_id)
            return _stop_data(stop) if stop is not None else None

    def search_stops(self, query: str, max_results: int = None) -> List[StopData]:
        """
        Exact, case-insensitive match on stop id or stop code.

        Queries shorter than two characters return nothing. Stops whose
        agency starts with the excluded prefix are dropped; stops without
        an agency are kept.
        """
        broker = self._require_broker('search_stops')
        if max_results is None:
            max_results = query_config.search_max_results

        normalized = (query or '').strip().lower()
        if len(normalized) < 2:
            return []

        excluded = f"{agency_config.excluded_search_prefix}%"
        with broker.get_session() as session:
            matches = (
                session.query(Stop)
                .filter(or_(func.lower(Stop.stop_id) == normalized,
                            func.lower(Stop.stop_code) == normalized))
                .filter(or_(Stop.agency.is_(None), not_(Stop.agency.like(excluded))))
                .order_by(Stop.stop_id)
                .limit(max_results)
                .all()
            )
            return [_stop_data(stop) for stop in matches]

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def find_route(self, query: str) -> Optional[RouteData]:
        """
        Route by case-insensitive short name ("K", "38").

        Duplicate short names resolve to the smallest route id.
        """
        broker = self._require_broker('find_route')
        normalized = (query or '').strip().upper()

        with broker.get_session() as session:
            route = (
                session.query(Route)
                .filter(func.upper(Route.route_short_name) == normalized)
                .order_by(Route.route_id)
                .first()
            )
            return _route_data(route) if route is not None else None

    def stop_has_route(self, stop_id: str, route_id: str) -> bool:
        broker = self._require_broker('stop_has_route')
        with broker.get_session() as session:
            match = (
                session.query(StopRoute.stop_id)
                .filter(StopRoute.stop_id == stop_id, StopRoute.route_id == route_id)
                .first()
            )
            return match is not None

    def find_stops_on_route(
        self,
        route_query: str,
        lat: float,
        lon: float,
        radius_meters: float = None,
        max_results: int = None
    ) -> Tuple[Optional[RouteData], List[StopData]]:
        """
        Nearest stops served by the route with the given short name.

        Returns:
            (route, stops); route is None and stops empty if no route matches
        """
        self._require_broker('find_stops_on_route')
        if radius_meters is None:
            radius_meters = query_config.route_radius_meters
        if max_results is None:
            max_results = query_config.route_stop_count

        route = self.find_route(route_query)
        if route is None:
            logger.info(f"Route not found: {route_query}")
            return None, []

        # No candidate cap here: only the radius bounds the search
        nearby = self.find_nearby_stops(lat, lon, radius_meters)
        served = [stop for stop in nearby if self.stop_has_route(stop.stop_id, route.route_id)]
        return route, served[:max_results]

    def count_rows(self) -> Dict[str, int]:
        broker = self._require_broker('count_rows')
        with broker.get_session() as session:
            return {
                'stops': session.query(func.count(Stop.stop_id)).scalar(),
                'routes': session.query(func.count(Route.route_id)).scalar(),
                'stop_routes': session.query(func.count()).select_from(StopRoute).scalar(),
            }
