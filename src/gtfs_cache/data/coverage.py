"""
Coverage-deduplicated stop selection.

Nearby stops often serve the same lines. Rather than the N closest stops,
pick the closest stops that each add at least one route not already
offered by a closer pick.
"""

import logging
from typing import Callable, Collection, List

from gtfs_cache.config.config_main import agency_config, query_config
from .models import StopData

logger = logging.getLogger(__name__)

RouteNameFetcher = Callable[[StopData], List[str]]


def select_diverse_stops(
    candidates: List[StopData],
    fetch_route_names: RouteNameFetcher,
    max_results: int,
    supported_agencies: Collection[str] = None
) -> List[StopData]:
    """
    Greedily select stops that introduce new routes, in candidate order.

    Args:
        candidates: Stops ranked nearest first
        fetch_route_names: Live lookup of the routes serving a stop; any
            exception it raises skips that candidate
        max_results: Maximum number of stops to select
        supported_agencies: Agency codes the fetcher can query (default: all
            known agencies)

    Returns:
        Selected stops with route_names set, nearest first
    """
    if supported_agencies is None:
        supported_agencies = agency_config.names

    selected = []
    covered = set()

    for stop in candidates:
        if len(selected) >= max_results:
            break

        if not stop.agency or stop.agency not in supported_agencies:
            continue

        try:
            route_names = sorted(set(fetch_route_names(stop)))
        except Exception as e:
            logger.error(f"Failed to fetch routes for stop {stop.stop_id} ({stop.agency}): {e}")
            continue

        new_routes = [name for name in route_names if name not in covered]
        if not new_routes:
            continue

        stop.route_names = route_names
        covered.update(route_names)
        selected.append(stop)

    return selected


def find_nearest_stops(
    cache,
    fetch_route_names: RouteNameFetcher,
    lat: float,
    lon: float,
    max_results: int = None
) -> List[StopData]:
    """Nearest stops around (lat, lon), deduplicated by route coverage."""
    if max_results is None:
        max_results = query_config.nearest_stop_count

    candidates = cache.find_nearby_stops(
        lat,
        lon,
        query_config.nearby_radius_meters,
        query_config.nearby_candidate_limit,
    )
    return select_diverse_stops(candidates, fetch_route_names, max_results)
