"""
Quick sanity check of a built stop cache.

Usage:
    python check_stops.py [lat lon]
"""

import sys

from gtfs_cache.config.config_main import cache_config
from gtfs_cache.data.stop_cache import StopCache

cache = StopCache(cache_config.db_path).initialize()

counts = cache.count_rows()
print(f"Total stops in database: {counts['stops']}")
print(f"Total routes in database: {counts['routes']}")
print(f"Total stop-route associations: {counts['stop_routes']}")

if len(sys.argv) == 3:
    lat, lon = float(sys.argv[1]), float(sys.argv[2])
    nearby = cache.find_nearby_stops(lat, lon, 1609, 5)
    print(f"\nNearest stops to ({lat}, {lon}):")
    for stop in nearby:
        print(f"  - {stop.stop_id}: {stop.stop_name} [{stop.agency}] {stop.distance:.0f}m")

cache.close()
