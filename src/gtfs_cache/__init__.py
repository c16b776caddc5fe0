"""
GTFS Stop Cache

Local, read-optimized snapshot of a transit feed's stops, routes and
stop-route associations, plus the nearest-stop query engine built on it.
"""

__version__ = "0.1.0"
