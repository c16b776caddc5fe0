"""
Query result models.

Plain dataclasses returned by the stop cache, detached from any session so
callers can keep them around (e.g. as cached search results).
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class StopData:
    stop_id: str
    stop_name: str
    lat: float
    lon: float
    stop_code: Optional[str] = None
    agency: Optional[str] = None
    distance: Optional[float] = None  # meters, set by nearby searches
    route_names: List[str] = field(default_factory=list)  # set by coverage selection

    @property
    def lookup_code(self) -> str:
        """Code the live API knows this stop by."""
        return self.stop_code or self.stop_id


@dataclass
class RouteData:
    route_id: str
    route_short_name: Optional[str]
    route_long_name: Optional[str]
    agency_id: Optional[str]

    @property
    def display_name(self) -> Optional[str]:
        return self.route_short_name or self.route_long_name
