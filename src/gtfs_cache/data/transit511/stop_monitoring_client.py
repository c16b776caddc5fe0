import json
import logging
import time
from typing import List

import requests

from gtfs_cache.data.errors import EnrichmentError
from gtfs_cache.data.models import StopData

logger = logging.getLogger(__name__)


class StopMonitoringClient:
    """Live "which routes serve this stop right now" lookups against the 511 API."""

    def __init__(self, config):
        self.api_key = config.api_key
        self.base_url = config.base_url
        self.timeout = config.timeout
        self.max_retries = max(1, config.max_retries)

        if not self.api_key:
            raise ValueError("A 511 API key must be provided in the configuration.")

    def get_route_names(self, stop_code: str, agency: str) -> List[str]:
        """
        Published line names of every vehicle currently monitored at a stop.

        Args:
            stop_code: Stop code (or stop id when the stop has no code)
            agency: 511 agency code (e.g. 'SF')

        Returns:
            Sorted, distinct route names; empty when nothing is monitored
        """
        params = {'agency': agency, 'stopcode': stop_code, 'format': 'json'}
        payload = self._execute_request("StopMonitoring", params)

        visits = (
            (payload or {})
            .get('ServiceDelivery', {})
            .get('StopMonitoringDelivery', {})
            .get('MonitoredStopVisit')
        )
        if not isinstance(visits, list):
            return []

        route_names = set()
        for visit in visits:
            journey = visit.get('MonitoredVehicleJourney') or {}
            name = journey.get('PublishedLineName')
            if name:
                route_names.add(name)

        return sorted(route_names)

    def get_route_names_for_stop(self, stop: StopData) -> List[str]:
        """Route-name fetcher for coverage selection."""
        return self.get_route_names(stop.lookup_code, stop.agency)

    def _execute_request(self, endpoint: str, params: dict) -> dict:
        url = f"{self.base_url}/{endpoint}"
        query = dict(params, api_key=self.api_key)

        for attempt in range(self.max_retries):
            try:
                response = requests.get(url, params=query, timeout=self.timeout)
                response.raise_for_status()
                # 511 prefixes its JSON bodies with a UTF-8 BOM
                return json.loads(response.content.decode('utf-8-sig'))
            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt  # Exponential backoff: 1s, 2s, 4s
                    logger.warning(
                        f"Request to {endpoint} failed: {e}, retrying in {wait_time}s... "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(wait_time)
                else:
                    raise EnrichmentError(f"Request to {endpoint} failed: {e}") from e
            except ValueError as e:
                raise EnrichmentError(f"Malformed response from {endpoint}: {e}") from e
