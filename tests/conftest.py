"""
Shared fixtures: a small synthetic GTFS feed and stores built from it.
"""

import json
import os

import pytest

from gtfs_cache.data.db_broker import ConnectionBroker
from gtfs_cache.ingest.orchestrator import run_full_ingestion
from gtfs_cache.ingest.schema import Stop, Route, StopRoute, initialize_database

STOPS_TXT = """stop_id,stop_name,stop_code,stop_lat,stop_lon,stop_url
S1,"Market St, 4th",1001,37.7749,-122.4194,
S2,Market St & 5th,1002,37.7750,-122.4200,https://www.sfmta.com/stops/2
BA:EMBR,Embarcadero,,37.7929,-122.3971,
MTC1,Regional Hub,mtc1,37.7751,-122.4195,
FAR,Far Away,,38.5,-121.5,
,No Id,,37.0,-122.0,
NONAME,,,37.0,-122.0,
NOCOORD,No Coords,,,,

"""

ROUTES_TXT = """route_id,agency_id,route_short_name,route_long_name,route_type,route_color,route_text_color,route_url
K,SF,K,Ingleside,0,,,
38,SF,38,Geary,3,FF0000,FFFFFF,https://www.sfmta.com/38
BART-Y,BA,Yellow,Antioch - SFO,1,,,
Z2,SF,k,Duplicate K,3,,,
"""

TRIPS_TXT = """route_id,service_id,trip_id
K,wk,T1
38,wk,T2
K,wk,T3
"""

STOP_TIMES_TXT = """trip_id,arrival_time,departure_time,stop_id,stop_sequence
T1,08:00:00,08:00:00,S1,1
T1,08:05:00,08:05:00,BA:EMBR,2
T3,09:00:00,09:00:00,S1,1
T2,08:00:00,08:00:00,S2,1
TX,08:00:00,08:00:00,S2,2
T2,,,,3
"""

AGENCY_MAP = {
    "S1": "SF",
    "BA:EMBR": "AC",
    "MTC1": "mtc:regional",
    "GHOST": "SF",
}


def write_feed(feed_dir, files=None):
    """Write the synthetic feed (or only the named files) into feed_dir."""
    contents = {
        'stops.txt': STOPS_TXT,
        'routes.txt': ROUTES_TXT,
        'trips.txt': TRIPS_TXT,
        'stop_times.txt': STOP_TIMES_TXT,
        'stop_agency_map.json': json.dumps(AGENCY_MAP),
    }
    os.makedirs(feed_dir, exist_ok=True)
    for name, content in contents.items():
        if files is None or name in files:
            with open(os.path.join(feed_dir, name), 'w', encoding='utf-8') as handle:
                handle.write(content)
    return str(feed_dir)


@pytest.fixture
def feed_dir(tmp_path):
    """Complete synthetic feed directory."""
    return write_feed(tmp_path / "feed")


@pytest.fixture
def built_store(tmp_path, feed_dir):
    """Store built from the synthetic feed; yields (db_path, counts)."""
    db_path = str(tmp_path / "gtfs.db")
    counts = run_full_ingestion(feed_dir=feed_dir, db_path=db_path)
    yield db_path, counts


@pytest.fixture
def make_store(tmp_path):
    """Factory building a store directly from model rows."""
    def _make(stops=(), routes=(), stop_routes=(), name="store.db"):
        db_path = str(tmp_path / name)
        broker = ConnectionBroker(db_path)
        initialize_database(broker.get_engine(), drop_existing=True)
        with broker.get_session() as session:
            for stop in stops:
                session.add(Stop(**stop))
            for route in routes:
                session.add(Route(**route))
            for stop_id, route_id in stop_routes:
                session.add(StopRoute(stop_id=stop_id, route_id=route_id))
        broker.dispose()
        return db_path

    return _make
