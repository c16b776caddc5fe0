from dotenv import load_dotenv
import os

load_dotenv()

class CacheConfig():
    db_path: str = os.getenv("GTFS_DB_PATH", "gtfs.db")
    feed_dir: str = os.getenv("GTFS_FEED_DIR", "feed")
    agency_map_file: str = os.getenv("GTFS_AGENCY_MAP_FILE", "stop_agency_map.json")

cache_config = CacheConfig()

class AgencyConfig():
    """Agency codes understood by the live enrichment API."""

    # GTFS agency code -> 511 agency code
    synonyms = {
        "BA": "BA",  # BART
        "SF": "SF",  # Muni
        "AC": "AC",  # AC Transit
        "CM": "CM",  # Caltrain
        "GG": "GG",  # Golden Gate
        "SC": "SC",  # SamTrans
        "VT": "VT",  # VTA
    }

    # Checked in order, first match wins
    url_hints = [
        ("sfmta.com", "SF"),
        ("bart.gov", "BA"),
        ("actransit.org", "AC"),
        ("caltrain.com", "CM"),
        ("goldengate.org", "GG"),
        ("samtrans.com", "SC"),
        ("vta.org", "VT"),
    ]

    names = {
        "SF": "SF Muni",
        "AC": "AC Transit",
        "BA": "BART",
        "CM": "Caltrain",
        "GG": "Golden Gate",
        "SC": "SamTrans",
        "VT": "VTA",
    }

    id_separator: str = ":"
    excluded_search_prefix: str = os.getenv("SEARCH_EXCLUDED_AGENCY_PREFIX", "mtc:")

agency_config = AgencyConfig()

class Api511Config():
    api_key: str = os.getenv("API_511_KEY", "")
    base_url: str = os.getenv("API_511_BASE_URL", "http://api.511.org/transit")
    timeout: float = float(os.getenv("API_511_TIMEOUT", "10"))
    max_retries: int = int(os.getenv("API_511_MAX_RETRIES", "2"))

api511_config = Api511Config()

class QueryConfig():
    nearby_radius_meters: float = float(os.getenv("NEARBY_RADIUS_METERS", "1609"))  # 1 mile
    nearby_candidate_limit: int = int(os.getenv("NEARBY_CANDIDATE_LIMIT", "50"))
    nearest_stop_count: int = int(os.getenv("NEAREST_STOP_COUNT", "3"))
    route_radius_meters: float = float(os.getenv("ROUTE_RADIUS_METERS", "3218"))  # 2 miles
    route_stop_count: int = int(os.getenv("ROUTE_STOP_COUNT", "3"))
    search_max_results: int = 10

query_config = QueryConfig()
