"""
Test the feed ingestion pipeline.
"""

import os
from unittest.mock import patch

import pytest
from sqlalchemy import MetaData
from sqlalchemy.exc import IntegrityError

from gtfs_cache.data.db_broker import ConnectionBroker
from gtfs_cache.data.errors import SchemaMissingError
from gtfs_cache.ingest.orchestrator import run_full_ingestion
from gtfs_cache.ingest.schema import Stop, Route, StopRoute, initialize_database
from gtfs_cache.ingest.static_network import (
    ingest_stops, infer_agency, translate_agency, build_stop_routes
)

from conftest import write_feed


def dump_tables(db_path):
    """Ordered row tuples of every cache table."""
    broker = ConnectionBroker(db_path, read_only=True)
    try:
        with broker.get_session() as session:
            stops = [
                (s.stop_id, s.stop_name, s.stop_code, s.stop_lat, s.stop_lon, s.stop_url, s.agency)
                for s in session.query(Stop).order_by(Stop.stop_id)
            ]
            routes = [
                (r.route_id, r.route_short_name, r.route_long_name, r.route_type,
                 r.route_color, r.route_text_color, r.route_url, r.agency_id)
                for r in session.query(Route).order_by(Route.route_id)
            ]
            stop_routes = {(sr.stop_id, sr.route_id) for sr in session.query(StopRoute)}
    finally:
        broker.dispose()
    return stops, routes, stop_routes


class TestFullIngestion:
    """Test the orchestrated pipeline end to end."""

    def test_counts(self, built_store):
        _, counts = built_store

        assert counts == {
            'stops': 5,
            'stops_skipped': 3,
            'agencies_mapped': 3,
            'agencies_inferred': 1,
            'routes': 4,
            'stop_routes': 3,
        }

    def test_stops_written(self, built_store):
        db_path, _ = built_store
        stops, _, _ = dump_tables(db_path)

        by_id = {row[0]: row for row in stops}
        assert set(by_id) == {'S1', 'S2', 'BA:EMBR', 'MTC1', 'FAR'}
        assert by_id['S1'][1] == 'Market St, 4th'
        assert by_id['S1'][3] == pytest.approx(37.7749)
        assert by_id['S1'][4] == pytest.approx(-122.4194)
        assert by_id['BA:EMBR'][2] is None

    def test_agency_resolution(self, built_store):
        db_path, _ = built_store
        stops, _, _ = dump_tables(db_path)
        agencies = {row[0]: row[6] for row in stops}

        assert agencies['S1'] == 'SF'
        # Explicit mapping wins over the BA id prefix
        assert agencies['BA:EMBR'] == 'AC'
        # Unknown codes pass through unchanged
        assert agencies['MTC1'] == 'mtc:regional'
        # Inferred from sfmta.com URL
        assert agencies['S2'] == 'SF'
        assert agencies['FAR'] is None

    def test_routes_written(self, built_store):
        db_path, _ = built_store
        _, routes, _ = dump_tables(db_path)
        by_id = {row[0]: row for row in routes}

        assert by_id['38'] == ('38', '38', 'Geary', 3, 'FF0000', 'FFFFFF', 'https://www.sfmta.com/38', 'SF')
        assert by_id['K'][3] == 0

    def test_stop_routes_derived(self, built_store):
        db_path, _ = built_store
        _, _, stop_routes = dump_tables(db_path)

        assert stop_routes == {('S1', 'K'), ('BA:EMBR', 'K'), ('S2', '38')}

    def test_no_side_file_left_after_swap(self, built_store):
        db_path, _ = built_store

        assert os.path.exists(db_path)
        assert not os.path.exists(f"{db_path}.building")

    def test_idempotent(self, tmp_path, feed_dir):
        db_path = str(tmp_path / "gtfs.db")

        run_full_ingestion(feed_dir=feed_dir, db_path=db_path)
        first = dump_tables(db_path)
        run_full_ingestion(feed_dir=feed_dir, db_path=db_path)
        second = dump_tables(db_path)

        assert first == second

    def test_in_place_rebuild_is_idempotent(self, tmp_path, feed_dir):
        db_path = str(tmp_path / "gtfs.db")

        run_full_ingestion(feed_dir=feed_dir, db_path=db_path, atomic_swap=False)
        first = dump_tables(db_path)
        run_full_ingestion(feed_dir=feed_dir, db_path=db_path, atomic_swap=False)

        assert dump_tables(db_path) == first

    def test_missing_optional_files(self, tmp_path):
        feed_dir = write_feed(tmp_path / "feed", files={'stops.txt'})
        db_path = str(tmp_path / "gtfs.db")

        counts = run_full_ingestion(feed_dir=feed_dir, db_path=db_path)

        assert counts['stops'] == 5
        assert counts['agencies_mapped'] == 0
        assert counts['agencies_inferred'] == 2
        assert counts['routes'] == 0
        assert counts['stop_routes'] == 0

    def test_empty_feed_directory(self, tmp_path):
        feed_dir = str(tmp_path / "empty")
        os.makedirs(feed_dir)
        db_path = str(tmp_path / "gtfs.db")

        counts = run_full_ingestion(feed_dir=feed_dir, db_path=db_path)

        assert counts['stops'] == 0
        stops, routes, stop_routes = dump_tables(db_path)
        assert stops == [] and routes == [] and stop_routes == set()

    def test_invalid_bytes_do_not_abort(self, tmp_path):
        feed_dir = write_feed(tmp_path / "feed", files={'routes.txt'})
        with open(os.path.join(feed_dir, 'stops.txt'), 'wb') as handle:
            handle.write(
                b"stop_id,stop_name,stop_lat,stop_lon\n"
                b"S1,Caf\xe9 Plaza,37.7749,-122.4194\n"
                b"S2,Main St,37.7750,-122.4200\n"
            )
        db_path = str(tmp_path / "gtfs.db")

        counts = run_full_ingestion(feed_dir=feed_dir, db_path=db_path)

        assert counts['stops'] == 2
        assert counts['routes'] == 4
        stops, _, _ = dump_tables(db_path)
        assert [row[1] for row in stops] == ['Caf\ufffd Plaza', 'Main St']


class TestStopIngestion:
    """Test stop import edge cases."""

    @pytest.fixture
    def broker(self, tmp_path):
        broker = ConnectionBroker(str(tmp_path / "stops.db"))
        initialize_database(broker.get_engine(), drop_existing=True)
        yield broker
        broker.dispose()

    def test_duplicate_id_is_replaced(self, tmp_path, broker):
        path = tmp_path / "stops.txt"
        path.write_text(
            "stop_id,stop_name,stop_lat,stop_lon\n"
            "S1,Old Name,37.0,-122.0\n"
            "S1,New Name,37.5,-122.5\n",
            encoding="utf-8",
        )

        with broker.get_session() as session:
            stats = ingest_stops(session, str(path))

        with broker.get_session() as session:
            stop = session.get(Stop, 'S1')
            assert stop.stop_name == 'New Name'
            assert stop.stop_lat == pytest.approx(37.5)
        assert stats['written'] == 2

    def test_invalid_coordinates_rejected(self, tmp_path, broker):
        path = tmp_path / "stops.txt"
        path.write_text(
            "stop_id,stop_name,stop_lat,stop_lon\n"
            "S1,Good,37.0,-122.0\n"
            "S2,Bad,north,-122.0\n",
            encoding="utf-8",
        )

        with broker.get_session() as session:
            stats = ingest_stops(session, str(path))

        assert stats == {'written': 1, 'skipped': 1, 'errors': 0}

    def test_non_finite_coordinates_rejected(self, tmp_path, broker):
        path = tmp_path / "stops.txt"
        path.write_text(
            "stop_id,stop_name,stop_lat,stop_lon\n"
            "S1,Not A Number,nan,-122.0\n"
            "S2,Infinite,37.0,inf\n"
            "S3,Good,37.0,-122.0\n",
            encoding="utf-8",
        )

        with broker.get_session() as session:
            stats = ingest_stops(session, str(path))

        assert stats == {'written': 1, 'skipped': 2, 'errors': 0}

    def test_rejected_write_is_logged_and_skipped(self, tmp_path, broker, caplog):
        path = tmp_path / "stops.txt"
        path.write_text(
            "stop_id,stop_name,stop_lat,stop_lon\n"
            "S0,First,37.0,-122.0\n"
            "S1,Rejected,37.1,-122.1\n"
            "S2,Last,37.2,-122.2\n",
            encoding="utf-8",
        )

        with broker.get_session() as session:
            execute = session.execute

            def reject_s1(statement, params=None, *args, **kwargs):
                if params and params.get('stop_id') == 'S1':
                    raise IntegrityError(
                        str(statement), params, Exception("NOT NULL constraint failed: stops.stop_lat")
                    )
                return execute(statement, params, *args, **kwargs)

            with patch.object(session, 'execute', side_effect=reject_s1):
                stats = ingest_stops(session, str(path))

        assert stats == {'written': 2, 'skipped': 0, 'errors': 1}
        assert "Failed to write stop S1" in caplog.text
        with broker.get_session() as session:
            assert [s.stop_id for s in session.query(Stop).order_by(Stop.stop_id)] == ['S0', 'S2']

    def test_missing_file(self, tmp_path, broker):
        with broker.get_session() as session:
            stats = ingest_stops(session, str(tmp_path / "nope.txt"))

        assert stats['written'] == 0


class TestStopRouteDerivation:
    """Test the trips x stop_times join."""

    @pytest.fixture
    def broker(self, tmp_path):
        broker = ConnectionBroker(str(tmp_path / "assoc.db"))
        initialize_database(broker.get_engine(), drop_existing=True)
        yield broker
        broker.dispose()

    def test_trips_without_required_columns_skip_step(self, tmp_path, broker):
        trips = tmp_path / "trips.txt"
        trips.write_text("route_id,service_id\nK,wk\n", encoding="utf-8")
        stop_times = tmp_path / "stop_times.txt"
        stop_times.write_text("trip_id,stop_id\nT1,S1\n", encoding="utf-8")

        with broker.get_session() as session:
            assert build_stop_routes(session, str(trips), str(stop_times)) == 0

    def test_missing_stop_times_skips_step(self, tmp_path, broker):
        trips = tmp_path / "trips.txt"
        trips.write_text("route_id,trip_id\nK,T1\n", encoding="utf-8")

        with broker.get_session() as session:
            assert build_stop_routes(session, str(trips), str(tmp_path / "stop_times.txt")) == 0


class TestAgencyRules:
    """Test agency translation and inference rules."""

    def test_translate_known_and_unknown(self):
        assert translate_agency('BA') == 'BA'
        assert translate_agency('XX') == 'XX'

    def test_infer_from_prefix(self):
        assert infer_agency('sf:1234', None) == 'SF'

    def test_unknown_prefix_falls_back_to_url(self):
        assert infer_agency('ZZ:1', 'https://www.bart.gov/stations/embr') == 'BA'

    def test_first_url_hint_wins(self):
        assert infer_agency('1', 'https://sfmta.com/?ref=vta.org') == 'SF'

    def test_no_match(self):
        assert infer_agency('1234', None) is None
        assert infer_agency('1234', 'https://example.com') is None


class TestSchema:
    """Test schema initialization."""

    def test_missing_schema_definition_is_fatal(self, tmp_path):
        broker = ConnectionBroker(str(tmp_path / "schema.db"))
        with pytest.raises(SchemaMissingError):
            initialize_database(broker.get_engine(), metadata=MetaData())
        broker.dispose()

    def test_tables_created(self, tmp_path):
        broker = ConnectionBroker(str(tmp_path / "schema.db"))
        initialize_database(broker.get_engine(), drop_existing=True)

        from sqlalchemy import inspect
        tables = set(inspect(broker.get_engine()).get_table_names())
        broker.dispose()

        assert {'stops', 'routes', 'stop_routes'} <= tables
