"""
Reconciliation engine tests with a scripted upstream and in-memory SQLite.
"""

import pytest

from flightboard.database.repository import SqlAlchemyFlightRepository
from flightboard.exceptions import UpstreamError
from flightboard.models.enums import Direction
from flightboard.services.reconciliation import ReconciliationEngine

from .conftest import make_raw

DEP = Direction.DEPARTURES
ARR = Direction.ARRIVALS


def sfo_departures(**gate_overrides):
    return [
        make_raw("UA100", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30", **gate_overrides),
        make_raw("DL200", "SFO", "JFK", "2024-05-01 09:15", "2024-05-01 17:45"),
    ]


class TestInsertUpdateDelete:
    """Test the partition and the writes applied."""

    def test_first_sync_inserts_everything(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())

        result = engine.sync(DEP, "sfo")

        assert result.airport == "SFO"
        assert result.fetched == 2
        assert result.inserted == 2
        assert result.writes == 2
        assert upstream.calls == [("dep_iata", "SFO")]
        assert len(repository.find_by_departure_airport("SFO")) == 2

    def test_second_identical_sync_writes_nothing(self, engine, upstream):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        engine.sync(DEP, "SFO")

        result = engine.sync(DEP, "SFO")

        assert result.writes == 0
        assert result.unchanged == 2

    def test_gate_change_updates_only_the_gate(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        engine.sync(DEP, "SFO")
        before = repository.find_by_departure_key("UA100", "2024-05-01 08:00")

        upstream.set_snapshot(DEP, "SFO", sfo_departures(dep_gate="G42"))
        result = engine.sync(DEP, "SFO")

        after = repository.find_by_departure_key("UA100", "2024-05-01 08:00")
        assert result.updated == 1
        assert result.inserted == 0
        assert after.dep_gate == "G42"
        assert after.id == before.id
        assert after.flight_iata == before.flight_iata
        assert after.dep_time == before.dep_time
        assert after.arr_time == before.arr_time

    def test_immutable_field_change_is_ignored(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        engine.sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", sfo_departures(dep_terminal="7"))
        result = engine.sync(DEP, "SFO")

        assert result.writes == 0
        assert repository.find_by_departure_key("UA100", "2024-05-01 08:00").dep_terminal == "1"

    def test_rolled_out_records_are_deleted(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        engine.sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", sfo_departures()[1:])
        result = engine.sync(DEP, "SFO")

        assert result.deleted == 1
        assert [r.flight_iata for r in repository.find_by_departure_airport("SFO")] == ["DL200"]

    def test_deletes_stay_within_the_airport(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        upstream.set_snapshot(DEP, "LAX", [make_raw("AA900", "LAX", "SEA", "2024-05-01 10:00", "2024-05-01 12:40")])
        engine.sync(DEP, "SFO")
        engine.sync(DEP, "LAX")

        upstream.set_snapshot(DEP, "SFO", sfo_departures()[:1])
        engine.sync(DEP, "SFO")

        assert [r.flight_iata for r in repository.find_by_departure_airport("LAX")] == ["AA900"]

    def test_duplicate_keys_in_snapshot_last_wins(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", [
            make_raw("UA100", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30", dep_gate="A1"),
            make_raw("UA100", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30", dep_gate="A2"),
        ])

        result = engine.sync(DEP, "SFO")

        assert result.inserted == 1
        assert repository.find_by_departure_key("UA100", "2024-05-01 08:00").dep_gate == "A2"


class TestSafety:
    """Test malformed data and empty snapshots."""

    def test_malformed_records_are_counted_and_dropped(self, engine, upstream):
        snapshot = sfo_departures() + [make_raw("XX1", "SFO", None, "t1", "t2"), {"flight_iata": None}]
        upstream.set_snapshot(DEP, "SFO", snapshot)

        result = engine.sync(DEP, "SFO")

        assert result.malformed == 2
        assert result.inserted == 2

    def test_empty_snapshot_deletes_nothing(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        engine.sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", [])
        result = engine.sync(DEP, "SFO")

        assert result.skipped
        assert result.writes == 0
        assert len(repository.find_by_departure_airport("SFO")) == 2

    def test_all_malformed_snapshot_is_treated_as_empty(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        engine.sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", [{"status": "scheduled"}])
        result = engine.sync(DEP, "SFO")

        assert result.skipped
        assert len(repository.find_by_departure_airport("SFO")) == 2

    def test_upstream_error_propagates(self, engine, upstream):
        upstream.fail(DEP, "SFO", UpstreamError("HTTP 503", status_code=503))
        with pytest.raises(UpstreamError):
            engine.sync(DEP, "SFO")


class TestDirectionalIdentity:
    """Test that departure and arrival identities never collide."""

    def test_same_flight_code_in_both_directions(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", [make_raw("UA100", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30")])
        upstream.set_snapshot(ARR, "SFO", [make_raw("UA100", "LAX", "SFO", "2024-05-01 12:00", "2024-05-01 13:30")])

        engine.sync(DEP, "SFO")
        engine.sync(ARR, "SFO")
        result = engine.sync(DEP, "SFO")

        assert result.writes == 0
        assert repository.count() == 2
        assert repository.find_by_departure_airport("SFO")[0].arr_iata == "LAX"
        assert repository.find_by_arrival_airport("SFO")[0].dep_iata == "LAX"

    def test_leg_seen_from_both_airports_is_one_row(self, engine, upstream, repository):
        leg = make_raw("UA100", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30")
        upstream.set_snapshot(DEP, "SFO", [leg])
        upstream.set_snapshot(ARR, "LAX", [leg])

        engine.sync(DEP, "SFO")
        result = engine.sync(ARR, "LAX")

        assert result.inserted == 0
        assert result.unchanged == 1
        assert repository.count() == 1


class StaleReadRepository(SqlAlchemyFlightRepository):
    """Misses rows on the bulk load, as if a concurrent writer inserted them just after."""

    def find_by_flight_codes(self, flight_codes):
        return []


class TestConflictRecovery:
    """Test recovery from insert races."""

    def test_conflict_falls_through_to_update(self, db_config, upstream):
        racing_repo = StaleReadRepository(db_config)
        upstream.set_snapshot(DEP, "SFO", sfo_departures())
        ReconciliationEngine(upstream, racing_repo).sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", sfo_departures(dep_gate="F3"))
        result = ReconciliationEngine(upstream, racing_repo).sync(DEP, "SFO")

        assert result.conflicts == 2
        assert result.inserted == 0
        assert result.updated == 1
        assert result.unchanged == 1
        assert racing_repo.count() == 2
        assert racing_repo.find_by_departure_key("UA100", "2024-05-01 08:00").dep_gate == "F3"

    def test_recovered_row_still_in_snapshot_is_kept(self, db_config, upstream):
        racing_repo = StaleReadRepository(db_config)
        original = make_raw("UA1", "SFO", "LAX", "2024-05-01 07:50", "2024-05-01 09:30")
        upstream.set_snapshot(DEP, "SFO", [original])
        ReconciliationEngine(upstream, racing_repo).sync(DEP, "SFO")

        # same leg reported twice, once under a second departure time
        upstream.set_snapshot(DEP, "SFO", [
            original,
            make_raw("UA1", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30"),
        ])
        result = ReconciliationEngine(upstream, racing_repo).sync(DEP, "SFO")

        assert result.conflicts == 2
        assert result.deleted == 0
        assert result.unchanged == 2
        assert racing_repo.count() == 1
        assert racing_repo.find_by_departure_key("UA1", "2024-05-01 07:50") is not None


class TestRetiming:
    """Test legs whose scheduled time moved on one side only."""

    def test_departure_retimed_with_same_arrival(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", [make_raw("UA1", "SFO", "LAX", "2024-05-01 07:50", "2024-05-01 09:30")])
        engine.sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", [make_raw("UA1", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30")])
        first = engine.sync(DEP, "SFO")
        second = engine.sync(DEP, "SFO")

        assert first.conflicts == 1
        assert first.retimed == 1
        assert repository.count() == 1
        assert repository.find_by_departure_key("UA1", "2024-05-01 07:50") is None
        assert repository.find_by_departure_key("UA1", "2024-05-01 08:00").arr_time == "2024-05-01 09:30"
        assert second.writes == 0
        assert second.unchanged == 1

    def test_arrival_retimed_with_same_departure(self, engine, upstream, repository):
        upstream.set_snapshot(ARR, "LAX", [make_raw("UA1", "SFO", "LAX", "2024-05-01 07:50", "2024-05-01 09:30")])
        engine.sync(ARR, "LAX")

        upstream.set_snapshot(ARR, "LAX", [make_raw("UA1", "SFO", "LAX", "2024-05-01 07:50", "2024-05-01 09:45")])
        first = engine.sync(ARR, "LAX")
        second = engine.sync(ARR, "LAX")

        assert first.retimed == 1
        assert [f.arr_time for f in repository.find_by_arrival_airport("LAX")] == ["2024-05-01 09:45"]
        assert repository.count() == 1
        assert second.writes == 0

    def test_retimed_leg_carries_new_gate(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", [make_raw("UA1", "SFO", "LAX", "2024-05-01 07:50", "2024-05-01 09:30")])
        engine.sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", [
            make_raw("UA1", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30", dep_gate="C7"),
        ])
        engine.sync(DEP, "SFO")

        assert repository.find_by_departure_key("UA1", "2024-05-01 08:00").dep_gate == "C7"

    def test_retimed_leg_appears_on_the_board(self, engine, upstream, repository):
        upstream.set_snapshot(DEP, "SFO", [
            make_raw("UA1", "SFO", "LAX", "2024-05-01 07:50", "2024-05-01 09:30"),
            make_raw("DL2", "SFO", "JFK", "2024-05-01 09:15", "2024-05-01 17:45"),
        ])
        engine.sync(DEP, "SFO")

        upstream.set_snapshot(DEP, "SFO", [
            make_raw("UA1", "SFO", "LAX", "2024-05-01 08:00", "2024-05-01 09:30"),
            make_raw("DL2", "SFO", "JFK", "2024-05-01 09:15", "2024-05-01 17:45"),
        ])
        engine.sync(DEP, "SFO")

        board = repository.find_by_departure_airport("SFO")
        assert [(f.flight_iata, f.dep_time) for f in board] == [
            ("UA1", "2024-05-01 08:00"),
            ("DL2", "2024-05-01 09:15"),
        ]
