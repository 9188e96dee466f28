from datetime import timedelta

import pytest

from db.repositories import TripRepository
from db.transaction import transaction
from tests.factories import START_TIME, make_driver, make_trip
from trip import TripStatus


@pytest.mark.unit
class TestTripRepository:
    def test_create_and_get(self, session_factory):
        trip = make_trip(driver=make_driver())
        with session_factory() as session, transaction(session):
            TripRepository(session).create(trip)

        with session_factory() as session:
            loaded = TripRepository(session).get("t1")

        assert loaded is not None
        assert loaded.status == TripStatus.CONFIRMED
        assert loaded.pricing.total_fare == 171
        assert loaded.confirmed_at == START_TIME
        assert loaded.driver is not None
        assert loaded.driver.name == "Ravi Kumar"
        assert loaded.driver_id == "driver1"

    def test_get_missing_returns_none(self, session_factory):
        with session_factory() as session:
            assert TripRepository(session).get("missing") is None

    def test_compare_and_set_requires_expected_status(self, session_factory):
        with session_factory() as session, transaction(session):
            TripRepository(session).create(make_trip())

        later = START_TIME + timedelta(seconds=30)
        with session_factory() as session, transaction(session):
            repo = TripRepository(session)
            assert repo.compare_and_set(
                "t1",
                {"status": TripStatus.CONFIRMED},
                {"status": TripStatus.ASSIGNED, "assigned_at": later},
            )
            # Second writer expecting the old status loses.
            assert not repo.compare_and_set(
                "t1",
                {"status": TripStatus.CONFIRMED},
                {"status": TripStatus.CANCELLED, "cancelled_at": later},
            )

        with session_factory() as session:
            loaded = TripRepository(session).get("t1")
        assert loaded.status == TripStatus.ASSIGNED
        assert loaded.assigned_at == later
        assert loaded.cancelled_at is None

    def test_compare_and_set_matches_null(self, session_factory):
        with session_factory() as session, transaction(session):
            TripRepository(session).create(make_trip())

        with session_factory() as session, transaction(session):
            repo = TripRepository(session)
            assert repo.compare_and_set("t1", {"gateway_order_id": None}, {"gateway_order_id": "g1"})
            assert not repo.compare_and_set(
                "t1", {"gateway_order_id": None}, {"gateway_order_id": "g2"}
            )

    def test_compare_and_set_rejects_empty_values(self, session_factory):
        with session_factory() as session:
            with pytest.raises(ValueError):
                TripRepository(session).compare_and_set("t1", {}, {})

    def test_list_in_flight_excludes_terminal(self, session_factory):
        with session_factory() as session, transaction(session):
            repo = TripRepository(session)
            repo.create(make_trip(trip_id="t1"))
            repo.create(make_trip(trip_id="t2", status=TripStatus.CANCELLED))
            repo.create(make_trip(trip_id="t3", status=TripStatus.COMPLETED))

        with session_factory() as session:
            repo = TripRepository(session)
            in_flight = {trip.trip_id for trip in repo.list_in_flight()}
            assert in_flight == {"t1", "t3"}
