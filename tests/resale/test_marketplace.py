"""Resale marketplace: listing, expiry, claims, sweeps and purchase."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.exceptions import DeadlineExceededError
from core.outcome import ALREADY_APPLIED, APPLIED, CLAIMED
from lifecycle import ActorContext, ActorRole, EntityKind
from order import DeliveryLocation, OrderStatus, ResaleStatus
from payments import compute_signature
from tests.factories import DELIVERY, TEST_SECRET, make_order_request

CUSTOMER = ActorContext(ActorRole.CUSTOMER, "cust1")
LISTED_AT = 26
LISTING_TTL = 45 * 60


def sign(gateway_order_id, gateway_payment_id):
    return compute_signature(TEST_SECRET, gateway_order_id, gateway_payment_id)


@pytest.fixture
def preparing_order(state_machine, scheduler, env):
    state_machine.place_order(make_order_request(), order_id="o1").unwrap()
    env.run(until=LISTED_AT)
    assert state_machine.get_order("o1").status == OrderStatus.PREPARING
    return "o1"


@pytest.fixture
def listed(marketplace, preparing_order):
    return marketplace.cancel_and_list(preparing_order, CUSTOMER, reason="Plans changed").unwrap()


@pytest.mark.unit
class TestCancelAndList:
    def test_lists_at_half_price(self, listed, scheduler, clock):
        assert listed.status == OrderStatus.CANCELLED
        assert listed.cancelled_stage == OrderStatus.PREPARING
        assert listed.original_customer_pays_full is True
        assert listed.resale.resellable is True
        assert listed.resale.status == ResaleStatus.LISTED
        assert listed.resale.price == 282
        assert listed.resale.listed_at == clock.now()
        assert not scheduler.is_registered(EntityKind.ORDER, "o1")

    def test_only_after_preparation_started(self, marketplace, state_machine, scheduler):
        state_machine.place_order(make_order_request(), order_id="o2").unwrap()

        outcome = marketplace.cancel_and_list("o2", CUSTOMER)

        assert outcome.reason == "invalid-transition"
        assert state_machine.get_order("o2").status == OrderStatus.PLACED

    def test_missing_order(self, marketplace):
        assert marketplace.cancel_and_list("nope", CUSTOMER).reason == "not-found"

    def test_cannot_list_twice(self, marketplace, listed):
        assert marketplace.cancel_and_list("o1", CUSTOMER).reason == "invalid-transition"


@pytest.mark.unit
class TestNearbyListings:
    def test_returns_listing_with_time_left(self, marketplace, listed, env):
        env.run(until=LISTED_AT + 600)

        listings = marketplace.nearby_listings(DELIVERY.lat, DELIVERY.lon)

        assert len(listings) == 1
        listing = listings[0]
        assert listing.order.order_id == "o1"
        assert listing.price == 282
        assert listing.distance_km == 0.0
        assert listing.minutes_left == 35

    def test_filters_by_radius(self, marketplace, listed):
        # Roughly 25 km north of the delivery point.
        assert marketplace.nearby_listings(13.2, 77.5946) == []
        assert len(marketplace.nearby_listings(13.2, 77.5946, radius_km=50)) == 1

    def test_sorted_nearest_first(self, marketplace, state_machine, scheduler, env):
        far = DeliveryLocation(lat=13.0, lon=77.5946, address="Hebbal, Bengaluru")
        state_machine.place_order(make_order_request(delivery=far), order_id="far").unwrap()
        state_machine.place_order(make_order_request(), order_id="near").unwrap()
        env.run(until=LISTED_AT)
        marketplace.cancel_and_list("far", CUSTOMER).unwrap()
        marketplace.cancel_and_list("near", CUSTOMER).unwrap()

        listings = marketplace.nearby_listings(DELIVERY.lat, DELIVERY.lon)

        assert [listing.order.order_id for listing in listings] == ["near", "far"]
        assert listings[1].distance_km == pytest.approx(3.2, abs=0.1)

    def test_listing_visible_at_window_edge(self, marketplace, listed, env):
        env.run(until=LISTED_AT + LISTING_TTL)

        listings = marketplace.nearby_listings(DELIVERY.lat, DELIVERY.lon)
        assert len(listings) == 1
        assert listings[0].minutes_left == 0

    def test_expired_listing_hidden_without_sweep(self, marketplace, listed, env, state_machine):
        env.run(until=LISTED_AT + LISTING_TTL + 1)

        assert marketplace.nearby_listings(DELIVERY.lat, DELIVERY.lon) == []
        assert state_machine.get_order("o1").resale.status == ResaleStatus.EXPIRED


@pytest.mark.unit
class TestClaim:
    def test_claim(self, marketplace, listed, clock):
        outcome = marketplace.claim("o1", "buyer1")

        assert outcome.status == CLAIMED
        assert outcome.value.resale.status == ResaleStatus.CLAIMED
        assert outcome.value.resale.buyer_id == "buyer1"
        assert outcome.value.resale.claimed_at == clock.now()

    def test_claim_with_new_delivery_location(self, marketplace, listed):
        new_location = DeliveryLocation(lat=12.98, lon=77.60, address="Indiranagar, Bengaluru")

        outcome = marketplace.claim("o1", "buyer1", new_delivery_location=new_location)

        assert outcome.value.delivery == new_location

    def test_second_claim_not_listed(self, marketplace, listed):
        marketplace.claim("o1", "buyer1").unwrap()

        outcome = marketplace.claim("o1", "buyer2")
        assert outcome.reason == "not-listed"

    def test_concurrent_claims_single_winner(self, marketplace, listed, state_machine):
        barrier = threading.Barrier(2)

        def claim(buyer_id):
            barrier.wait()
            return marketplace.claim("o1", buyer_id)

        with ThreadPoolExecutor(max_workers=2) as executor:
            first, second = [
                f.result() for f in [executor.submit(claim, b) for b in ("buyer1", "buyer2")]
            ]

        outcomes = [first, second]
        assert sorted(o.status for o in outcomes) == [CLAIMED, "rejected"]
        loser = next(o for o in outcomes if not o.accepted)
        assert loser.reason == "not-listed"
        winner = next(o for o in outcomes if o.accepted)
        assert state_machine.get_order("o1").resale.buyer_id == winner.value.resale.buyer_id

    def test_claim_after_window_expired(self, marketplace, listed, env, state_machine):
        env.run(until=LISTED_AT + LISTING_TTL + 1)

        outcome = marketplace.claim("o1", "buyer1")

        assert outcome.reason == "expired"
        assert isinstance(outcome.error, DeadlineExceededError)
        assert state_machine.get_order("o1").resale.status == ResaleStatus.EXPIRED

    def test_claim_unlisted_order(self, marketplace, state_machine, scheduler):
        state_machine.place_order(make_order_request(), order_id="o2").unwrap()
        assert marketplace.claim("o2", "buyer1").reason == "not-listed"


@pytest.mark.unit
class TestSweep:
    def test_releases_unpaid_claims(self, marketplace, listed, env, state_machine):
        marketplace.claim("o1", "buyer1").unwrap()
        env.run(until=LISTED_AT + 5 * 60 + 1)

        result = marketplace.sweep()

        assert result.released == 1
        assert result.expired == 0
        resale = state_machine.get_order("o1").resale
        assert resale.status == ResaleStatus.LISTED
        assert resale.buyer_id is None
        assert marketplace.claim("o1", "buyer2").accepted

    def test_keeps_fresh_claims(self, marketplace, listed, env):
        marketplace.claim("o1", "buyer1").unwrap()
        env.run(until=LISTED_AT + 60)

        assert marketplace.sweep().released == 0

    def test_expires_stale_listings(self, marketplace, listed, env, state_machine):
        env.run(until=LISTED_AT + LISTING_TTL + 1)

        assert marketplace.sweep().expired == 1
        assert state_machine.get_order("o1").resale.status == ResaleStatus.EXPIRED
        assert marketplace.sweep().expired == 0

    def test_periodic_sweeper(self, marketplace, listed, env, state_machine):
        marketplace.start_sweeper(env, interval_seconds=60)

        env.run(until=LISTED_AT + LISTING_TTL + 61)

        assert state_machine.get_order("o1").resale.status == ResaleStatus.EXPIRED


@pytest.mark.unit
class TestPurchase:
    @pytest.fixture
    def claimed(self, marketplace, listed):
        marketplace.claim("o1", "buyer1").unwrap()
        return marketplace.create_resale_gateway_order("o1", "buyer1").unwrap()

    def test_gateway_order_at_resale_price(self, claimed, mock_gateway, state_machine):
        assert claimed.amount == 282
        assert claimed.receipt.startswith("rs_")
        assert mock_gateway.create_order.call_args.args[0] == 282
        assert state_machine.get_order("o1").resale.payment.gateway_order_id == "order_test123"

    def test_gateway_order_requires_claim(self, marketplace, listed):
        outcome = marketplace.create_resale_gateway_order("o1", "buyer2")
        assert outcome.reason == "not-claimed"

    def test_purchase_revives_order(
        self, marketplace, claimed, state_machine, scheduler, env, notification_provider
    ):
        outcome = marketplace.complete_purchase(
            "o1", "buyer1", "order_test123", "pay_rs1", sign("order_test123", "pay_rs1")
        )

        assert outcome.status == APPLIED
        order = outcome.value
        assert order.status == OrderStatus.PREPARING
        assert order.resale.status == ResaleStatus.SOLD
        assert order.resale.paid_at is not None
        assert order.is_paid
        assert scheduler.is_registered(EntityKind.ORDER, "o1")
        message = notification_provider.sent[-1]
        assert message["token"] == "token-buyer1"
        assert message["data"]["type"] == "resale_purchased"

        # Progression resumes from preparing.
        env.run(until=env.now + 121)
        assert state_machine.get_order("o1").status == OrderStatus.READY_FOR_PICKUP

    def test_replay_already_applied(self, marketplace, claimed):
        signature = sign("order_test123", "pay_rs1")
        marketplace.complete_purchase("o1", "buyer1", "order_test123", "pay_rs1", signature)

        outcome = marketplace.complete_purchase(
            "o1", "buyer1", "order_test123", "pay_rs1", signature
        )
        assert outcome.status == ALREADY_APPLIED

    @pytest.mark.parametrize("signature", ["bad", "bäd"])
    def test_invalid_signature(self, marketplace, claimed, state_machine, signature):
        outcome = marketplace.complete_purchase(
            "o1", "buyer1", "order_test123", "pay_rs1", signature
        )

        assert outcome.reason == "invalid-signature"
        assert state_machine.get_order("o1").status == OrderStatus.CANCELLED

    def test_order_mismatch(self, marketplace, claimed):
        outcome = marketplace.complete_purchase(
            "o1", "buyer1", "order_other", "pay_rs1", sign("order_other", "pay_rs1")
        )
        assert outcome.reason == "order-mismatch"

    def test_purchase_without_gateway_order(self, marketplace, listed):
        marketplace.claim("o1", "buyer1").unwrap()

        outcome = marketplace.complete_purchase(
            "o1", "buyer1", "order_test123", "pay_rs1", sign("order_test123", "pay_rs1")
        )
        assert outcome.reason == "amount-not-set"

    def test_release_clears_gateway_order(self, marketplace, claimed, env, state_machine):
        env.run(until=env.now + 5 * 60 + 1)
        marketplace.sweep()

        resale = state_machine.get_order("o1").resale
        assert resale.status == ResaleStatus.LISTED
        assert resale.payment.gateway_order_id is None
