"""Order repository for creation, lookup, resale queries and conditional writes."""

import json

from sqlalchemy import select

from order import (
    ACTIVE_STATUSES,
    DeliveryLocation,
    DeliveryMode,
    OrderAmounts,
    OrderItem,
    OrderStatus,
    PaymentMode,
    ResaleRecord,
    ResaleStatus,
)
from order import Order as OrderDomain
from payment import PaymentRecord

from ..schema import Order
from ..utils import from_db_datetime, to_db_datetime
from .base_entity_repository import BaseEntityRepository


class OrderRepository(BaseEntityRepository[Order, OrderDomain]):
    """Repository for order rows, including the embedded resale sub-state."""

    model_class = Order
    id_column = "order_id"

    def create(self, order: OrderDomain) -> None:
        """Insert a new order with its immutable item snapshot and amounts."""
        amounts = order.amounts
        row = Order(
            order_id=order.order_id,
            customer_id=order.customer_id,
            restaurant_id=order.restaurant_id,
            items_json=json.dumps([item.model_dump(mode="json") for item in order.items]),
            delivery_mode=order.delivery_mode.value,
            payment_mode=order.payment_mode.value,
            linked_trip_id=order.linked_trip_id,
            delivery_lat=order.delivery.lat,
            delivery_lon=order.delivery.lon,
            delivery_address=order.delivery.address,
            items_total=amounts.items_total,
            platform_fee=amounts.platform_fee,
            delivery_fee=amounts.delivery_fee,
            distance_fee=amounts.distance_fee,
            discounts=amounts.discounts,
            tax_amount=amounts.tax_amount,
            final_payable=amounts.final_payable,
            status=order.status.value,
            courier_id=order.courier_id,
            otp_pickup=order.otp_pickup,
            otp_drop=order.otp_drop,
            eta_minutes=order.eta_minutes,
            is_paid=order.is_paid,
            resellable=False,
            resale_status=ResaleStatus.NONE.value,
            placed_at=to_db_datetime(order.placed_at),
        )
        self.session.add(row)

    def list_active(self) -> list[OrderDomain]:
        """Orders still moving through fulfilment (not delivered, not cancelled)."""
        return self.list_by_status(ACTIVE_STATUSES)

    def list_by_resale_status(self, resale_status: ResaleStatus) -> list[OrderDomain]:
        stmt = (
            select(Order)
            .where(Order.resellable.is_(True), Order.resale_status == resale_status.value)
            .order_by(Order.resale_listed_at.asc())
        )
        result = self.session.execute(stmt)
        return [self._to_domain(o) for o in result.scalars().all()]

    def _to_domain(self, order: Order) -> OrderDomain:
        """Convert ORM model to domain model."""
        return OrderDomain(
            order_id=order.order_id,
            customer_id=order.customer_id,
            restaurant_id=order.restaurant_id,
            items=tuple(OrderItem.model_validate(i) for i in json.loads(order.items_json)),
            delivery_mode=DeliveryMode(order.delivery_mode),
            payment_mode=PaymentMode(order.payment_mode),
            linked_trip_id=order.linked_trip_id,
            delivery=DeliveryLocation(
                lat=order.delivery_lat,
                lon=order.delivery_lon,
                address=order.delivery_address,
            ),
            amounts=OrderAmounts(
                items_total=order.items_total,
                platform_fee=order.platform_fee,
                delivery_fee=order.delivery_fee,
                distance_fee=order.distance_fee,
                discounts=order.discounts,
                tax_amount=order.tax_amount,
                final_payable=order.final_payable,
            ),
            status=OrderStatus(order.status),
            courier_id=order.courier_id,
            otp_pickup=order.otp_pickup,
            otp_drop=order.otp_drop,
            eta_minutes=order.eta_minutes,
            cancelled_stage=(
                OrderStatus(order.cancelled_stage) if order.cancelled_stage else None
            ),
            cancelled_by=order.cancelled_by,
            cancellation_reason=order.cancellation_reason,
            original_customer_pays_full=order.original_customer_pays_full,
            resale=ResaleRecord(
                resellable=order.resellable,
                status=ResaleStatus(order.resale_status),
                price=order.resale_price,
                buyer_id=order.resale_buyer_id,
                listed_at=from_db_datetime(order.resale_listed_at),
                claimed_at=from_db_datetime(order.resale_claimed_at),
                payment=PaymentRecord(
                    gateway_order_id=order.resale_gateway_order_id,
                    gateway_payment_id=order.resale_gateway_payment_id,
                    gateway_signature=order.resale_gateway_signature,
                    amount=order.resale_payment_amount,
                ),
                paid_at=from_db_datetime(order.resale_paid_at),
            ),
            payment=PaymentRecord(
                gateway_order_id=order.gateway_order_id,
                gateway_payment_id=order.gateway_payment_id,
                gateway_signature=order.gateway_signature,
                amount=order.payment_amount,
            ),
            is_paid=order.is_paid,
            paid_at=from_db_datetime(order.paid_at),
            placed_at=from_db_datetime(order.placed_at),
            accepted_at=from_db_datetime(order.accepted_at),
            preparing_at=from_db_datetime(order.preparing_at),
            ready_at=from_db_datetime(order.ready_at),
            picked_up_at=from_db_datetime(order.picked_up_at),
            on_the_way_at=from_db_datetime(order.on_the_way_at),
            delivered_at=from_db_datetime(order.delivered_at),
            cancelled_at=from_db_datetime(order.cancelled_at),
        )
