"""Payment ledger for bookings.

Only COMPLETED payments count as paid. A payment moved to REFUNDED stops
counting, so the refunded amount becomes outstanding again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from django.db import transaction

from .errors import InvalidTransition, NotFound, OverPayment
from .models import Booking, Payment

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS = {
    Payment.Status.PENDING: frozenset({Payment.Status.COMPLETED, Payment.Status.FAILED}),
    Payment.Status.COMPLETED: frozenset({Payment.Status.REFUNDED}),
    Payment.Status.FAILED: frozenset(),
    Payment.Status.REFUNDED: frozenset(),
}


@dataclass(frozen=True)
class Balance:
    total_price: Decimal
    total_paid: Decimal
    total_refunded: Decimal
    remaining: Decimal


def _sum(payments: Iterable[Payment], status) -> Decimal:
    return sum((p.amount for p in payments if p.status == status), Decimal("0"))


def compute_balance(booking: Booking, payments: Iterable[Payment]) -> Balance:
    payments = list(payments)
    total_paid = _sum(payments, Payment.Status.COMPLETED)
    return Balance(
        total_price=booking.total_price,
        total_paid=total_paid,
        total_refunded=_sum(payments, Payment.Status.REFUNDED),
        remaining=booking.total_price - total_paid,
    )


@transaction.atomic
def add_payment(booking_id, amount, method) -> Payment:
    """Record a PENDING payment unless completed payments plus ``amount`` exceed the total."""
    try:
        booking = Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFound("Booking not found")

    balance = compute_balance(booking, booking.payments.all())
    if balance.total_paid + amount > booking.total_price:
        logger.warning(
            "Rejected payment of %s for booking %s: %s remaining",
            amount, booking.pk, balance.remaining,
        )
        raise OverPayment()

    payment = Payment.objects.create(
        booking=booking,
        amount=amount,
        method=method,
        status=Payment.Status.PENDING,
    )
    logger.info("Payment %s of %s added to booking %s", payment.pk, amount, booking.pk)
    return payment


@transaction.atomic
def settle_payment(payment_id, new_status) -> Payment:
    try:
        payment = Payment.objects.select_for_update().get(pk=payment_id)
    except Payment.DoesNotExist:
        raise NotFound("Payment not found")

    if new_status not in PAYMENT_TRANSITIONS.get(payment.status, frozenset()):
        raise InvalidTransition(
            f"Cannot move payment {payment.pk} from {payment.status} to {new_status}"
        )

    payment.status = new_status
    payment.save(update_fields=["status"])
    logger.info("Payment %s settled as %s", payment.pk, new_status)
    return payment


def booking_balance(booking_id) -> Balance:
    try:
        booking = Booking.objects.get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFound("Booking not found")
    return compute_balance(booking, booking.payments.all())
