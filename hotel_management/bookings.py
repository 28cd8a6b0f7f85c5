"""Booking lifecycle: creation, updates and status transitions.

Every status change goes through :func:`transition_booking`, which enforces
the transition table below. Creation and updates lock the room row so the
availability check and the write happen atomically per room.
"""

from __future__ import annotations

import logging

from django.db import transaction

from .availability import BLOCKING_STATUSES, is_range_blocked, overlapping_bookings, validate_range
from .errors import InvalidTransition, NotFound, RoomInUse, RoomUnavailable
from .models import Booking, Guest, Room, Service

logger = logging.getLogger(__name__)

Status = Booking.Status

TRANSITIONS = {
    Status.PENDING: frozenset({Status.CONFIRMED, Status.CANCELLED}),
    Status.CONFIRMED: frozenset({Status.CHECKED_IN, Status.CANCELLED}),
    Status.CHECKED_IN: frozenset({Status.CHECKED_OUT}),
    Status.CHECKED_OUT: frozenset(),
    Status.CANCELLED: frozenset(),
}


def can_transition(current, target) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _assert_transition(booking: Booking, target) -> None:
    if can_transition(booking.status, target):
        return
    if booking.status == Status.CHECKED_IN and target == Status.CANCELLED:
        message = "Cannot cancel a booking that has already checked in"
    else:
        message = f"Cannot move booking {booking.pk} from {booking.status} to {target}"
    logger.warning("Rejected status change for booking %s: %s -> %s", booking.pk, booking.status, target)
    raise InvalidTransition(message)


def transition_booking(booking: Booking, new_status) -> Booking:
    """Validate and persist a status change on an already locked booking."""
    _assert_transition(booking, new_status)
    previous = booking.status
    booking.status = new_status
    booking.save(update_fields=["status"])
    logger.info("Booking %s moved %s -> %s", booking.pk, previous, new_status)
    return booking


def _lock_booking(booking_id) -> Booking:
    try:
        return Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFound("Booking not found")


def _lock_room(room_id) -> Room:
    try:
        return Room.objects.select_for_update().get(pk=room_id)
    except Room.DoesNotExist:
        raise NotFound("Room not found")


def _room_bookings(room_id, exclude_pk=None):
    qs = Booking.objects.filter(room_id=room_id, status__in=list(BLOCKING_STATUSES))
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    return qs


def _ensure_available(room_id, check_in, check_out, exclude_pk=None) -> None:
    existing = _room_bookings(room_id, exclude_pk=exclude_pk)
    if is_range_blocked(room_id, check_in, check_out, existing):
        logger.warning(
            "Room %s unavailable for %s - %s", room_id, check_in, check_out
        )
        raise RoomUnavailable()


@transaction.atomic
def create_booking(guest_id, room_id, check_in, check_out, guests, total_price) -> Booking:
    """Create a PENDING booking after checking the room is free.

    ``total_price`` comes from the caller (nights times nightly rate) and is
    stored as given.
    """
    validate_range(check_in, check_out)
    room = _lock_room(room_id)
    if not Guest.objects.filter(pk=guest_id).exists():
        raise NotFound("Guest not found")

    _ensure_available(room.pk, check_in, check_out)

    booking = Booking.objects.create(
        room=room,
        guest_id=guest_id,
        check_in=check_in,
        check_out=check_out,
        guests=guests,
        total_price=total_price,
        status=Status.PENDING,
    )
    logger.info("Booking %s created for room %s", booking.pk, room.number)
    return booking


@transaction.atomic
def update_booking(booking_id, room_id, check_in, check_out, guests, status, total_price) -> Booking:
    """Overwrite a booking's room, dates, guest count, status and price.

    The overlap check is repeated only when the room or the dates change and
    the booking will still hold the room, and ignores the booking itself. A
    status different from the stored one must be an allowed transition.
    """
    validate_range(check_in, check_out)
    booking = _lock_booking(booking_id)

    moved = (
        room_id != booking.room_id
        or check_in != booking.check_in
        or check_out != booking.check_out
    )
    if moved:
        room = _lock_room(room_id)
        if status in BLOCKING_STATUSES:
            _ensure_available(room.pk, check_in, check_out, exclude_pk=booking.pk)

    if status != booking.status:
        _assert_transition(booking, status)

    booking.room_id = room_id
    booking.check_in = check_in
    booking.check_out = check_out
    booking.guests = guests
    booking.status = status
    booking.total_price = total_price
    booking.save()
    logger.info("Booking %s updated", booking.pk)
    return booking


@transaction.atomic
def cancel_booking(booking_id) -> Booking:
    booking = _lock_booking(booking_id)
    if booking.status == Status.CANCELLED:
        return booking
    return transition_booking(booking, Status.CANCELLED)


@transaction.atomic
def confirm_booking(booking_id) -> Booking:
    booking = _lock_booking(booking_id)
    return transition_booking(booking, Status.CONFIRMED)


@transaction.atomic
def check_in_booking(booking_id) -> Booking:
    booking = _lock_booking(booking_id)
    return transition_booking(booking, Status.CHECKED_IN)


@transaction.atomic
def check_out_booking(booking_id) -> Booking:
    booking = _lock_booking(booking_id)
    return transition_booking(booking, Status.CHECKED_OUT)


def get_booking(booking_id) -> Booking:
    try:
        return (
            Booking.objects.select_related("room", "guest")
            .prefetch_related("payments", "services")
            .get(pk=booking_id)
        )
    except Booking.DoesNotExist:
        raise NotFound("Booking not found")


def list_bookings():
    return Booking.objects.select_related("room", "guest").order_by("-check_in", "-pk")


def list_guest_bookings(guest_id):
    return list_bookings().filter(guest_id=guest_id)


@transaction.atomic
def add_service_to_booking(booking_id, service_id) -> Service:
    """Attach a copy of a catalog service to the booking."""
    booking = _lock_booking(booking_id)
    try:
        service = Service.objects.get(pk=service_id, booking__isnull=True)
    except Service.DoesNotExist:
        raise NotFound("Service not found")

    line_item = Service.objects.create(
        name=service.name,
        description=service.description,
        price=service.price,
        category=service.category,
        booking=booking,
    )
    logger.info("Service %s added to booking %s", service.name, booking.pk)
    return line_item


@transaction.atomic
def remove_service_from_booking(booking_id, service_id) -> Service:
    """Delete one of the booking's service line-items; returns the deleted row."""
    try:
        service = Service.objects.select_for_update().get(pk=service_id, booking_id=booking_id)
    except Service.DoesNotExist:
        raise NotFound("Service is not associated with this booking")

    service.delete()
    logger.info("Service %s removed from booking %s", service_id, booking_id)
    return service


@transaction.atomic
def delete_room(room_id) -> list:
    """Delete a room without blocking bookings.

    Returns ``(booking_id, guest_id)`` for every finished booking removed
    along with the room.
    """
    room = _lock_room(room_id)
    if _room_bookings(room.pk).exists():
        raise RoomInUse()
    removed = list(room.bookings.values_list("pk", "guest_id"))
    room.delete()
    logger.info("Room %s deleted with %s finished bookings", room.number, len(removed))
    return removed


def room_bookings(room_id) -> list:
    """``(booking_id, guest_id)`` of every booking shown with this room."""
    return list(Booking.objects.filter(room_id=room_id).values_list("pk", "guest_id"))


def room_conflicts(room_id, check_in, check_out, exclude_pk=None):
    """Blocking bookings of the room overlapping the range, for admin views."""
    validate_range(check_in, check_out)
    return overlapping_bookings(room_id, check_in, check_out, exclude_pk=exclude_pk)
