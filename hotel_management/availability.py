"""Date-range overlap checks and room availability search.

Stays are half-open intervals ``[check_in, check_out)``: a guest checking out
on the day another checks in does not conflict with them.
"""

from django.db.models import Exists, OuterRef

from .errors import InvalidRange
from .models import Booking, Room

BLOCKING_STATUSES = frozenset({
    Booking.Status.PENDING,
    Booking.Status.CONFIRMED,
    Booking.Status.CHECKED_IN,
})


def validate_range(check_in, check_out):
    if check_in is None or check_out is None or check_out <= check_in:
        raise InvalidRange()


def ranges_overlap(start_a, end_a, start_b, end_b):
    return start_a < end_b and start_b < end_a


def is_range_blocked(room_id, check_in, check_out, existing_bookings, blocking_statuses=BLOCKING_STATUSES):
    """Return True if any booking of ``room_id`` in a blocking status overlaps the range.

    ``existing_bookings`` may hold bookings of other rooms; they are ignored.
    """
    for booking in existing_bookings:
        if booking.room_id != room_id or booking.status not in blocking_statuses:
            continue
        if ranges_overlap(check_in, check_out, booking.check_in, booking.check_out):
            return True
    return False


def overlapping_bookings(room_id, check_in, check_out, exclude_pk=None, blocking_statuses=BLOCKING_STATUSES):
    qs = Booking.objects.filter(
        room_id=room_id,
        status__in=list(blocking_statuses),
        check_in__lt=check_out,
        check_out__gt=check_in,
    )
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    return qs


def find_available_rooms(check_in, check_out, min_capacity=None):
    """Rooms in AVAILABLE status with no blocking booking over the range, by number."""
    validate_range(check_in, check_out)

    overlap = Exists(
        Booking.objects.filter(
            room=OuterRef('pk'),
            status__in=list(BLOCKING_STATUSES),
            check_in__lt=check_out,
            check_out__gt=check_in,
        )
    )
    qs = (
        Room.objects.annotate(has_overlap=overlap)
        .filter(has_overlap=False, status=Room.Status.AVAILABLE)
    )
    if min_capacity is not None:
        qs = qs.filter(capacity__gte=min_capacity)
    return qs.order_by('number')
