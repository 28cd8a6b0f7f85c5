from django.core.cache import cache
from django.db import connections
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from rest_framework.test import APITestCase
from rest_framework import status
from datetime import date, timedelta
from decimal import Decimal
import random
from unittest import mock
from concurrent.futures import ThreadPoolExecutor, as_completed

from .availability import find_available_rooms, is_range_blocked, ranges_overlap
from .bookings import (
    add_service_to_booking,
    can_transition,
    cancel_booking,
    check_in_booking,
    check_out_booking,
    confirm_booking,
    create_booking,
    delete_room,
    remove_service_from_booking,
    update_booking,
)
from .errors import InvalidRange, InvalidTransition, NotFound, OverPayment, RoomInUse, RoomUnavailable
from .models import Room, Booking, Guest, Payment, Service
from .payments import add_payment, compute_balance, settle_payment

JUNE_1 = date(2024, 6, 1)


def day(n):
    return JUNE_1 + timedelta(days=n)


class OverlapCheckerTestCase(SimpleTestCase):
    """Pure overlap predicate, no database"""

    def booking(self, start, end, status=Booking.Status.CONFIRMED, room_id=1):
        return Booking(room_id=room_id, check_in=day(start), check_out=day(end), status=status)

    def test_overlap_scenarios_are_blocked(self):
        existing = [self.booking(1, 5)]
        scenarios = [
            (0, 3, 'starts before and overlaps'),
            (2, 6, 'starts during existing booking'),
            (2, 4, 'completely within existing booking'),
            (0, 6, 'completely encompasses existing booking'),
            (1, 5, 'identical range'),
        ]
        for start, end, description in scenarios:
            with self.subTest(scenario=description):
                self.assertTrue(is_range_blocked(1, day(start), day(end), existing))

    def test_adjacent_ranges_are_not_blocked(self):
        existing = [self.booking(5, 10)]
        self.assertFalse(is_range_blocked(1, day(1), day(5), existing))
        self.assertFalse(is_range_blocked(1, day(10), day(15), existing))

    def test_non_blocking_statuses_are_ignored(self):
        for booking_status in (Booking.Status.CANCELLED, Booking.Status.CHECKED_OUT):
            with self.subTest(status=booking_status):
                existing = [self.booking(1, 5, status=booking_status)]
                self.assertFalse(is_range_blocked(1, day(2), day(4), existing))

    def test_blocking_statuses_block(self):
        for booking_status in (Booking.Status.PENDING, Booking.Status.CONFIRMED, Booking.Status.CHECKED_IN):
            with self.subTest(status=booking_status):
                existing = [self.booking(1, 5, status=booking_status)]
                self.assertTrue(is_range_blocked(1, day(2), day(4), existing))

    def test_bookings_of_other_rooms_are_ignored(self):
        existing = [self.booking(1, 5, room_id=2)]
        self.assertFalse(is_range_blocked(1, day(2), day(4), existing))

    def test_custom_blocking_set(self):
        existing = [self.booking(1, 5, status=Booking.Status.PENDING)]
        self.assertFalse(
            is_range_blocked(1, day(2), day(4), existing, blocking_statuses={Booking.Status.CONFIRMED})
        )

    def test_random_ranges_match_day_sets(self):
        """Blocked exactly when the two ranges share at least one night"""
        rng = random.Random(20240601)
        for _ in range(500):
            a_start = rng.randint(0, 30)
            a_end = rng.randint(a_start + 1, 31)
            b_start = rng.randint(0, 30)
            b_end = rng.randint(b_start + 1, 31)

            shares_night = bool(set(range(a_start, a_end)) & set(range(b_start, b_end)))
            existing = [self.booking(b_start, b_end)]

            self.assertEqual(
                is_range_blocked(1, day(a_start), day(a_end), existing), shares_night,
                f"[{a_start}, {a_end}) vs [{b_start}, {b_end})"
            )
            self.assertEqual(
                ranges_overlap(day(a_start), day(a_end), day(b_start), day(b_end)),
                ranges_overlap(day(b_start), day(b_end), day(a_start), day(a_end)),
            )


class BookingFixturesMixin:

    def setUp(self):
        super().setUp()
        cache.clear()
        self.room = Room.objects.create(number="101", room_type=Room.Type.STANDARD,
                                        price=Decimal("100.00"), capacity=2)
        self.guest = Guest.objects.create(full_name="Test Guest", email="test@example.com")

    def make_booking(self, start, end, booking_status=Booking.Status.CONFIRMED, room=None, total_price=None):
        room = room or self.room
        return Booking.objects.create(
            room=room,
            guest=self.guest,
            check_in=day(start),
            check_out=day(end),
            guests=1,
            total_price=total_price if total_price is not None else room.price * (end - start),
            status=booking_status,
        )


class AvailabilitySearchTestCase(BookingFixturesMixin, TestCase):

    def test_adjacent_stay_is_available(self):
        self.make_booking(0, 4)  # 2024-06-01 to 2024-06-05
        rooms = find_available_rooms(date(2024, 6, 5), date(2024, 6, 8))
        self.assertIn(self.room, rooms)

    def test_overlapping_stay_is_not_available(self):
        self.make_booking(0, 4)
        rooms = find_available_rooms(date(2024, 6, 4), date(2024, 6, 6))
        self.assertNotIn(self.room, rooms)

    def test_cancelled_and_checked_out_bookings_do_not_block(self):
        self.make_booking(0, 4, Booking.Status.CANCELLED)
        self.make_booking(0, 4, Booking.Status.CHECKED_OUT)
        self.assertIn(self.room, find_available_rooms(day(1), day(3)))

    def test_min_capacity_filter(self):
        suite = Room.objects.create(number="401", room_type=Room.Type.SUITE,
                                    price=Decimal("350.00"), capacity=4)
        rooms = list(find_available_rooms(day(1), day(3), min_capacity=3))
        self.assertEqual(rooms, [suite])

    def test_rooms_out_of_service_are_excluded(self):
        Room.objects.create(number="102", price=Decimal("100.00"), capacity=2,
                            status=Room.Status.MAINTENANCE)
        numbers = [room.number for room in find_available_rooms(day(1), day(3))]
        self.assertEqual(numbers, ["101"])

    def test_results_are_ordered_by_number(self):
        Room.objects.create(number="303", price=Decimal("90.00"))
        Room.objects.create(number="202", price=Decimal("90.00"))
        numbers = [room.number for room in find_available_rooms(day(1), day(3))]
        self.assertEqual(numbers, ["101", "202", "303"])

    def test_invalid_range_is_rejected(self):
        with self.assertRaises(InvalidRange):
            find_available_rooms(day(3), day(3))
        with self.assertRaises(InvalidRange):
            find_available_rooms(day(4), day(3))

    def test_result_never_contains_blocked_rooms(self):
        rng = random.Random(7)
        rooms = [Room.objects.create(number=f"5{i:02d}", price=Decimal("80.00"), capacity=2)
                 for i in range(6)]
        for room in rooms:
            start = rng.randint(0, 20)
            self.make_booking(start, start + rng.randint(1, 5), room=room,
                              booking_status=rng.choice(list(Booking.Status)))

        for _ in range(30):
            start = rng.randint(0, 25)
            end = start + rng.randint(1, 6)
            available = set(find_available_rooms(day(start), day(end)))
            blocked = {
                room for room in Room.objects.all()
                if is_range_blocked(room.pk, day(start), day(end), Booking.objects.filter(room=room))
            }
            self.assertFalse(available & blocked)


class BookingLifecycleTestCase(BookingFixturesMixin, TestCase):

    def test_create_booking_is_pending_with_given_price(self):
        booking = create_booking(self.guest.pk, self.room.pk, day(1), day(3), 2, Decimal("199.99"))
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.total_price, Decimal("199.99"))
        self.assertEqual(booking.nights, 2)

    def test_create_booking_rejects_overlap(self):
        self.make_booking(1, 5)
        with self.assertRaises(RoomUnavailable):
            create_booking(self.guest.pk, self.room.pk, day(2), day(4), 1, Decimal("200.00"))
        self.assertEqual(Booking.objects.count(), 1)

    def test_create_booking_allows_adjacent_and_cancelled(self):
        self.make_booking(5, 10)
        self.make_booking(1, 5, Booking.Status.CANCELLED)
        booking = create_booking(self.guest.pk, self.room.pk, day(1), day(5), 1, Decimal("400.00"))
        self.assertEqual(booking.status, Booking.Status.PENDING)

    def test_create_booking_rejects_bad_input(self):
        with self.assertRaises(InvalidRange):
            create_booking(self.guest.pk, self.room.pk, day(3), day(1), 1, Decimal("100.00"))
        with self.assertRaises(NotFound):
            create_booking(self.guest.pk, 9999, day(1), day(3), 1, Decimal("100.00"))
        with self.assertRaises(NotFound):
            create_booking(9999, self.room.pk, day(1), day(3), 1, Decimal("100.00"))

    def test_update_without_moving_skips_own_range(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        updated = update_booking(booking.pk, self.room.pk, day(1), day(3), 2,
                                 Booking.Status.PENDING, Decimal("150.00"))
        self.assertEqual(updated.guests, 2)
        self.assertEqual(updated.total_price, Decimal("150.00"))

    def test_update_extending_own_stay_excludes_itself(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        updated = update_booking(booking.pk, self.room.pk, day(1), day(5), 1,
                                 Booking.Status.PENDING, Decimal("400.00"))
        self.assertEqual(updated.check_out, day(5))

    def test_update_into_conflict_is_rejected(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        self.make_booking(5, 8)
        with self.assertRaises(RoomUnavailable):
            update_booking(booking.pk, self.room.pk, day(4), day(6), 1,
                           Booking.Status.PENDING, Decimal("200.00"))
        booking.refresh_from_db()
        self.assertEqual(booking.check_in, day(1))

    def test_update_to_other_room_checks_that_room(self):
        other = Room.objects.create(number="102", price=Decimal("150.00"), capacity=2)
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        self.make_booking(1, 3, room=other)
        with self.assertRaises(RoomUnavailable):
            update_booking(booking.pk, other.pk, day(1), day(3), 1,
                           Booking.Status.PENDING, Decimal("300.00"))

    def test_moving_a_cancelled_booking_skips_overlap_check(self):
        booking = self.make_booking(1, 3, Booking.Status.CANCELLED)
        self.make_booking(5, 8)
        updated = update_booking(booking.pk, self.room.pk, day(5), day(7), 1,
                                 Booking.Status.CANCELLED, Decimal("200.00"))
        self.assertEqual(updated.check_in, day(5))

    def test_moving_to_missing_room_is_rejected(self):
        booking = self.make_booking(1, 3, Booking.Status.CANCELLED)
        with self.assertRaises(NotFound):
            update_booking(booking.pk, 9999, day(1), day(3), 1,
                           Booking.Status.CANCELLED, Decimal("200.00"))

    def test_update_validates_status_transition(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        with self.assertRaises(InvalidTransition):
            update_booking(booking.pk, self.room.pk, day(1), day(3), 1,
                           Booking.Status.CHECKED_OUT, Decimal("200.00"))
        updated = update_booking(booking.pk, self.room.pk, day(1), day(3), 1,
                                 Booking.Status.CONFIRMED, Decimal("200.00"))
        self.assertEqual(updated.status, Booking.Status.CONFIRMED)

    def test_update_missing_booking(self):
        with self.assertRaises(NotFound):
            update_booking(9999, self.room.pk, day(1), day(3), 1,
                           Booking.Status.PENDING, Decimal("200.00"))

    def test_cancel_pending_and_confirmed(self):
        for booking_status in (Booking.Status.PENDING, Booking.Status.CONFIRMED):
            with self.subTest(status=booking_status):
                booking = self.make_booking(1, 3, booking_status)
                self.assertEqual(cancel_booking(booking.pk).status, Booking.Status.CANCELLED)

    def test_cancel_checked_in_is_rejected(self):
        booking = self.make_booking(1, 3, Booking.Status.CHECKED_IN)
        with self.assertRaisesMessage(InvalidTransition, "already checked in"):
            cancel_booking(booking.pk)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CHECKED_IN)

    def test_cancel_is_idempotent(self):
        booking = self.make_booking(1, 3, Booking.Status.CANCELLED)
        self.assertEqual(cancel_booking(booking.pk).status, Booking.Status.CANCELLED)

    def test_cancel_missing_booking(self):
        with self.assertRaises(NotFound):
            cancel_booking(9999)

    def test_confirm_cancelled_booking_is_rejected(self):
        booking = self.make_booking(1, 3, Booking.Status.CANCELLED)
        with self.assertRaises(InvalidTransition):
            confirm_booking(booking.pk)

    def test_full_stay(self):
        booking = create_booking(self.guest.pk, self.room.pk, day(1), day(3), 1, Decimal("200.00"))
        self.assertEqual(confirm_booking(booking.pk).status, Booking.Status.CONFIRMED)
        self.assertEqual(check_in_booking(booking.pk).status, Booking.Status.CHECKED_IN)
        self.assertEqual(check_out_booking(booking.pk).status, Booking.Status.CHECKED_OUT)
        with self.assertRaises(InvalidTransition):
            check_in_booking(booking.pk)

    def test_transition_table(self):
        S = Booking.Status
        allowed = {
            (S.PENDING, S.CONFIRMED), (S.PENDING, S.CANCELLED),
            (S.CONFIRMED, S.CHECKED_IN), (S.CONFIRMED, S.CANCELLED),
            (S.CHECKED_IN, S.CHECKED_OUT),
        }
        for current in S:
            for target in S:
                with self.subTest(current=current, target=target):
                    self.assertEqual(can_transition(current, target), (current, target) in allowed)


class RaceConditionTestCase(TransactionTestCase):
    """Concurrent creation for the same room and dates"""

    def setUp(self):
        self.room = Room.objects.create(number="101", price=Decimal("100.00"), capacity=2)
        self.guests = [Guest.objects.create(full_name=f"Guest {i}", email=f"guest{i}@example.com")
                       for i in range(5)]

    def test_concurrent_booking_attempts_create_exactly_one_booking(self):

        def attempt(guest):
            try:
                booking = create_booking(guest.pk, self.room.pk, day(1), day(3), 1, Decimal("200.00"))
                return {'success': True, 'booking_id': booking.pk}
            except Exception as e:
                return {'success': False, 'error': e}
            finally:
                connections.close_all()

        with ThreadPoolExecutor(max_workers=len(self.guests)) as executor:
            futures = [executor.submit(attempt, guest) for guest in self.guests]
            results = [future.result() for future in as_completed(futures)]

        successful = [r for r in results if r['success']]
        failed = [r for r in results if not r['success']]
        self.assertEqual(len(successful), 1)
        self.assertEqual(len(failed), len(self.guests) - 1)
        for result in failed:
            self.assertIsInstance(result['error'], RoomUnavailable)
        self.assertEqual(Booking.objects.filter(room=self.room).count(), 1)


class PaymentLedgerTestCase(BookingFixturesMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.booking = self.make_booking(1, 6, Booking.Status.CONFIRMED, total_price=Decimal("500.00"))

    def complete(self, amount):
        payment = add_payment(self.booking.pk, Decimal(amount), Payment.Method.CASH)
        return settle_payment(payment.pk, Payment.Status.COMPLETED)

    def balance(self):
        return compute_balance(self.booking, self.booking.payments.all())

    def test_new_payment_is_pending(self):
        payment = add_payment(self.booking.pk, Decimal("100.00"), Payment.Method.CREDIT_CARD)
        self.assertEqual(payment.status, Payment.Status.PENDING)
        self.assertEqual(self.balance().total_paid, Decimal("0"))

    def test_over_payment_scenario(self):
        self.complete("300.00")
        self.assertEqual(self.balance().remaining, Decimal("200.00"))

        with self.assertRaises(OverPayment):
            add_payment(self.booking.pk, Decimal("250.00"), Payment.Method.CASH)

        self.complete("200.00")
        self.assertEqual(self.balance().remaining, Decimal("0.00"))
        self.assertEqual(self.balance().total_paid, Decimal("500.00"))

    def test_pending_payments_do_not_count_towards_limit(self):
        add_payment(self.booking.pk, Decimal("400.00"), Payment.Method.CASH)
        payment = add_payment(self.booking.pk, Decimal("500.00"), Payment.Method.CASH)
        self.assertEqual(payment.amount, Decimal("500.00"))

    def test_payment_for_missing_booking(self):
        with self.assertRaises(NotFound):
            add_payment(9999, Decimal("10.00"), Payment.Method.CASH)

    def test_settle_transitions(self):
        payment = add_payment(self.booking.pk, Decimal("100.00"), Payment.Method.CASH)
        settle_payment(payment.pk, Payment.Status.FAILED)
        with self.assertRaises(InvalidTransition):
            settle_payment(payment.pk, Payment.Status.COMPLETED)

        payment = add_payment(self.booking.pk, Decimal("100.00"), Payment.Method.CASH)
        with self.assertRaises(InvalidTransition):
            settle_payment(payment.pk, Payment.Status.REFUNDED)
        with self.assertRaises(NotFound):
            settle_payment(9999, Payment.Status.COMPLETED)

    def test_refund_restores_remaining_balance(self):
        payment = self.complete("300.00")
        settle_payment(payment.pk, Payment.Status.REFUNDED)
        balance = self.balance()
        self.assertEqual(balance.total_paid, Decimal("0"))
        self.assertEqual(balance.total_refunded, Decimal("300.00"))
        self.assertEqual(balance.remaining, Decimal("500.00"))

    def test_compute_balance_is_pure(self):
        self.complete("120.00")
        add_payment(self.booking.pk, Decimal("30.00"), Payment.Method.ONLINE)
        payments = list(self.booking.payments.all())
        first = compute_balance(self.booking, payments)
        second = compute_balance(self.booking, payments)
        self.assertEqual(first, second)
        self.assertEqual(first.remaining, Decimal("380.00"))


class ServiceAndRoomTestCase(BookingFixturesMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.spa = Service.objects.create(name="Massage", price=Decimal("80.00"),
                                          category=Service.Category.SPA)

    def test_add_and_remove_service_line_item(self):
        booking = self.make_booking(1, 3)
        line_item = add_service_to_booking(booking.pk, self.spa.pk)

        self.assertNotEqual(line_item.pk, self.spa.pk)
        self.assertEqual(line_item.booking, booking)
        self.assertEqual(line_item.price, Decimal("80.00"))

        remove_service_from_booking(booking.pk, line_item.pk)
        self.assertFalse(booking.services.exists())
        self.assertTrue(Service.objects.filter(pk=self.spa.pk).exists())

    def test_catalog_service_cannot_be_removed_from_booking(self):
        booking = self.make_booking(1, 3)
        with self.assertRaises(NotFound):
            remove_service_from_booking(booking.pk, self.spa.pk)

    def test_line_item_of_another_booking_is_not_removed(self):
        booking = self.make_booking(1, 3)
        other = self.make_booking(5, 7)
        line_item = add_service_to_booking(other.pk, self.spa.pk)
        with self.assertRaises(NotFound):
            remove_service_from_booking(booking.pk, line_item.pk)
        self.assertTrue(other.services.exists())

    def test_add_service_to_missing_booking(self):
        with self.assertRaises(NotFound):
            add_service_to_booking(9999, self.spa.pk)

    def test_delete_room_with_active_booking_is_rejected(self):
        self.make_booking(1, 3, Booking.Status.PENDING)
        with self.assertRaises(RoomInUse):
            delete_room(self.room.pk)

    def test_delete_room_with_finished_bookings(self):
        finished = self.make_booking(1, 3, Booking.Status.CHECKED_OUT)
        removed = delete_room(self.room.pk)
        self.assertEqual(removed, [(finished.pk, self.guest.pk)])
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Room.objects.filter(pk=self.room.pk).exists())


class RoomApiTestCase(BookingFixturesMixin, APITestCase):

    def test_availability_endpoint(self):
        self.make_booking(0, 4)

        response = self.client.get('/api/rooms/', {'check_in': '2024-06-05', 'check_out': '2024-06-08'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['number'] for r in response.data], ['101'])

        response = self.client.get('/api/rooms/', {'check_in': '2024-06-04', 'check_out': '2024-06-06'})
        self.assertEqual(response.data, [])

    def test_availability_rejects_bad_dates(self):
        response = self.client.get('/api/rooms/', {'check_in': '06/05/2024', 'check_out': '2024-06-08'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/rooms/', {'check_in': '2024-06-08', 'check_out': '2024-06-05'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_all_rooms_without_dates(self):
        response = self.client.get('/api/rooms/')
        self.assertEqual(len(response.data), 1)

    def test_delete_room_in_use(self):
        self.make_booking(1, 3, Booking.Status.CONFIRMED)
        response = self.client.delete(f'/api/rooms/{self.room.pk}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'room_in_use')

    def test_room_conflicts(self):
        blocking = self.make_booking(1, 3)
        self.make_booking(3, 5, Booking.Status.CANCELLED)
        response = self.client.get(f'/api/rooms/{self.room.pk}/conflicts/',
                                   {'check_in': day(2).isoformat(), 'check_out': day(6).isoformat()})
        self.assertEqual([b['id'] for b in response.data], [blocking.pk])

    def test_deleting_room_drops_cached_booking_views(self):
        finished = self.make_booking(1, 3, Booking.Status.CHECKED_OUT)
        detail_url = f'/api/bookings/{finished.pk}/'
        self.assertEqual(len(self.client.get('/api/bookings/').data), 1)
        self.assertEqual(self.client.get(detail_url).status_code, status.HTTP_200_OK)

        response = self.client.delete(f'/api/rooms/{self.room.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

        self.assertEqual(self.client.get('/api/bookings/').data, [])
        self.assertEqual(self.client.get(detail_url).status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.get('/api/bookings/by_guest/', {'guest_id': self.guest.pk}).data, [])

    def test_updating_room_refreshes_cached_bookings(self):
        booking = self.make_booking(1, 3)
        self.assertEqual(self.client.get('/api/bookings/').data[0]['room']['number'], '101')
        self.client.get(f'/api/bookings/{booking.pk}/')

        response = self.client.patch(f'/api/rooms/{self.room.pk}/', {'number': '101A'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.assertEqual(self.client.get('/api/bookings/').data[0]['room']['number'], '101A')
        self.assertEqual(self.client.get(f'/api/bookings/{booking.pk}/').data['room']['number'], '101A')

    def test_non_numeric_room_id(self):
        self.assertEqual(self.client.delete('/api/rooms/abc/').status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.get('/api/rooms/abc/conflicts/').status_code,
                         status.HTTP_404_NOT_FOUND)


class BookingApiTestCase(BookingFixturesMixin, APITestCase):

    def booking_payload(self, **overrides):
        payload = {
            'guest_id': self.guest.pk,
            'room_id': self.room.pk,
            'check_in': '2024-06-01',
            'check_out': '2024-06-05',
            'guests': 2,
            'total_price': '400.00',
        }
        payload.update(overrides)
        return payload

    def test_create_booking(self):
        response = self.client.post('/api/bookings/', self.booking_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Booking.Status.PENDING)
        self.assertEqual(response.data['nights'], 4)

    def test_create_overlapping_booking(self):
        self.make_booking(2, 6)
        response = self.client.post('/api/bookings/', self.booking_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Room is not available', response.data['error'])
        self.assertEqual(response.data['code'], 'room_unavailable')

    def test_create_with_reversed_dates(self):
        response = self.client.post('/api/bookings/',
                                    self.booking_payload(check_in='2024-06-05', check_out='2024-06-01'),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_patch_requires_every_field(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        response = self.client.patch(f'/api/bookings/{booking.pk}/', {'guests': 3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('status', response.data['fields'])

    def test_patch_missing_booking(self):
        payload = self.booking_payload(status=Booking.Status.PENDING)
        del payload['guest_id']
        response = self.client.patch('/api/bookings/9999/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_patch_updates_booking(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        payload = self.booking_payload(status=Booking.Status.CONFIRMED, guests=1, total_price='350.00')
        del payload['guest_id']
        response = self.client.patch(f'/api/bookings/{booking.pk}/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(booking.check_out, date(2024, 6, 5))
        self.assertEqual(booking.total_price, Decimal("350.00"))

    def test_cancel_and_confirm_endpoints(self):
        checked_in = self.make_booking(1, 3, Booking.Status.CHECKED_IN)
        response = self.client.post(f'/api/bookings/{checked_in.pk}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_transition')

        pending = self.make_booking(5, 7, Booking.Status.PENDING)
        response = self.client.post(f'/api/bookings/{pending.pk}/confirm/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Booking.Status.CONFIRMED)

        response = self.client.post('/api/bookings/9999/confirm/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_check_in_and_check_out_endpoints(self):
        booking = self.make_booking(1, 3, Booking.Status.CONFIRMED)
        response = self.client.post(f'/api/bookings/{booking.pk}/check_in/')
        self.assertEqual(response.data['status'], Booking.Status.CHECKED_IN)
        response = self.client.post(f'/api/bookings/{booking.pk}/check_out/')
        self.assertEqual(response.data['status'], Booking.Status.CHECKED_OUT)

    def test_admin_list_is_invalidated_after_mutation(self):
        response = self.client.get('/api/bookings/')
        self.assertEqual(response.data, [])

        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        response = self.client.get('/api/bookings/')
        self.assertEqual(response.data, [], "list should be served from cache")

        self.client.post(f'/api/bookings/{booking.pk}/confirm/')
        response = self.client.get('/api/bookings/')
        self.assertEqual([b['status'] for b in response.data], [Booking.Status.CONFIRMED])

    def test_detail_and_guest_views_are_invalidated(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        detail_url = f'/api/bookings/{booking.pk}/'
        guest_url = '/api/bookings/by_guest/'

        self.assertEqual(self.client.get(detail_url).data['status'], Booking.Status.PENDING)
        self.assertEqual(self.client.get(guest_url, {'guest_id': self.guest.pk}).data[0]['status'],
                         Booking.Status.PENDING)

        self.client.post(f'/api/bookings/{booking.pk}/cancel/')

        self.assertEqual(self.client.get(detail_url).data['status'], Booking.Status.CANCELLED)
        self.assertEqual(self.client.get(guest_url, {'guest_id': self.guest.pk}).data[0]['status'],
                         Booking.Status.CANCELLED)

    def test_by_guest_requires_guest_id(self):
        response = self.client.get('/api/bookings/by_guest/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_booking_detail(self):
        response = self.client.get('/api/bookings/9999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_non_numeric_booking_id(self):
        requests = [
            ('get', '/api/bookings/abc/'),
            ('post', '/api/bookings/abc/cancel/'),
            ('get', '/api/bookings/abc/balance/'),
            ('get', '/api/bookings/abc/payments/'),
            ('post', '/api/payments/abc/settle/'),
        ]
        for method, url in requests:
            with self.subTest(url=url):
                response = getattr(self.client, method)(url)
                self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class UnexpectedErrorTestCase(BookingFixturesMixin, APITestCase):

    def test_unexpected_error_returns_generic_500(self):
        booking = self.make_booking(1, 3, Booking.Status.PENDING)
        with mock.patch('hotel_management.bookings.confirm_booking',
                        side_effect=RuntimeError('db secret')):
            with self.assertLogs('hotel_management.exceptions', level='ERROR') as logs:
                response = self.client.post(f'/api/bookings/{booking.pk}/confirm/')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.json(), {'error': 'Internal server error'})
        self.assertNotIn('db secret', response.content.decode())
        self.assertEqual(str(logs.records[0].exc_info[1]), 'db secret')
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)


class PaymentApiTestCase(BookingFixturesMixin, APITestCase):

    def setUp(self):
        super().setUp()
        self.booking = self.make_booking(1, 6, Booking.Status.CONFIRMED, total_price=Decimal("500.00"))

    def pay(self, amount):
        return self.client.post(f'/api/bookings/{self.booking.pk}/payments/',
                                {'amount': amount, 'method': Payment.Method.CASH}, format='json')

    def settle(self, payment_id, payment_status):
        return self.client.post(f'/api/payments/{payment_id}/settle/',
                                {'status': payment_status}, format='json')

    def test_payment_flow(self):
        response = self.pay('300.00')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Payment.Status.PENDING)

        response = self.settle(response.data['id'], Payment.Status.COMPLETED)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get(f'/api/bookings/{self.booking.pk}/balance/')
        self.assertEqual(response.data['total_paid'], Decimal("300.00"))
        self.assertEqual(response.data['remaining'], Decimal("200.00"))

        response = self.pay('250.00')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'over_payment')

        response = self.pay('200.00')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(f'/api/bookings/{self.booking.pk}/payments/')
        self.assertEqual(len(response.data), 2)

    def test_invalid_settlement(self):
        payment = self.pay('100.00').data
        self.assertEqual(self.settle(payment['id'], Payment.Status.REFUNDED).status_code,
                         status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.settle(payment['id'], 'PAID').status_code,
                         status.HTTP_400_BAD_REQUEST)

    def test_payment_on_missing_booking(self):
        response = self.client.post('/api/bookings/9999/payments/',
                                    {'amount': '10.00', 'method': Payment.Method.CASH}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_detail_view_shows_new_payment(self):
        self.assertEqual(self.client.get(f'/api/bookings/{self.booking.pk}/').data['payments'], [])
        self.pay('50.00')
        payments = self.client.get(f'/api/bookings/{self.booking.pk}/').data['payments']
        self.assertEqual(len(payments), 1)


class ServiceApiTestCase(BookingFixturesMixin, APITestCase):

    def test_attach_and_remove_service(self):
        booking = self.make_booking(1, 3)
        spa = Service.objects.create(name="Massage", price=Decimal("80.00"), category=Service.Category.SPA)

        response = self.client.post(f'/api/bookings/{booking.pk}/services/',
                                    {'service_id': spa.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['booking'], booking.pk)

        response = self.client.delete(f"/api/bookings/{booking.pk}/services/{response.data['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(booking.services.exists())
        self.assertTrue(Service.objects.filter(pk=spa.pk).exists())

    def test_removing_service_invalidates_booking_detail(self):
        booking = self.make_booking(1, 3)
        spa = Service.objects.create(name="Massage", price=Decimal("80.00"))
        line_item = add_service_to_booking(booking.pk, spa.pk)
        self.assertEqual(len(self.client.get(f'/api/bookings/{booking.pk}/').data['services']), 1)

        self.client.delete(f'/api/bookings/{booking.pk}/services/{line_item.pk}/')
        self.assertEqual(self.client.get(f'/api/bookings/{booking.pk}/').data['services'], [])

    def test_catalog_entry_is_not_removed_through_booking(self):
        booking = self.make_booking(1, 3)
        spa = Service.objects.create(name="Massage", price=Decimal("80.00"))
        response = self.client.delete(f'/api/bookings/{booking.pk}/services/{spa.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_catalog_update_and_delete(self):
        booking = self.make_booking(1, 3)
        spa = Service.objects.create(name="Massage", price=Decimal("80.00"), category=Service.Category.SPA)
        line_item = add_service_to_booking(booking.pk, spa.pk)

        response = self.client.patch(f'/api/services/{spa.pk}/', {'price': '95.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['price'], Decimal("95.00"))

        response = self.client.delete(f'/api/services/{spa.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Service.objects.filter(pk=spa.pk).exists())

        line_item.refresh_from_db()
        self.assertEqual(line_item.price, Decimal("80.00"))

    def test_line_item_is_not_editable_through_catalog(self):
        booking = self.make_booking(1, 3)
        spa = Service.objects.create(name="Massage", price=Decimal("80.00"))
        line_item = add_service_to_booking(booking.pk, spa.pk)
        response = self.client.delete(f'/api/services/{line_item.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Service.objects.filter(pk=line_item.pk).exists())

    def test_catalog_lists_only_unattached_services(self):
        booking = self.make_booking(1, 3)
        spa = Service.objects.create(name="Massage", price=Decimal("80.00"))
        add_service_to_booking(booking.pk, spa.pk)
        response = self.client.get('/api/services/')
        self.assertEqual([s['id'] for s in response.data], [spa.pk])


class HealthCheckTestCase(TestCase):

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.json(), {'status': 'ok'})
