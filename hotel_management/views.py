from django.http import JsonResponse
from rest_framework import mixins, viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response

from . import bookings, payments as ledger
from .availability import find_available_rooms
from .cache import (
    admin_booking_detail_key,
    admin_booking_list_key,
    get_cached_view,
    guest_booking_list_key,
    invalidate_booking_views,
)
from .models import Room, Booking, Payment, Service
from .serializers import (
    AvailabilityQuery,
    BalanceSerializer,
    BookingCreateInput,
    BookingDetailSerializer,
    BookingSerializer,
    BookingUpdateInput,
    DateRangeInput,
    PaymentCreateInput,
    PaymentSerializer,
    PaymentSettleInput,
    RoomSerializer,
    ServiceAttachInput,
    ServiceSerializer,
)


def welcome(request):
    return JsonResponse({"message": "Welcome to the Hotel Management System"})


def health_check(request):
    return JsonResponse({"status": "ok"})


def _invalidate(booking):
    invalidate_booking_views(booking.pk, booking.guest_id)


def _invalidate_all(pairs):
    for booking_id, guest_id in pairs:
        invalidate_booking_views(booking_id, guest_id)


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.all()
    serializer_class = RoomSerializer
    lookup_value_regex = r'\d+'

    def list(self, request):
        """Search available rooms, or list every room when no dates are given"""
        if 'check_in' in request.query_params or 'check_out' in request.query_params:
            query = AvailabilityQuery(data=request.query_params)
            query.is_valid(raise_exception=True)
            rooms = find_available_rooms(
                query.validated_data['check_in'],
                query.validated_data['check_out'],
                query.validated_data.get('min_capacity'),
            )
        else:
            rooms = Room.objects.all()

        serializer = self.get_serializer(rooms, many=True)
        return Response(serializer.data)

    def destroy(self, request, pk=None, **kwargs):
        """Delete a room unless it still has pending, confirmed or checked-in bookings"""
        removed = bookings.delete_room(pk)
        _invalidate_all(removed)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def perform_update(self, serializer):
        room = serializer.save()
        # bookings embed the room
        _invalidate_all(bookings.room_bookings(room.pk))

    @action(detail=True, methods=['get'])
    def conflicts(self, request, pk=None):
        """Bookings blocking this room over a date range"""
        query = DateRangeInput(data=request.query_params)
        query.is_valid(raise_exception=True)
        room = self.get_object()
        blocking = bookings.room_conflicts(
            room.pk, query.validated_data['check_in'], query.validated_data['check_out']
        )
        return Response(BookingSerializer(blocking, many=True).data)


class BookingViewSet(mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    queryset = Booking.objects.all()
    serializer_class = BookingSerializer
    lookup_value_regex = r'\d+'

    def list(self, request):
        """Admin booking list"""
        data = get_cached_view(
            admin_booking_list_key(),
            lambda: BookingSerializer(bookings.list_bookings(), many=True).data,
        )
        return Response(data)

    def retrieve(self, request, pk=None):
        """Admin single-booking view with payments and services"""
        data = get_cached_view(
            admin_booking_detail_key(pk),
            lambda: BookingDetailSerializer(bookings.get_booking(pk)).data,
        )
        return Response(data)

    @action(detail=False, methods=['get'])
    def by_guest(self, request):
        """Get a guest's own bookings"""
        guest_id = request.query_params.get('guest_id')
        if not guest_id or not guest_id.isdigit():
            return Response({'error': 'guest_id parameter is required'},
                            status=status.HTTP_400_BAD_REQUEST)

        data = get_cached_view(
            guest_booking_list_key(guest_id),
            lambda: BookingSerializer(bookings.list_guest_bookings(guest_id), many=True).data,
        )
        return Response(data)

    def create(self, request):
        payload = BookingCreateInput(data=request.data)
        payload.is_valid(raise_exception=True)
        booking = bookings.create_booking(**payload.validated_data)
        _invalidate(booking)
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        """Replace room, dates, guest count, status and price of a booking"""
        payload = BookingUpdateInput(data=request.data)
        if not payload.is_valid():
            return Response({'error': 'Missing or invalid fields', 'fields': payload.errors},
                            status=status.HTTP_400_BAD_REQUEST)

        booking = bookings.update_booking(pk, **payload.validated_data)
        _invalidate(booking)
        return Response(BookingSerializer(booking).data)

    def _change_status(self, operation, pk):
        booking = operation(pk)
        _invalidate(booking)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        return self._change_status(bookings.confirm_booking, pk)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        return self._change_status(bookings.cancel_booking, pk)

    @action(detail=True, methods=['post'])
    def check_in(self, request, pk=None):
        return self._change_status(bookings.check_in_booking, pk)

    @action(detail=True, methods=['post'])
    def check_out(self, request, pk=None):
        return self._change_status(bookings.check_out_booking, pk)

    @action(detail=True, methods=['get', 'post'], url_path='payments')
    def payments(self, request, pk=None):
        """List a booking's payments or record a new one"""
        booking = bookings.get_booking(pk)
        if request.method == 'GET':
            return Response(PaymentSerializer(booking.payments.all(), many=True).data)

        payload = PaymentCreateInput(data=request.data)
        payload.is_valid(raise_exception=True)
        payment = ledger.add_payment(booking.pk, **payload.validated_data)
        _invalidate(booking)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def balance(self, request, pk=None):
        balance = ledger.booking_balance(pk)
        return Response(BalanceSerializer(balance).data)

    @action(detail=True, methods=['post'])
    def services(self, request, pk=None):
        """Add a catalog service to the booking"""
        payload = ServiceAttachInput(data=request.data)
        payload.is_valid(raise_exception=True)
        line_item = bookings.add_service_to_booking(pk, payload.validated_data['service_id'])
        _invalidate(line_item.booking)
        return Response(ServiceSerializer(line_item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['delete'], url_path=r'services/(?P<service_id>\d+)')
    def remove_service(self, request, pk=None, service_id=None):
        """Remove a service line-item from the booking"""
        line_item = bookings.remove_service_from_booking(pk, service_id)
        _invalidate(line_item.booking)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PaymentViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = Payment.objects.all()
    serializer_class = PaymentSerializer
    lookup_value_regex = r'\d+'

    @action(detail=True, methods=['post'])
    def settle(self, request, pk=None):
        """Move a payment to COMPLETED, FAILED or REFUNDED"""
        payload = PaymentSettleInput(data=request.data)
        payload.is_valid(raise_exception=True)
        payment = ledger.settle_payment(pk, payload.validated_data['status'])
        _invalidate(payment.booking)
        return Response(PaymentSerializer(payment).data)


class ServiceViewSet(viewsets.ModelViewSet):
    """Service catalog.

    Line-items attached to bookings are copies, so they are not reachable
    here and editing or deleting a catalog entry leaves them untouched.
    """
    queryset = Service.objects.filter(booking__isnull=True)
    serializer_class = ServiceSerializer
    lookup_value_regex = r'\d+'
