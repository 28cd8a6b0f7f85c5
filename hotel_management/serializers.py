from decimal import Decimal

from rest_framework import serializers

from .models import Booking, Room, Guest, Payment, Service


class RoomSerializer(serializers.ModelSerializer):

    class Meta:
        model = Room
        fields = '__all__'


class GuestSerializer(serializers.ModelSerializer):

    class Meta:
        model = Guest
        fields = '__all__'


class ServiceSerializer(serializers.ModelSerializer):

    class Meta:
        model = Service
        fields = '__all__'
        read_only_fields = ['booking', 'created_at']


class PaymentSerializer(serializers.ModelSerializer):

    class Meta:
        model = Payment
        fields = '__all__'
        read_only_fields = ['booking', 'status', 'created_at']


class BookingSerializer(serializers.ModelSerializer):
    room = RoomSerializer(read_only=True)
    guest = GuestSerializer(read_only=True)
    nights = serializers.IntegerField(read_only=True)

    class Meta:
        model = Booking
        fields = ['id', 'room', 'guest', 'check_in', 'check_out', 'nights',
                  'guests', 'total_price', 'status', 'created_at']


class BookingDetailSerializer(BookingSerializer):
    payments = PaymentSerializer(many=True, read_only=True)
    services = ServiceSerializer(many=True, read_only=True)

    class Meta(BookingSerializer.Meta):
        fields = BookingSerializer.Meta.fields + ['payments', 'services']


class DateRangeInput(serializers.Serializer):
    check_in = serializers.DateField()
    check_out = serializers.DateField()

    def validate(self, data):
        if data['check_out'] <= data['check_in']:
            raise serializers.ValidationError("check_out must be after check_in")
        return data


class AvailabilityQuery(DateRangeInput):
    min_capacity = serializers.IntegerField(min_value=1, required=False)


class BookingCreateInput(DateRangeInput):
    guest_id = serializers.IntegerField()
    room_id = serializers.IntegerField()
    guests = serializers.IntegerField(min_value=1)
    total_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))


class BookingUpdateInput(BookingCreateInput):
    """Full replacement payload for PATCH; every field is required."""
    guest_id = None
    status = serializers.ChoiceField(choices=Booking.Status.choices)


class PaymentCreateInput(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    method = serializers.ChoiceField(choices=Payment.Method.choices)


class PaymentSettleInput(serializers.Serializer):
    status = serializers.ChoiceField(choices=Payment.Status.choices)


class ServiceAttachInput(serializers.Serializer):
    service_id = serializers.IntegerField()


class BalanceSerializer(serializers.Serializer):
    total_price = serializers.DecimalField(max_digits=10, decimal_places=2)
    total_paid = serializers.DecimalField(max_digits=10, decimal_places=2)
    total_refunded = serializers.DecimalField(max_digits=10, decimal_places=2)
    remaining = serializers.DecimalField(max_digits=10, decimal_places=2)
