from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator
from django.db.models import F, Q


class Room(models.Model):
    class Type(models.TextChoices):
        STANDARD = "STANDARD"
        DELUXE = "DELUXE"
        SUITE = "SUITE"
        FAMILY = "FAMILY"
        PRESIDENTIAL = "PRESIDENTIAL"

    class Status(models.TextChoices):
        AVAILABLE = "AVAILABLE"
        OCCUPIED = "OCCUPIED"
        RESERVED = "RESERVED"
        MAINTENANCE = "MAINTENANCE"

    number = models.CharField(max_length=20, unique=True)
    room_type = models.CharField(max_length=20, choices=Type.choices, default=Type.STANDARD)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    capacity = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.AVAILABLE)
    amenities = models.JSONField(default=list, blank=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["number"]

    def __str__(self):
        return f"Room {self.number} ({self.room_type})"


class Guest(models.Model):
    full_name = models.CharField(max_length=150)
    email = models.EmailField()
    phone = models.CharField(max_length=50, blank=True)

    def __str__(self):
        return self.full_name


class Booking(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        CONFIRMED = "CONFIRMED"
        CHECKED_IN = "CHECKED_IN"
        CHECKED_OUT = "CHECKED_OUT"
        CANCELLED = "CANCELLED"

    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="bookings")
    guest = models.ForeignKey(Guest, on_delete=models.CASCADE, related_name="bookings")
    check_in = models.DateField()
    check_out = models.DateField()  # exclusive
    guests = models.PositiveIntegerField(default=1)
    total_price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    status = models.CharField(max_length=12, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-check_in"]
        constraints = [
            models.CheckConstraint(
                condition=Q(check_out__gt=F("check_in")),
                name="booking_check_out_after_check_in",
            ),
        ]

    def __str__(self):
        return f"Booking {self.pk} - room {self.room_id} [{self.check_in} - {self.check_out}) {self.status}"

    @property
    def nights(self):
        return (self.check_out - self.check_in).days


class Payment(models.Model):
    class Method(models.TextChoices):
        CASH = "CASH"
        CREDIT_CARD = "CREDIT_CARD"
        DEBIT_CARD = "DEBIT_CARD"
        BANK_TRANSFER = "BANK_TRANSFER"
        ONLINE = "ONLINE"

    class Status(models.TextChoices):
        PENDING = "PENDING"
        COMPLETED = "COMPLETED"
        FAILED = "FAILED"
        REFUNDED = "REFUNDED"

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    method = models.CharField(max_length=20, choices=Method.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "pk"]

    def __str__(self):
        return f"Payment {self.pk} for booking {self.booking_id} - {self.amount} {self.status}"


class Service(models.Model):
    """Hotel service.

    Rows without a booking form the catalog; adding a service to a booking
    stores a copy of the catalog row linked to that booking.
    """

    class Category(models.TextChoices):
        ROOM_SERVICE = "ROOM_SERVICE"
        SPA = "SPA"
        DINING = "DINING"
        LAUNDRY = "LAUNDRY"
        TRANSPORT = "TRANSPORT"
        OTHER = "OTHER"

    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.OTHER)
    booking = models.ForeignKey(
        Booking, on_delete=models.CASCADE, related_name="services", null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    @property
    def is_line_item(self):
        return self.booking_id is not None
