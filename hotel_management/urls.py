from rest_framework.routers import DefaultRouter
from hotel_management.views import RoomViewSet, BookingViewSet, PaymentViewSet, ServiceViewSet

router = DefaultRouter()
router.register(r'rooms', RoomViewSet)
router.register(r'bookings', BookingViewSet)
router.register(r'payments', PaymentViewSet)
router.register(r'services', ServiceViewSet)

urlpatterns = router.urls
