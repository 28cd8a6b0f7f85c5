from decimal import Decimal

from django.core.management.base import BaseCommand
from hotel_management.models import Guest, Room, Service


class Command(BaseCommand):
    help = 'Populate database with sample hotel data'

    def handle(self, *args, **options):
        # Create rooms
        rooms_data = [
            {
                'number': '101',
                'room_type': Room.Type.STANDARD,
                'price': Decimal('100.00'),
                'capacity': 2,
                'amenities': ['wifi', 'air_conditioning'],
                'description': 'Comfortable standard room with city view'
            },
            {
                'number': '102',
                'room_type': Room.Type.STANDARD,
                'price': Decimal('110.00'),
                'capacity': 2,
                'amenities': ['wifi', 'air_conditioning', 'balcony'],
                'description': 'Standard room with balcony'
            },
            {
                'number': '201',
                'room_type': Room.Type.DELUXE,
                'price': Decimal('160.00'),
                'capacity': 3,
                'amenities': ['wifi', 'tv', 'minibar'],
                'description': 'Spacious deluxe room with ocean view'
            },
            {
                'number': '301',
                'room_type': Room.Type.FAMILY,
                'price': Decimal('220.00'),
                'capacity': 5,
                'amenities': ['wifi', 'tv', 'kitchenette'],
                'description': 'Large family room for groups'
            },
            {
                'number': '401',
                'room_type': Room.Type.SUITE,
                'price': Decimal('350.00'),
                'capacity': 4,
                'amenities': ['wifi', 'tv', 'minibar', 'jacuzzi'],
                'description': 'Suite with separate living area'
            },
            {
                'number': '501',
                'room_type': Room.Type.PRESIDENTIAL,
                'price': Decimal('600.00'),
                'capacity': 6,
                'amenities': ['wifi', 'tv', 'minibar', 'jacuzzi', 'butler'],
                'description': 'Top floor presidential suite with panoramic views'
            },
        ]

        for room_data in rooms_data:
            room, created = Room.objects.get_or_create(
                number=room_data['number'],
                defaults=room_data
            )

            if created:
                self.stdout.write(f'Created room: {room.number} - {room.room_type}')
            else:
                self.stdout.write(f'Room {room.number} already exists')

        services_data = [
            {'name': 'Breakfast in room', 'category': Service.Category.ROOM_SERVICE, 'price': Decimal('25.00')},
            {'name': 'Massage (60 min)', 'category': Service.Category.SPA, 'price': Decimal('80.00')},
            {'name': 'Airport transfer', 'category': Service.Category.TRANSPORT, 'price': Decimal('40.00')},
            {'name': 'Laundry bag', 'category': Service.Category.LAUNDRY, 'price': Decimal('15.00')},
        ]

        for service_data in services_data:
            _, created = Service.objects.get_or_create(
                name=service_data['name'],
                booking=None,
                defaults=service_data
            )
            if created:
                self.stdout.write(f"Created service: {service_data['name']}")

        Guest.objects.get_or_create(
            email='guest@example.com',
            defaults={'full_name': 'Sample Guest', 'phone': '+1 555 0100'}
        )

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
