"""Caching for booking views.

Three views are cached: the admin booking list, the admin single-booking view
and each guest's own booking list. Every successful booking or payment
mutation must call :func:`invalidate_booking_views`.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


def _is_cache_enabled() -> bool:
    return getattr(settings, "BOOKING_CACHE_ENABLED", False)


def _prefix() -> str:
    return getattr(settings, "BOOKING_CACHE_PREFIX", "views:bookings")


def admin_booking_list_key() -> str:
    return f"{_prefix()}:admin:list"


def admin_booking_detail_key(booking_id) -> str:
    return f"{_prefix()}:admin:detail:{booking_id}"


def guest_booking_list_key(guest_id) -> str:
    return f"{_prefix()}:guest:{guest_id}:list"


def get_cached_view(key: str, builder: Callable[[], object]):
    """Return the cached payload for ``key``, building and storing it on a miss."""
    if not _is_cache_enabled():
        return builder()

    cached = cache.get(key)
    if cached is not None:
        return cached

    result = builder()
    timeout = getattr(settings, "BOOKING_CACHE_TIMEOUT", 300)
    cache.set(key, result, timeout)
    return result


def invalidate_booking_views(booking_id, guest_id: Optional[int] = None) -> None:
    """Drop the admin list, the booking's detail view and the guest's list."""
    keys = [admin_booking_list_key(), admin_booking_detail_key(booking_id)]
    if guest_id is not None:
        keys.append(guest_booking_list_key(guest_id))
    cache.delete_many(keys)
    logger.debug("Invalidated booking views %s", keys)


__all__ = [
    "admin_booking_detail_key",
    "admin_booking_list_key",
    "get_cached_view",
    "guest_booking_list_key",
    "invalidate_booking_views",
]
