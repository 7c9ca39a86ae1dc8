"""
PrintHub Services

Business logic layer for:
- Pricing and quotes
- Print job lifecycle and the shop queue
- Time slots and bookings
- Shop listings, settings and profile sync
- Object storage and the 24-hour file retention sweep
- Realtime change events
- Analytics and route resolution
"""

__all__ = [
    "realtime_service",
    "storage_service",
    "pricing_service",
    "expiry_service",
    "job_service",
    "slot_service",
    "booking_service",
    "shop_service",
    "profile_service",
    "analytics_service",
    "navigation",
]
