"""FastAPI routers package."""

from .booking import router as booking_router
from .departure import router as departure_router
from .emergency import router as emergency_router
from .health import router as health_router
from .itinerary import router as itinerary_router
from .metrics import router as metrics_router
from .notification import router as notification_router
from .realtime import router as realtime_router
from .tour import router as tour_router

__all__ = [
    "booking_router",
    "departure_router",
    "emergency_router",
    "health_router",
    "itinerary_router",
    "metrics_router",
    "notification_router",
    "realtime_router",
    "tour_router",
]
