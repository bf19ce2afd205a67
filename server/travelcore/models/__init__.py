"""Models module exporting all database models."""

from .booking import LIVE_BOOKING_STATUSES, Booking, BookingStatus
from .departure import TourDeparture
from .emergency import AlertSeverity, EmergencyAlert
from .itinerary import ItineraryItem
from .notification import Notification, NotificationType
from .tour import Tour, TourStatus
from .user import User, UserRole

__all__ = [
    # Accounts
    "User",
    "UserRole",

    # Catalog
    "Tour",
    "TourStatus",
    "TourDeparture",

    # Bookings
    "Booking",
    "BookingStatus",
    "LIVE_BOOKING_STATUSES",

    # Tour operations
    "ItineraryItem",
    "EmergencyAlert",
    "AlertSeverity",

    # Inbox
    "Notification",
    "NotificationType",
]
