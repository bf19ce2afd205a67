"""Service layer package."""

from .booking_service import BookingService
from .capacity_ledger import BookingFields, CapacityLedger
from .departure_service import DepartureService
from .email_service import EmailDispatcher, OutboundEmail, SmtpEmailTransport
from .emergency_service import EmergencyService
from .itinerary_service import ItineraryService
from .notification_service import FanOutEvent, FanOutResult, NotificationService
from .tour_service import TourService
from .traveller_resolver import ActiveTraveller, ResolveScope, TravellerResolver

__all__ = [
    "ActiveTraveller",
    "BookingFields",
    "BookingService",
    "CapacityLedger",
    "DepartureService",
    "EmailDispatcher",
    "EmergencyService",
    "FanOutEvent",
    "FanOutResult",
    "ItineraryService",
    "NotificationService",
    "OutboundEmail",
    "ResolveScope",
    "SmtpEmailTransport",
    "TourService",
    "TravellerResolver",
]
