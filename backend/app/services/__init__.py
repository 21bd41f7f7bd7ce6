# Business Services
from app.services.availability_service import AvailabilityService
from app.services.reservation_service import ReservationService
from app.services.room_service import RoomService
from app.services.guest_service import GuestService
from app.services.billing_service import BillingService
from app.services.daily_close_service import DailyCloseService
from app.services.audit_service import DatabaseAuditSink

__all__ = [
    'AvailabilityService', 'ReservationService', 'RoomService', 'GuestService',
    'BillingService', 'DailyCloseService', 'DatabaseAuditSink'
]
