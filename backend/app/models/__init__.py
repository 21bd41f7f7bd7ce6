# Ontology Models
from app.models.ontology import (
    Hotel, User, RoomType, Room, Guest, Reservation,
    Payment, Charge, DailyClose, AuditLog
)

__all__ = [
    'Hotel', 'User', 'RoomType', 'Room', 'Guest', 'Reservation',
    'Payment', 'Charge', 'DailyClose', 'AuditLog'
]
