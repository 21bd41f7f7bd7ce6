"""
RoomService 测试
房态同步、人工房态修改保护、房型/房间管理
"""
import pytest
from decimal import Decimal

from app.models.ontology import Reservation, ReservationStatus, Room, RoomStatus
from app.services.room_service import (
    RoomService, apply_room_status_for_transition, room_status_for
)
from core.engine.audit import AuditAction
from core.result import ErrorKind


@pytest.fixture
def room_service(db_session, audit_engine):
    return RoomService(db_session, audit_sink=audit_engine)


class TestRoomStatusFor:
    """生命周期 -> 房态"""

    def test_mapping(self):
        assert room_status_for(ReservationStatus.CHECKED_IN) == RoomStatus.OCCUPIED
        assert room_status_for(ReservationStatus.CHECKED_OUT) == RoomStatus.AVAILABLE
        assert room_status_for(ReservationStatus.CONFIRMED) is None
        assert room_status_for(ReservationStatus.CANCELLED) is None
        assert room_status_for("checked_in") == RoomStatus.OCCUPIED

    def test_checkout_never_clears_maintenance(self):
        room = Room(room_number="101", status=RoomStatus.MAINTENANCE)
        assert apply_room_status_for_transition(room, ReservationStatus.CHECKED_OUT) is None
        assert room.status == RoomStatus.MAINTENANCE

    def test_checkout_frees_occupied_room(self):
        room = Room(room_number="101", status=RoomStatus.OCCUPIED)
        assert apply_room_status_for_transition(room, ReservationStatus.CHECKED_OUT) == RoomStatus.AVAILABLE
        assert room.status == RoomStatus.AVAILABLE

    def test_non_room_transition_is_noop(self):
        room = Room(room_number="101", status=RoomStatus.AVAILABLE)
        assert apply_room_status_for_transition(room, ReservationStatus.CANCELLED) is None
        assert room.status == RoomStatus.AVAILABLE


class TestRoomTypes:
    """房型管理"""

    def test_create_room_type(self, room_service, ctx, audit_engine):
        result = room_service.create_room_type(ctx, {"name": "家庭房", "base_price": "150.005", "capacity": 4})
        assert result.ok
        assert result.value.base_price == Decimal("150.01")
        assert audit_engine.get_by_action(AuditAction.ROOM_TYPE_CREATED)

    def test_duplicate_name(self, room_service, ctx, sample_room_type):
        result = room_service.create_room_type(ctx, {"name": sample_room_type.name, "base_price": 90})
        assert result.kind == ErrorKind.VALIDATION
        assert result.error.details["errors"][0]["field"] == "name"

    def test_same_name_in_other_tenant_is_fine(self, room_service, other_ctx, sample_room_type):
        result = room_service.create_room_type(other_ctx, {"name": sample_room_type.name, "base_price": 90})
        assert result.ok

    def test_price_change_does_not_touch_reservations(self, room_service, ctx, db_session,
                                                       sample_room_type, confirmed_reservation):
        result = room_service.update_room_type(ctx, sample_room_type.id, {"base_price": 500})
        assert result.ok
        db_session.refresh(confirmed_reservation)
        assert confirmed_reservation.total_price == Decimal("200.00")

    def test_negative_price_rejected(self, room_service, ctx):
        result = room_service.create_room_type(ctx, {"name": "特价房", "base_price": -1})
        assert result.kind == ErrorKind.VALIDATION


class TestRooms:
    """房间管理"""

    def test_create_room(self, room_service, ctx, sample_room_type):
        result = room_service.create_room(ctx, {"room_number": "201", "floor": 2, "room_type_id": sample_room_type.id})
        assert result.ok
        assert result.value.status == RoomStatus.AVAILABLE
        assert result.value.hotel_id == ctx.hotel_id

    def test_duplicate_room_number(self, room_service, ctx, sample_room):
        result = room_service.create_room(ctx, {"room_number": "101", "room_type_id": sample_room.room_type_id})
        assert result.kind == ErrorKind.VALIDATION

    def test_room_type_of_other_tenant(self, room_service, ctx, other_room):
        result = room_service.create_room(ctx, {"room_number": "501", "room_type_id": other_room.room_type_id})
        assert result.kind == ErrorKind.NOT_FOUND

    def test_update_room(self, room_service, ctx, sample_room, sample_room_type_luxury):
        result = room_service.update_room(ctx, sample_room.id, {
            "room_number": "101A", "room_type_id": sample_room_type_luxury.id,
        })
        assert result.ok
        assert result.value.room_number == "101A"
        assert result.value.room_type_id == sample_room_type_luxury.id

    def test_list_rooms_by_status(self, room_service, ctx, db_session, sample_room, sample_room_102):
        sample_room_102.status = RoomStatus.MAINTENANCE
        db_session.commit()
        result = room_service.list_rooms(ctx, status="MAINTENANCE")
        assert [r.room_number for r in result.value] == ["102"]


class TestSetRoomStatus:
    """人工房态修改"""

    def test_set_maintenance(self, room_service, ctx, sample_room, audit_engine):
        result = room_service.set_room_status(ctx, sample_room.id, "maintenance")
        assert result.ok
        assert result.value.status == RoomStatus.MAINTENANCE
        entry = audit_engine.get_by_action(AuditAction.ROOM_STATUS_CHANGED)[0]
        assert entry.details == {"previous": "available", "status": "maintenance"}

    @pytest.mark.parametrize("target", ["maintenance", "available"])
    def test_blocked_by_checked_in_reservation(self, room_service, ctx, db_session, sample_room,
                                               make_reservation, target):
        reservation = make_reservation(sample_room, status=ReservationStatus.CHECKED_IN)
        sample_room.status = RoomStatus.OCCUPIED
        db_session.commit()

        result = room_service.set_room_status(ctx, sample_room.id, target)
        assert result.kind == ErrorKind.OCCUPIED_ROOM
        assert result.error.details["active_reservation_ids"] == [reservation.id]
        db_session.refresh(sample_room)
        assert sample_room.status == RoomStatus.OCCUPIED

    def test_invalid_status(self, room_service, ctx, sample_room):
        result = room_service.set_room_status(ctx, sample_room.id, "dirty")
        assert result.kind == ErrorKind.VALIDATION


class TestDeleteRoom:
    """删除房间"""

    def test_delete_unused_room(self, room_service, ctx, db_session, sample_room):
        room_id = sample_room.id
        result = room_service.delete_room(ctx, room_id)
        assert result.ok
        assert db_session.query(Room).filter(Room.id == room_id).first() is None

    def test_occupied_room_cannot_be_deleted(self, room_service, ctx, db_session, sample_room):
        sample_room.status = RoomStatus.OCCUPIED
        db_session.commit()
        result = room_service.delete_room(ctx, sample_room.id)
        assert result.kind == ErrorKind.OCCUPIED_ROOM

    def test_room_with_history_cannot_be_deleted(self, room_service, ctx, db_session, sample_room,
                                                 make_reservation):
        make_reservation(sample_room, status=ReservationStatus.CANCELLED)
        result = room_service.delete_room(ctx, sample_room.id)
        assert result.kind == ErrorKind.ROOM_HAS_RESERVATIONS
        assert db_session.query(Reservation).count() == 1

    def test_other_tenant_room(self, room_service, ctx, other_room):
        result = room_service.delete_room(ctx, other_room.id)
        assert result.kind == ErrorKind.NOT_FOUND
