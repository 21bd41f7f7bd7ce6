"""
房间服务 - 本体操作层
管理 RoomType / Room 对象，并负责房态与预订生命周期的同步
人工设置的维修状态优先于任何自动的"空闲"更新
"""
import logging
from typing import List, Optional

from app.database import transaction
from app.models.ontology import (
    Reservation, ReservationStatus, Room, RoomStatus, RoomType
)
from app.models.schemas import (
    RoomCreate, RoomStatusUpdate, RoomTypeCreate, RoomTypeUpdate, RoomUpdate,
    parse_payload,
)
from app.services.base import TenantScopedService, not_found
from core.engine.audit import AuditAction
from core.result import DomainFailure, ErrorKind, service_operation, validation_failure
from core.security.context import TenantContext

logger = logging.getLogger(__name__)

# 生命周期转换 -> 房态
_ROOM_STATUS_BY_RESERVATION_STATUS = {
    ReservationStatus.CHECKED_IN: RoomStatus.OCCUPIED,
    ReservationStatus.CHECKED_OUT: RoomStatus.AVAILABLE,
}


def room_status_for(next_status: ReservationStatus) -> Optional[RoomStatus]:
    """checked_in -> occupied，checked_out -> available，其他转换不改房态"""
    return _ROOM_STATUS_BY_RESERVATION_STATUS.get(ReservationStatus(next_status))


def apply_room_status_for_transition(room: Room, next_status: ReservationStatus) -> Optional[RoomStatus]:
    """
    把生命周期转换的房态副作用应用到房间上
    维修中的房间不会被退房自动改回 available
    返回实际写入的房态，未改动时返回 None
    """
    target = room_status_for(next_status)
    if target is None:
        return None
    if target == RoomStatus.AVAILABLE and room.status == RoomStatus.MAINTENANCE:
        logger.info(f"Room {room.room_number} stays in maintenance after checkout")
        return None
    room.status = target
    return target


class RoomService(TenantScopedService):
    """房间服务"""

    # ============== 房型 ==============

    @service_operation
    def create_room_type(self, ctx: TenantContext, payload) -> RoomType:
        data = parse_payload(RoomTypeCreate, payload)
        repo = self._repo(ctx)
        with transaction(self.db):
            if repo.get_room_type_by_name(data.name):
                raise validation_failure(
                    [{"field": "name", "message": f"Room type '{data.name}' already exists"}]
                )
            room_type = RoomType(
                hotel_id=ctx.hotel_id,
                name=data.name,
                base_price=self.clock.quantize(data.base_price),
                capacity=data.capacity,
            )
            self.db.add(room_type)
        self.db.refresh(room_type)

        logger.info(f"Room type {room_type.name} created for hotel {ctx.hotel_id}")
        self._audit(ctx, AuditAction.ROOM_TYPE_CREATED, "RoomType", room_type.id,
                    name=room_type.name, base_price=str(room_type.base_price))
        return room_type

    @service_operation
    def update_room_type(self, ctx: TenantContext, room_type_id: int, payload) -> RoomType:
        """价格变动不影响已有预订的 total_price"""
        data = parse_payload(RoomTypeUpdate, payload)
        repo = self._repo(ctx)
        with transaction(self.db):
            room_type = repo.get_room_type(room_type_id)
            if not room_type:
                raise not_found("RoomType", room_type_id)

            if data.name is not None and data.name != room_type.name:
                if repo.get_room_type_by_name(data.name):
                    raise validation_failure(
                        [{"field": "name", "message": f"Room type '{data.name}' already exists"}]
                    )
                room_type.name = data.name
            if data.base_price is not None:
                room_type.base_price = self.clock.quantize(data.base_price)
            if data.capacity is not None:
                room_type.capacity = data.capacity
        self.db.refresh(room_type)

        self._audit(ctx, AuditAction.ROOM_TYPE_UPDATED, "RoomType", room_type.id,
                    changes=data.model_dump(mode="json", exclude_unset=True))
        return room_type

    @service_operation
    def list_room_types(self, ctx: TenantContext) -> List[RoomType]:
        return self._repo(ctx).list_room_types()

    # ============== 房间 ==============

    @service_operation
    def create_room(self, ctx: TenantContext, payload) -> Room:
        data = parse_payload(RoomCreate, payload)
        repo = self._repo(ctx)
        with transaction(self.db):
            if not repo.get_room_type(data.room_type_id):
                raise not_found("RoomType", data.room_type_id)
            if repo.get_room_by_number(data.room_number):
                raise validation_failure(
                    [{"field": "room_number", "message": f"Room {data.room_number} already exists"}]
                )
            room = Room(
                hotel_id=ctx.hotel_id,
                room_type_id=data.room_type_id,
                room_number=data.room_number,
                floor=data.floor,
                description=data.description,
                status=data.status,
            )
            self.db.add(room)
        self.db.refresh(room)

        logger.info(f"Room {room.room_number} created for hotel {ctx.hotel_id}")
        self._audit(ctx, AuditAction.ROOM_CREATED, "Room", room.id,
                    room_number=room.room_number, room_type_id=room.room_type_id)
        return room

    @service_operation
    def update_room(self, ctx: TenantContext, room_id: int, payload) -> Room:
        data = parse_payload(RoomUpdate, payload)
        repo = self._repo(ctx)
        with transaction(self.db):
            room = repo.get_room(room_id, lock=True)
            if not room:
                raise not_found("Room", room_id)

            if data.room_number is not None and data.room_number != room.room_number:
                if repo.get_room_by_number(data.room_number):
                    raise validation_failure(
                        [{"field": "room_number", "message": f"Room {data.room_number} already exists"}]
                    )
                room.room_number = data.room_number
            if data.room_type_id is not None:
                if not repo.get_room_type(data.room_type_id):
                    raise not_found("RoomType", data.room_type_id)
                room.room_type_id = data.room_type_id
            if data.floor is not None:
                room.floor = data.floor
            if "description" in data.model_fields_set:
                room.description = data.description
        self.db.refresh(room)

        self._audit(ctx, AuditAction.ROOM_UPDATED, "Room", room.id,
                    changes=data.model_dump(mode="json", exclude_unset=True))
        return room

    @service_operation
    def set_room_status(self, ctx: TenantContext, room_id: int, status) -> Room:
        """
        人工修改房态
        房间有 checked_in 预订时不能改为 maintenance 或 available
        """
        if not isinstance(status, (dict, RoomStatusUpdate)):
            status = {"status": status}
        data = parse_payload(RoomStatusUpdate, status)
        repo = self._repo(ctx)
        with transaction(self.db):
            room = repo.get_room(room_id, lock=True)
            if not room:
                raise not_found("Room", room_id)

            previous = room.status
            if data.status in (RoomStatus.MAINTENANCE, RoomStatus.AVAILABLE):
                active = repo.checked_in_reservations_for_room(room.id)
                if active:
                    raise _occupied(room, active, data.status)
            room.status = data.status
        self.db.refresh(room)

        logger.info(f"Room {room.room_number} status {previous.value} -> {room.status.value}")
        self._audit(ctx, AuditAction.ROOM_STATUS_CHANGED, "Room", room.id,
                    previous=previous.value, status=room.status.value)
        return room

    @service_operation
    def delete_room(self, ctx: TenantContext, room_id: int) -> int:
        """
        删除房间
        入住中的房间不能删除；仍被预订引用的房间也不能删除（保留账务历史）
        """
        repo = self._repo(ctx)
        with transaction(self.db):
            room = repo.get_room(room_id, lock=True)
            if not room:
                raise not_found("Room", room_id)

            active = repo.checked_in_reservations_for_room(room.id)
            if room.status == RoomStatus.OCCUPIED or active:
                raise _occupied(room, active)

            referenced = repo.count_reservations_for_room(room.id)
            if referenced:
                raise DomainFailure(
                    ErrorKind.ROOM_HAS_RESERVATIONS,
                    "Room still has reservations",
                    room_id=room.id,
                    reservation_count=referenced,
                )
            room_number = room.room_number
            self.db.delete(room)

        logger.info(f"Room {room_number} deleted from hotel {ctx.hotel_id}")
        self._audit(ctx, AuditAction.ROOM_DELETED, "Room", room_id, room_number=room_number)
        return room_id

    @service_operation
    def get_room(self, ctx: TenantContext, room_id: int) -> Room:
        room = self._repo(ctx).get_room(room_id)
        if not room:
            raise not_found("Room", room_id)
        return room

    @service_operation
    def list_rooms(
        self,
        ctx: TenantContext,
        room_type_id: Optional[int] = None,
        status: Optional[RoomStatus] = None,
    ) -> List[Room]:
        if status is not None:
            status = parse_payload(RoomStatusUpdate, {"status": status}).status
        return self._repo(ctx).list_rooms(room_type_id=room_type_id, status=status)


def _occupied(
    room: Room,
    active: List[Reservation],
    attempted: Optional[RoomStatus] = None,
) -> DomainFailure:
    return DomainFailure(
        ErrorKind.OCCUPIED_ROOM,
        f"Room {room.room_number} is occupied",
        room_id=room.id,
        status=room.status.value,
        attempted=attempted.value if attempted else None,
        active_reservation_ids=[r.id for r in active],
    )
