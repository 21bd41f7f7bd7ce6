"""
预订服务 - 本体操作层
管理 Reservation 对象（预订与账务的聚合根）

业务规则：
1. 同一房间的非取消预订在 [check_in, check_out) 上互不重叠
2. 创建/编辑/换房统一顺序：锁房间行 -> 可用性复查 -> 写入，同一事务内完成
3. 状态只能按 RESERVATION_TRANSITIONS 变更，入住/退房联动房态
4. 退房前 due_amount 必须为 0
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from app.database import transaction
from app.models.ontology import (
    EDITABLE_RESERVATION_STATUSES, Reservation, ReservationStatus, Room,
    RoomStatus, money,
)
from app.models.schemas import (
    ReservationCreate, ReservationDetail, ReservationMove, ReservationResponse,
    ReservationStatusUpdate, ReservationUpdate, parse_moment, parse_payload,
)
from app.repositories.tenant_repository import TenantRepository
from app.services.availability_service import AvailabilityService, ensure_valid_stay
from app.services.base import TenantScopedService, not_found
from app.services.billing_service import BillingService
from app.services.reporting_clock import nights_between
from app.services.room_service import apply_room_status_for_transition
from core.engine.audit import AuditAction
from core.engine.state_machine import InvalidTransitionError, StateMachine
from core.result import (
    DomainFailure, ErrorKind, service_operation, validation_failure
)
from core.security.context import TenantContext

logger = logging.getLogger(__name__)

# 预订生命周期转换表
RESERVATION_TRANSITIONS = {
    ReservationStatus.PENDING: [ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED],
    ReservationStatus.CONFIRMED: [ReservationStatus.CHECKED_IN, ReservationStatus.CANCELLED],
    ReservationStatus.CHECKED_IN: [ReservationStatus.CHECKED_OUT],
    ReservationStatus.CHECKED_OUT: [],
    ReservationStatus.CANCELLED: [],
}

reservation_state_machine = StateMachine.from_table(
    "Reservation", RESERVATION_TRANSITIONS, initial_state=ReservationStatus.PENDING
)


class ReservationService(TenantScopedService):
    """预订服务"""

    def __init__(self, db, audit_sink=None, settings=None):
        super().__init__(db, audit_sink=audit_sink, settings=settings)
        self.availability = AvailabilityService(db, self._audit_sink, self.settings)
        self.billing = BillingService(db, self._audit_sink, self.settings)

    # ============== 内部校验 ==============

    def _bookable_room(self, repo: TenantRepository, room_id: int) -> Room:
        """锁住房间行并校验：属于本租户、不在维修、房型有价格"""
        room = repo.get_room(room_id, lock=True)
        if not room:
            raise not_found("Room", room_id)
        if room.status == RoomStatus.MAINTENANCE:
            raise DomainFailure(
                ErrorKind.ROOM_IN_MAINTENANCE,
                f"Room {room.room_number} is under maintenance",
                room_id=room.id,
                status=room.status.value,
            )
        if room.room_type is None or room.room_type.base_price is None:
            raise validation_failure(
                [{"field": "room_id", "message": "Room type has no base price"}]
            )
        return room

    def _ensure_available(
        self,
        ctx: TenantContext,
        room: Room,
        check_in: datetime,
        check_out: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> None:
        conflicts = self.availability.find_conflicts(
            ctx, room.id, check_in, check_out, exclude_reservation_id
        )
        if conflicts:
            raise DomainFailure(
                ErrorKind.ROOM_NOT_AVAILABLE,
                f"Room {room.room_number} is not available for the requested dates",
                room_id=room.id,
                check_in=check_in.isoformat(),
                check_out=check_out.isoformat(),
                conflicting_reservation_ids=[r.id for r in conflicts],
            )

    def _price(self, room: Room, check_in: datetime, check_out: datetime) -> Decimal:
        """晚数 × 房型基础价"""
        nights = nights_between(check_in, check_out)
        return self.clock.quantize(nights * money(room.room_type.base_price))

    def _stay(self, check_in, check_out) -> Tuple[datetime, datetime]:
        check_in = self.clock.to_storage(check_in)
        check_out = self.clock.to_storage(check_out)
        ensure_valid_stay(check_in, check_out)
        return check_in, check_out

    def _resolve_links(
        self,
        repo: TenantRepository,
        guest_id: Optional[int],
        user_id: Optional[int],
    ) -> None:
        if guest_id is not None and not repo.get_guest(guest_id):
            raise not_found("Guest", guest_id)
        if user_id is not None and not repo.get_user(user_id):
            raise not_found("User", user_id)

    @staticmethod
    def _ensure_editable(reservation: Reservation) -> None:
        if reservation.status not in EDITABLE_RESERVATION_STATUSES:
            raise DomainFailure(
                ErrorKind.BOOKING_LOCKED,
                f"Reservation is {reservation.status.value} and can no longer be edited",
                reservation_id=reservation.id,
                status=reservation.status.value,
            )

    def _load(self, repo: TenantRepository, reservation_id: int, lock: bool = True) -> Reservation:
        reservation = repo.get_reservation(reservation_id, lock=lock)
        if not reservation:
            raise not_found("Reservation", reservation_id)
        return reservation

    # ============== 创建 / 编辑 ==============

    @service_operation
    def create_reservation(self, ctx: TenantContext, payload) -> Reservation:
        """创建预订，状态为 pending"""
        data = parse_payload(ReservationCreate, payload)
        check_in, check_out = self._stay(data.check_in, data.check_out)
        repo = self._repo(ctx)

        with transaction(self.db):
            room = self._bookable_room(repo, data.room_id)
            self._resolve_links(repo, data.guest_id, data.user_id)
            self._ensure_available(ctx, room, check_in, check_out)

            reservation = Reservation(
                hotel_id=ctx.hotel_id,
                room_id=room.id,
                guest_id=data.guest_id,
                user_id=data.user_id,
                check_in=check_in,
                check_out=check_out,
                total_price=self._price(room, check_in, check_out),
                status=ReservationStatus.PENDING,
            )
            self.db.add(reservation)
        self.db.refresh(reservation)

        logger.info(
            f"Reservation {reservation.id} created: room {reservation.room_id} "
            f"{reservation.check_in} -> {reservation.check_out}, total {reservation.total_price}"
        )
        self._audit(ctx, AuditAction.RESERVATION_CREATED, "Reservation", reservation.id,
                    room_id=reservation.room_id, total_price=str(reservation.total_price))
        return reservation

    @service_operation
    def update_reservation(self, ctx: TenantContext, reservation_id: int, payload) -> Reservation:
        """
        部分更新（房间、日期、客人、经办员工）
        仅 pending / confirmed 可编辑；重新计算 total_price 并排除自身复查可用性
        """
        data = parse_payload(ReservationUpdate, payload)
        fields = data.model_fields_set
        repo = self._repo(ctx)

        with transaction(self.db):
            reservation = self._load(repo, reservation_id)
            self._ensure_editable(reservation)

            room_id = data.room_id if data.room_id is not None else reservation.room_id
            room = self._bookable_room(repo, room_id)

            if data.check_in is not None:
                check_in = self.clock.to_storage(data.check_in)
            else:
                check_in = reservation.check_in
            if data.check_out is not None:
                check_out = self.clock.to_storage(data.check_out)
            else:
                check_out = reservation.check_out
            ensure_valid_stay(check_in, check_out)

            guest_id = data.guest_id if "guest_id" in fields else reservation.guest_id
            user_id = data.user_id if "user_id" in fields else reservation.user_id
            self._resolve_links(repo, guest_id, user_id)

            self._ensure_available(ctx, room, check_in, check_out, exclude_reservation_id=reservation.id)

            before = {"room_id": reservation.room_id, "total_price": str(reservation.total_price)}
            reservation.room_id = room.id
            reservation.check_in = check_in
            reservation.check_out = check_out
            reservation.guest_id = guest_id
            reservation.user_id = user_id
            reservation.total_price = self._price(room, check_in, check_out)
            self.billing.ensure_payments_covered(repo, reservation)
        self.db.refresh(reservation)

        self._audit(ctx, AuditAction.RESERVATION_UPDATED, "Reservation", reservation.id,
                    before=before, changes=data.model_dump(mode="json", exclude_unset=True),
                    total_price=str(reservation.total_price))
        return reservation

    @service_operation
    def move_reservation(self, ctx: TenantContext, reservation_id: int, payload) -> Reservation:
        """换房：按目标房间的房型重新计价"""
        data = parse_payload(ReservationMove, payload)
        repo = self._repo(ctx)

        with transaction(self.db):
            reservation = self._load(repo, reservation_id)
            self._ensure_editable(reservation)
            if data.room_id == reservation.room_id:
                raise validation_failure(
                    [{"field": "room_id", "message": "Reservation is already in this room"}]
                )

            room = self._bookable_room(repo, data.room_id)
            self._ensure_available(
                ctx, room, reservation.check_in, reservation.check_out,
                exclude_reservation_id=reservation.id,
            )

            from_room_id = reservation.room_id
            reservation.room_id = room.id
            reservation.total_price = self._price(room, reservation.check_in, reservation.check_out)
            self.billing.ensure_payments_covered(repo, reservation)
        self.db.refresh(reservation)

        logger.info(f"Reservation {reservation.id} moved from room {from_room_id} to {reservation.room_id}")
        self._audit(ctx, AuditAction.RESERVATION_ROOM_MOVED, "Reservation", reservation.id,
                    from_room_id=from_room_id, to_room_id=reservation.room_id,
                    total_price=str(reservation.total_price))
        return reservation

    # ============== 状态流转 ==============

    @service_operation
    def transition_reservation(self, ctx: TenantContext, reservation_id: int, next_status) -> Reservation:
        """
        状态流转
        - checked_in：首次进入时写 checked_in_at，房间 -> occupied
        - GUEST_REQUIRED_FOR_CHECKIN 开启时，未关联客人的预订不能入住
        - checked_out：due_amount 必须为 0，首次进入时写 checked_out_at，房间 -> available（维修除外）
        """
        if not isinstance(next_status, (dict, ReservationStatusUpdate)):
            next_status = {"status": next_status}
        target = parse_payload(ReservationStatusUpdate, next_status).status
        repo = self._repo(ctx)

        with transaction(self.db):
            reservation = self._load(repo, reservation_id)
            current = reservation.status
            try:
                reservation_state_machine.validate(current, target)
            except InvalidTransitionError as e:
                raise DomainFailure(
                    ErrorKind.INVALID_TRANSITION,
                    str(e),
                    reservation_id=reservation.id,
                    current=e.current,
                    attempted=e.attempted,
                    allowed=e.allowed,
                )

            if (target == ReservationStatus.CHECKED_IN and current != target
                    and reservation.guest_id is None and self.settings.GUEST_REQUIRED_FOR_CHECKIN):
                raise validation_failure(
                    [{"field": "guest_id", "message": "A guest is required to check in"}],
                    message="Guest required for check-in",
                )

            if target == ReservationStatus.CHECKED_OUT:
                balance = self.billing.balance_for(ctx, reservation)
                if balance.due_amount > 0:
                    raise DomainFailure(
                        ErrorKind.OUTSTANDING_BALANCE,
                        "Cannot check out while there is an outstanding balance",
                        reservation_id=reservation.id,
                        due=balance.due_amount,
                        grand_total=balance.grand_total,
                        paid_completed=balance.paid_completed,
                    )

            now = self.clock.now()
            if target == ReservationStatus.CHECKED_IN and reservation.checked_in_at is None:
                reservation.checked_in_at = now
            if target == ReservationStatus.CHECKED_OUT and reservation.checked_out_at is None:
                reservation.checked_out_at = now
            reservation.status = target

            room = repo.get_room(reservation.room_id, lock=True)
            room_status = apply_room_status_for_transition(room, target) if room else None
        self.db.refresh(reservation)

        logger.info(f"Reservation {reservation.id} status {current.value} -> {target.value}")
        self._audit(ctx, AuditAction.RESERVATION_STATUS_CHANGED, "Reservation", reservation.id,
                    previous=current.value, status=target.value,
                    room_status=room_status.value if room_status else None)
        return reservation

    # ============== 查询 ==============

    def _detail(self, ctx: TenantContext, reservation: Reservation) -> ReservationDetail:
        return ReservationDetail(
            **ReservationResponse.model_validate(reservation).model_dump(),
            balance=self.billing.balance_for(ctx, reservation),
        )

    @service_operation
    def get_reservation(self, ctx: TenantContext, reservation_id: int) -> ReservationDetail:
        """预订详情（附带账务汇总）"""
        reservation = self._load(self._repo(ctx), reservation_id, lock=False)
        return self._detail(ctx, reservation)

    @service_operation
    def list_reservations(
        self,
        ctx: TenantContext,
        status: Optional[Any] = None,
        room_id: Optional[int] = None,
        guest_id: Optional[int] = None,
        date_from: Optional[Any] = None,
        date_to: Optional[Any] = None,
    ) -> List[ReservationDetail]:
        """
        预订列表（附带账务汇总）
        date_from / date_to 为纯日期时按报表时区的整天计算
        """
        if status is not None:
            status = parse_payload(ReservationStatusUpdate, {"status": status}).status
        start = self._boundary(date_from, "date_from", end=False)
        end = self._boundary(date_to, "date_to", end=True)

        reservations = self._repo(ctx).list_reservations(
            status=status, room_id=room_id, guest_id=guest_id, date_from=start, date_to=end,
        )
        return [self._detail(ctx, r) for r in reservations]

    def _boundary(self, value, field: str, end: bool) -> Optional[datetime]:
        if value is None:
            return None
        try:
            moment = parse_moment(value)
        except ValueError:
            raise validation_failure([{"field": field, "message": "Invalid date"}])
        if not isinstance(moment, datetime):
            window = self.clock.day_window(moment.isoformat())
            return window[1] if end else window[0]
        return self.clock.to_storage(moment)
