"""
房态可用性服务 - 本体操作层
判断房间在 [check_in, check_out) 内是否空闲（半开区间，已取消的预订不计）
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.models.ontology import Reservation, Room, RoomStatus
from app.models.schemas import AvailabilityQuery, parse_payload
from app.services.base import TenantScopedService, not_found
from core.result import service_operation, validation_failure
from core.security.context import TenantContext

logger = logging.getLogger(__name__)


def ensure_valid_stay(check_in: datetime, check_out: datetime) -> None:
    """check_in 必须严格早于 check_out"""
    if check_out <= check_in:
        raise validation_failure(
            [{"field": "check_out", "message": "check_out must be after check_in"}],
            message="Invalid stay dates",
        )


class AvailabilityService(TenantScopedService):
    """房态可用性服务（只读）"""

    def find_conflicts(
        self,
        ctx: TenantContext,
        room_id: int,
        check_in: datetime,
        check_out: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> List[Reservation]:
        """与给定区间重叠的非取消预订"""
        return self._repo(ctx).overlapping_reservations(
            room_id, check_in, check_out, exclude_reservation_id
        )

    def is_available(
        self,
        ctx: TenantContext,
        room_id: int,
        check_in: datetime,
        check_out: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> bool:
        return not self.find_conflicts(ctx, room_id, check_in, check_out, exclude_reservation_id)

    def list_available_rooms(
        self,
        ctx: TenantContext,
        check_in: datetime,
        check_out: datetime,
        room_type_id: Optional[int] = None,
    ) -> List[Room]:
        """非维修且区间内无冲突的房间"""
        repo = self._repo(ctx)
        return [
            room for room in repo.list_rooms(room_type_id=room_type_id)
            if room.status != RoomStatus.MAINTENANCE
            and not repo.overlapping_reservations(room.id, check_in, check_out)
        ]

    @service_operation
    def check_availability(self, ctx: TenantContext, payload) -> Dict[str, Any]:
        """
        对外的可用性查询
        返回 {available, conflicting_reservation_ids}；房间不属于本租户时 NotFound
        """
        data = parse_payload(AvailabilityQuery, payload)
        check_in = self.clock.to_storage(data.check_in)
        check_out = self.clock.to_storage(data.check_out)
        ensure_valid_stay(check_in, check_out)

        room = self._repo(ctx).get_room(data.room_id)
        if not room:
            raise not_found("Room", data.room_id)

        conflicts = self.find_conflicts(
            ctx, room.id, check_in, check_out, data.exclude_reservation_id
        )
        return {
            "room_id": room.id,
            "check_in": check_in,
            "check_out": check_out,
            "available": not conflicts,
            "conflicting_reservation_ids": [r.id for r in conflicts],
        }
