"""
租户作用域仓储
所有查询都带 hotel_id 条件；跨租户的行与不存在的行一样返回 None，
从而不泄漏其他租户数据的存在性。
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from app.models.ontology import (
    Charge, DailyClose, Guest, Payment, PaymentStatus, Reservation,
    ReservationStatus, Room, RoomType, User, money,
)


class TenantRepository:
    """租户作用域仓储"""

    def __init__(self, db: Session, hotel_id: int):
        self._db = db
        self.hotel_id = hotel_id

    # ============== 基础查询 ==============

    def _rooms(self) -> Query:
        return self._db.query(Room).filter(Room.hotel_id == self.hotel_id)

    def _reservations(self) -> Query:
        return self._db.query(Reservation).filter(Reservation.hotel_id == self.hotel_id)

    def _payments(self) -> Query:
        # Payment 无 hotel_id，经由 Reservation 限定租户
        return self._db.query(Payment).join(
            Reservation, Payment.reservation_id == Reservation.id
        ).filter(Reservation.hotel_id == self.hotel_id)

    def _charges(self) -> Query:
        return self._db.query(Charge).filter(Charge.hotel_id == self.hotel_id)

    # ============== 房型 / 房间 ==============

    def get_room_type(self, room_type_id: int) -> Optional[RoomType]:
        return self._db.query(RoomType).filter(
            RoomType.id == room_type_id,
            RoomType.hotel_id == self.hotel_id,
        ).first()

    def get_room_type_by_name(self, name: str) -> Optional[RoomType]:
        return self._db.query(RoomType).filter(
            RoomType.name == name,
            RoomType.hotel_id == self.hotel_id,
        ).first()

    def list_room_types(self) -> List[RoomType]:
        return self._db.query(RoomType).filter(
            RoomType.hotel_id == self.hotel_id
        ).order_by(RoomType.id).all()

    def get_room(self, room_id: int, lock: bool = False) -> Optional[Room]:
        """lock=True 时对房间行加写锁，串行化同一房间的预订写入"""
        query = self._rooms().filter(Room.id == room_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def get_room_by_number(self, room_number: str) -> Optional[Room]:
        return self._rooms().filter(Room.room_number == room_number).first()

    def list_rooms(self, room_type_id: Optional[int] = None, status=None) -> List[Room]:
        query = self._rooms()
        if room_type_id is not None:
            query = query.filter(Room.room_type_id == room_type_id)
        if status is not None:
            query = query.filter(Room.status == status)
        return query.order_by(Room.room_number).all()

    # ============== 客人 / 员工 ==============

    def get_guest(self, guest_id: int) -> Optional[Guest]:
        return self._db.query(Guest).filter(
            Guest.id == guest_id,
            Guest.hotel_id == self.hotel_id,
        ).first()

    def get_guest_by_email(self, email: str) -> Optional[Guest]:
        return self._db.query(Guest).filter(
            Guest.email == email,
            Guest.hotel_id == self.hotel_id,
        ).first()

    def list_guests(self, search: Optional[str] = None, limit: int = 100) -> List[Guest]:
        query = self._db.query(Guest).filter(Guest.hotel_id == self.hotel_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Guest.name.ilike(pattern),
                Guest.email.ilike(pattern),
                Guest.phone.ilike(pattern),
                Guest.document_number.ilike(pattern),
                Guest.address.ilike(pattern),
            ))
        return query.order_by(Guest.created_at.desc(), Guest.id.desc()).limit(limit).all()

    def count_reservations_for_guest(self, guest_id: int) -> int:
        return self._reservations().filter(Reservation.guest_id == guest_id).count()

    def get_user(self, user_id: int) -> Optional[User]:
        return self._db.query(User).filter(
            User.id == user_id,
            User.hotel_id == self.hotel_id,
        ).first()

    # ============== 预订 ==============

    def get_reservation(self, reservation_id: int, lock: bool = False) -> Optional[Reservation]:
        """lock=True 时对预订行加写锁，串行化同一预订的账务写入"""
        query = self._reservations().filter(Reservation.id == reservation_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def list_reservations(
        self,
        status: Optional[ReservationStatus] = None,
        room_id: Optional[int] = None,
        guest_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[Reservation]:
        query = self._reservations()
        if status is not None:
            query = query.filter(Reservation.status == status)
        if room_id is not None:
            query = query.filter(Reservation.room_id == room_id)
        if guest_id is not None:
            query = query.filter(Reservation.guest_id == guest_id)
        # 与 [date_from, date_to) 有交集的预订
        if date_from is not None:
            query = query.filter(Reservation.check_out > date_from)
        if date_to is not None:
            query = query.filter(Reservation.check_in < date_to)
        return query.order_by(Reservation.check_in.desc(), Reservation.id.desc()).all()

    def overlapping_reservations(
        self,
        room_id: int,
        check_in: datetime,
        check_out: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> List[Reservation]:
        """
        半开区间重叠：existing.check_in < check_out AND existing.check_out > check_in
        已取消的预订不参与比较
        """
        query = self._reservations().filter(
            Reservation.room_id == room_id,
            Reservation.status != ReservationStatus.CANCELLED,
            Reservation.check_in < check_out,
            Reservation.check_out > check_in,
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return query.order_by(Reservation.check_in).all()

    def checked_in_reservations_for_room(self, room_id: int) -> List[Reservation]:
        return self._reservations().filter(
            Reservation.room_id == room_id,
            Reservation.status == ReservationStatus.CHECKED_IN,
        ).all()

    def count_reservations_for_room(self, room_id: int) -> int:
        return self._reservations().filter(Reservation.room_id == room_id).count()

    # ============== 支付 ==============

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        return self._payments().filter(Payment.id == payment_id).first()

    def list_payments(
        self,
        reservation_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        query = self._payments()
        if reservation_id is not None:
            query = query.filter(Payment.reservation_id == reservation_id)
        if status is not None:
            query = query.filter(Payment.status == status)
        return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    def completed_payments_total(
        self,
        reservation_id: int,
        exclude_payment_id: Optional[int] = None,
    ) -> Decimal:
        """已完成支付合计，每次从行数据重新计算"""
        query = self._payments().filter(
            Payment.reservation_id == reservation_id,
            Payment.status == PaymentStatus.COMPLETED,
        )
        if exclude_payment_id is not None:
            query = query.filter(Payment.id != exclude_payment_id)
        return sum((money(p.amount) for p in query.all()), Decimal("0"))

    def completed_payments_between(self, start: datetime, end: datetime) -> List[Payment]:
        """created_at ∈ [start, end) 的已完成支付"""
        return self._payments().filter(
            Payment.status == PaymentStatus.COMPLETED,
            Payment.created_at >= start,
            Payment.created_at < end,
        ).order_by(Payment.created_at, Payment.id).all()

    # ============== 消费 ==============

    def get_charge(self, charge_id: int) -> Optional[Charge]:
        return self._charges().filter(Charge.id == charge_id).first()

    def list_charges(
        self,
        reservation_id: Optional[int] = None,
        room_id: Optional[int] = None,
    ) -> List[Charge]:
        query = self._charges()
        if reservation_id is not None:
            query = query.filter(Charge.reservation_id == reservation_id)
        if room_id is not None:
            query = query.filter(Charge.room_id == room_id)
        return query.order_by(Charge.created_at.desc(), Charge.id.desc()).all()

    def charge_totals(
        self,
        reservation_id: int,
        exclude_charge_id: Optional[int] = None,
    ) -> List[Decimal]:
        query = self._charges().filter(Charge.reservation_id == reservation_id)
        if exclude_charge_id is not None:
            query = query.filter(Charge.id != exclude_charge_id)
        return [money(c.total) for c in query.all()]

    # ============== 日结 ==============

    def get_daily_close(self, daily_close_id: int) -> Optional[DailyClose]:
        return self._db.query(DailyClose).filter(
            DailyClose.id == daily_close_id,
            DailyClose.hotel_id == self.hotel_id,
        ).first()

    def get_daily_close_by_date(self, date_key: str) -> Optional[DailyClose]:
        return self._db.query(DailyClose).filter(
            DailyClose.hotel_id == self.hotel_id,
            DailyClose.date_key == date_key,
        ).first()

    def list_daily_closes(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[DailyClose]:
        # YYYY-MM-DD 可按字典序比较
        query = self._db.query(DailyClose).filter(DailyClose.hotel_id == self.hotel_id)
        if date_from:
            query = query.filter(DailyClose.date_key >= date_from)
        if date_to:
            query = query.filter(DailyClose.date_key <= date_to)
        query = query.order_by(DailyClose.date_key.desc())
        if limit:
            query = query.limit(limit)
        return query.all()
