"""
本体对象定义 (Ontology Objects)
所有业务实体都带 hotel_id（Payment 除外，其租户经由 Reservation 传递）
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, JSON,
    Enum as SQLEnum, Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from app.database import Base


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态枚举"""
    AVAILABLE = "available"        # 空闲
    OCCUPIED = "occupied"          # 入住中
    MAINTENANCE = "maintenance"    # 维修中（人工设置，自动流程不覆盖）


class ReservationStatus(str, Enum):
    """预订状态枚举"""
    PENDING = "pending"            # 待确认
    CONFIRMED = "confirmed"        # 已确认
    CHECKED_IN = "checked_in"      # 已入住
    CHECKED_OUT = "checked_out"    # 已退房
    CANCELLED = "cancelled"        # 已取消


class PaymentStatus(str, Enum):
    """支付状态，只有 completed 计入实收"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class ChargeCategory(str, Enum):
    """杂项消费类别"""
    MINIBAR = "minibar"
    SERVICE = "service"
    LAUNDRY = "laundry"
    OTHER = "other"


# 可编辑（房间/日期/客人）的预订状态
EDITABLE_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)

# 不能再记消费的预订状态
CHARGE_LOCKED_RESERVATION_STATUSES = (ReservationStatus.CANCELLED, ReservationStatus.CHECKED_OUT)


# ============== 本体对象定义 ==============

class Hotel(Base):
    """
    酒店对象 - 租户
    """
    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), unique=True, nullable=False)     # 租户编码
    address = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class User(Base):
    """
    员工对象 - 身份由外部认证层管理，核心只引用其 ID
    """
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("hotel_id", "email", name="uq_users_hotel_email"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class RoomType(Base):
    """
    房型对象
    价格变动不回溯已有预订的 total_price
    """
    __tablename__ = "room_types"
    __table_args__ = (UniqueConstraint("hotel_id", "name", name="uq_room_types_hotel_name"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)                  # 房型名称
    base_price = Column(Numeric(12, 2), nullable=False)        # 每晚基础价格
    capacity = Column(Integer, nullable=False, default=2)      # 最大入住人数
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接：一个房型对应多个房间
    rooms = relationship("Room", back_populates="room_type")


class Room(Base):
    """
    房间对象
    同一租户内按房间号唯一
    """
    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("hotel_id", "room_number", name="uq_rooms_hotel_number"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    room_number = Column(String(10), nullable=False)           # 房间号
    floor = Column(Integer, nullable=False, default=1)         # 楼层
    description = Column(Text)
    status = Column(
        SQLEnum(RoomStatus, values_callable=_enum_values, name="room_status"),
        nullable=False,
        default=RoomStatus.AVAILABLE,
    )
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    room_type = relationship("RoomType", back_populates="rooms")
    reservations = relationship("Reservation", back_populates="room")


class Guest(Base):
    """
    客人对象
    """
    __tablename__ = "guests"
    __table_args__ = (UniqueConstraint("hotel_id", "email", name="uq_guests_hotel_email"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)                 # 姓名
    email = Column(String(100))                                # 邮箱
    phone = Column(String(20))                                 # 手机号
    document_number = Column(String(50))                      # 证件号码
    address = Column(String(255))                              # 地址
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    reservations = relationship("Reservation", back_populates="guest")


class Reservation(Base):
    """
    预订对象 - 预订与账务的聚合根
    check_in < check_out（半开区间），时间统一存为 naive UTC
    """
    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_hotel_room", "hotel_id", "room_id"),
        Index("ix_reservations_hotel_guest", "hotel_id", "guest_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)   # 经办员工
    check_in = Column(DateTime, nullable=False)
    check_out = Column(DateTime, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)       # 晚数 × 房型价格，创建/编辑时确定
    status = Column(
        SQLEnum(ReservationStatus, values_callable=_enum_values, name="reservation_status"),
        nullable=False,
        default=ReservationStatus.PENDING,
    )
    checked_in_at = Column(DateTime)                           # 首次入住时间，只写一次
    checked_out_at = Column(DateTime)                          # 首次退房时间，只写一次
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    room = relationship("Room", back_populates="reservations")
    guest = relationship("Guest", back_populates="reservations")
    user = relationship("User")
    payments = relationship("Payment", back_populates="reservation")
    charges = relationship("Charge", back_populates="reservation")


class Payment(Base):
    """
    支付记录对象
    属于 Reservation，租户经由 reservation.hotel_id 传递
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)            # 支付金额
    method = Column(
        SQLEnum(PaymentMethod, values_callable=_enum_values, name="payment_method"),
        nullable=False,
    )
    status = Column(
        SQLEnum(PaymentStatus, values_callable=_enum_values, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    reservation = relationship("Reservation", back_populates="payments")


class Charge(Base):
    """
    杂项消费对象（迷你吧、服务、洗衣等）
    total 永远由服务端按 quantity × unit_price 计算
    """
    __tablename__ = "charges"
    __table_args__ = (
        Index("ix_charges_hotel_reservation", "hotel_id", "reservation_id"),
        Index("ix_charges_hotel_room", "hotel_id", "room_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)   # 冗余，便于报表
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    category = Column(
        SQLEnum(ChargeCategory, values_callable=_enum_values, name="charge_category"),
        nullable=False,
        default=ChargeCategory.OTHER,
    )
    description = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    reservation = relationship("Reservation", back_populates="charges")
    room = relationship("Room")


class DailyClose(Base):
    """
    日结快照 - 创建后不可变
    (hotel_id, date_key) 唯一约束是并发日结的最终裁决者
    """
    __tablename__ = "daily_closes"
    __table_args__ = (UniqueConstraint("hotel_id", "date_key", name="uq_daily_closes_hotel_date"),)

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    date_key = Column(String(10), nullable=False)              # YYYY-MM-DD（报表时区）
    window_start = Column(DateTime, nullable=False)            # naive UTC，含
    window_end = Column(DateTime, nullable=False)              # naive UTC，不含
    total_completed = Column(Numeric(14, 2), nullable=False)
    count_completed = Column(Integer, nullable=False)
    by_method = Column(JSON, nullable=False, default=dict)     # {method: "amount"}
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class AuditLog(Base):
    """
    审计日志对象
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id"), nullable=False, index=True)
    actor_user_id = Column(Integer, nullable=True)
    action = Column(String(64), nullable=False)                # 操作类型
    entity_type = Column(String(50))                           # 实体类型
    entity_id = Column(Integer)                                # 实体ID
    details = Column(JSON)                                     # 额外信息
    created_at = Column(DateTime, default=datetime.utcnow)


def money(value) -> Decimal:
    """Numeric 列读出的值统一为 Decimal"""
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))
