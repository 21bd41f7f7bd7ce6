"""
Pytest 配置和共享 fixtures
"""
import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, create_db_engine, init_db
from app.models.ontology import (
    Hotel, User, RoomType, Room, RoomStatus, Guest, Reservation,
    ReservationStatus, Payment, PaymentMethod, PaymentStatus,
)
from core.engine.audit import AuditEngine
from core.security.context import TenantContext


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_db_engine("sqlite:///:memory:", poolclass=StaticPool, echo=False)
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def audit_engine():
    """内存审计 sink"""
    return AuditEngine()


# ============== 租户相关 Fixtures ==============

@pytest.fixture
def sample_hotel(db_session):
    """创建测试酒店（租户 A）"""
    hotel = Hotel(name="西湖酒店", code="HZ")
    db_session.add(hotel)
    db_session.commit()
    db_session.refresh(hotel)
    return hotel


@pytest.fixture
def other_hotel(db_session):
    """创建另一家酒店（租户 B）"""
    hotel = Hotel(name="外滩酒店", code="SH")
    db_session.add(hotel)
    db_session.commit()
    db_session.refresh(hotel)
    return hotel


@pytest.fixture
def sample_user(db_session, sample_hotel):
    """创建前台员工"""
    user = User(hotel_id=sample_hotel.id, name="前台小王", email="front1@hz.local")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def ctx(sample_hotel, sample_user):
    """租户 A 的上下文"""
    return TenantContext(hotel_id=sample_hotel.id, actor_id=sample_user.id, role="receptionist")


@pytest.fixture
def other_ctx(other_hotel):
    """租户 B 的上下文"""
    return TenantContext(hotel_id=other_hotel.id, role="receptionist")


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_room_type(db_session, sample_hotel):
    """创建测试房型（每晚 80）"""
    room_type = RoomType(
        hotel_id=sample_hotel.id,
        name="标准间",
        base_price=Decimal("80.00"),
        capacity=2
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def sample_room_type_luxury(db_session, sample_hotel):
    """创建豪华房型（每晚 200）"""
    room_type = RoomType(
        hotel_id=sample_hotel.id,
        name="豪华间",
        base_price=Decimal("200.00"),
        capacity=2
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def sample_room(db_session, sample_hotel, sample_room_type):
    """创建测试房间 101"""
    room = Room(
        hotel_id=sample_hotel.id,
        room_number="101",
        floor=1,
        room_type_id=sample_room_type.id,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_room_102(db_session, sample_hotel, sample_room_type):
    """创建102房间"""
    room = Room(
        hotel_id=sample_hotel.id,
        room_number="102",
        floor=1,
        room_type_id=sample_room_type.id,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_room_301(db_session, sample_hotel, sample_room_type_luxury):
    """创建豪华间 301"""
    room = Room(
        hotel_id=sample_hotel.id,
        room_number="301",
        floor=3,
        room_type_id=sample_room_type_luxury.id,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def other_room(db_session, other_hotel):
    """租户 B 的房间（同样叫 101）"""
    room_type = RoomType(hotel_id=other_hotel.id, name="标准间", base_price=Decimal("90.00"), capacity=2)
    db_session.add(room_type)
    db_session.flush()
    room = Room(
        hotel_id=other_hotel.id,
        room_number="101",
        floor=1,
        room_type_id=room_type.id,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_guest(db_session, sample_hotel):
    """创建测试客人"""
    guest = Guest(
        hotel_id=sample_hotel.id,
        name="张三",
        phone="13800138000",
        document_number="110101199001011234"
    )
    db_session.add(guest)
    db_session.commit()
    db_session.refresh(guest)
    return guest


@pytest.fixture
def make_reservation(db_session):
    """直接落库一条预订（绕过服务层，用于构造前置状态）"""
    def _make(room, status=ReservationStatus.CONFIRMED, total_price=Decimal("200.00"),
              check_in=None, check_out=None):
        reservation = Reservation(
            hotel_id=room.hotel_id,
            room_id=room.id,
            check_in=check_in or datetime(2025, 1, 1, 12, 0),
            check_out=check_out or datetime(2025, 1, 3, 12, 0),
            total_price=total_price,
            status=status,
        )
        db_session.add(reservation)
        db_session.commit()
        db_session.refresh(reservation)
        return reservation
    return _make


@pytest.fixture
def make_payment(db_session):
    """直接落库一笔支付"""
    def _make(reservation, amount, status=PaymentStatus.COMPLETED,
              method=PaymentMethod.CASH, created_at=None):
        payment = Payment(
            reservation_id=reservation.id,
            amount=Decimal(str(amount)),
            method=method,
            status=status,
        )
        if created_at is not None:
            payment.created_at = created_at
        db_session.add(payment)
        db_session.commit()
        db_session.refresh(payment)
        return payment
    return _make


@pytest.fixture
def confirmed_reservation(make_reservation, sample_room):
    """房间 101 上一条已确认预订，total_price 200"""
    return make_reservation(sample_room)
