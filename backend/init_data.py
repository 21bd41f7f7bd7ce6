"""
初始化数据脚本
创建：演示酒店（租户）、员工、房型、房间、演示客人

  HotelOps 演示酒店 (DEMO)
  ├── 标间   80.00  房间 101-105
  ├── 大床房 120.00 房间 201-205
  └── 豪华间 200.00 房间 301-303
"""
import logging
import sys
sys.path.insert(0, '.')

from decimal import Decimal
from app.database import SessionLocal, init_db
from app.logging_config import setup_logging
from app.models.ontology import Hotel, User
from app.services.guest_service import GuestService
from app.services.room_service import RoomService
from core.security.context import TenantContext

logger = logging.getLogger(__name__)

ROOM_TYPE_DEFS = [
    {'name': '标间', 'base_price': Decimal('80.00'), 'capacity': 2, 'floor': 1, 'count': 5},
    {'name': '大床房', 'base_price': Decimal('120.00'), 'capacity': 2, 'floor': 2, 'count': 5},
    {'name': '豪华间', 'base_price': Decimal('200.00'), 'capacity': 3, 'floor': 3, 'count': 3},
]


def init_hotel(db) -> Hotel:
    """初始化租户与员工"""
    hotel = db.query(Hotel).filter(Hotel.code == "DEMO").first()
    if not hotel:
        hotel = Hotel(name="HotelOps 演示酒店", code="DEMO")
        db.add(hotel)
        db.flush()
        db.add(User(hotel_id=hotel.id, name="前台", email="front@demo.local"))
        db.commit()
        db.refresh(hotel)
    return hotel


def init_rooms(db, hotel: Hotel) -> None:
    """初始化房型与房间（已存在的跳过）"""
    ctx = TenantContext(hotel_id=hotel.id, role="seed")
    service = RoomService(db)
    existing = {rt.name: rt for rt in service.list_room_types(ctx).unwrap()}

    created = 0
    for rt_def in ROOM_TYPE_DEFS:
        room_type = existing.get(rt_def['name'])
        if room_type is None:
            room_type = service.create_room_type(ctx, {
                'name': rt_def['name'],
                'base_price': rt_def['base_price'],
                'capacity': rt_def['capacity'],
            }).unwrap()
        for i in range(1, rt_def['count'] + 1):
            result = service.create_room(ctx, {
                'room_number': f"{rt_def['floor']}{i:02d}",
                'floor': rt_def['floor'],
                'room_type_id': room_type.id,
            })
            if result.ok:
                created += 1
    logger.info(f"房间初始化完成: {created} 间新建")


def init_guests(db, hotel: Hotel) -> None:
    """初始化演示客人（按 email 去重）"""
    ctx = TenantContext(hotel_id=hotel.id, role="seed")
    result = GuestService(db).create_guest(ctx, {
        "name": "演示客人", "email": "guest@demo.local", "phone": "13800000000",
    })
    if result.ok:
        logger.info(f"演示客人创建完成: id={result.value.id}")


def main():
    """主函数"""
    setup_logging()
    init_db()
    logger.info("数据库表创建完成")

    db = SessionLocal()
    try:
        hotel = init_hotel(db)
        init_rooms(db, hotel)
        init_guests(db, hotel)
        logger.info(f"初始化完成: 租户 {hotel.code} (id={hotel.id})")
    finally:
        db.close()


if __name__ == '__main__':
    main()
