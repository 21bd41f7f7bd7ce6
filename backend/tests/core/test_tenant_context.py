"""
core/security/context.py 单元测试
"""
from core.security.context import TenantContext


class TestTenantContext:

    def test_valid(self):
        assert TenantContext(hotel_id=1).is_valid()

    def test_invalid_ids(self):
        assert not TenantContext(hotel_id=0).is_valid()
        assert not TenantContext(hotel_id=True).is_valid()
        assert not TenantContext(hotel_id="1").is_valid()

    def test_equality_ignores_metadata(self):
        a = TenantContext(hotel_id=1, actor_id=2, metadata={"ip": "10.0.0.1"})
        b = TenantContext(hotel_id=1, actor_id=2)
        assert a == b
        assert hash(a) == hash(b)

    def test_to_dict(self):
        ctx = TenantContext(hotel_id=3, actor_id=9, role="manager")
        assert ctx.to_dict()["hotel_id"] == 3
        assert "hotel_id=3" in repr(ctx)
