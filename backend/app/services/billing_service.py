"""
账务服务 - 本体操作层
管理 Payment 和 Charge 对象，并对预订做账务核对：
- 已完成支付合计永远不超过 grand_total（房费 + 杂项消费）
- 所有合计每次从行数据重新计算，不信任缓存值或客户端提交的合计
- 支付/消费的写入先锁住所属预订行，再读取合计
"""
import logging
from decimal import Decimal
from typing import List, Optional

from app.database import transaction
from app.models.ontology import (
    CHARGE_LOCKED_RESERVATION_STATUSES, Charge, Payment, PaymentStatus,
    Reservation, ReservationStatus, money,
)
from app.models.schemas import (
    BalanceSummary, ChargeCreate, ChargeUpdate, PaymentCreate, PaymentUpdate,
    parse_payload,
)
from app.repositories.tenant_repository import TenantRepository
from app.services.base import TenantScopedService, not_found
from core.engine.audit import AuditAction
from core.result import (
    DomainFailure, ErrorKind, service_operation, validation_failure
)
from core.security.context import TenantContext

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BillingService(TenantScopedService):
    """账务服务"""

    # ============== 账务核对 ==============

    def _balance(
        self,
        repo: TenantRepository,
        reservation: Reservation,
        exclude_payment_id: Optional[int] = None,
        exclude_charge_id: Optional[int] = None,
    ) -> BalanceSummary:
        room_total = self.clock.quantize(money(reservation.total_price))
        charges_total = self.clock.quantize(
            sum(repo.charge_totals(reservation.id, exclude_charge_id), ZERO)
        )
        grand_total = room_total + charges_total
        paid = repo.completed_payments_total(reservation.id, exclude_payment_id)
        return BalanceSummary(
            reservation_id=reservation.id,
            room_total=room_total,
            charges_total=charges_total,
            grand_total=grand_total,
            paid_completed=paid,
            due_amount=max(ZERO, grand_total - paid),
        )

    def balance_for(
        self,
        ctx: TenantContext,
        reservation: Reservation,
        exclude_payment_id: Optional[int] = None,
    ) -> BalanceSummary:
        return self._balance(self._repo(ctx), reservation, exclude_payment_id)

    def due_amount(
        self,
        ctx: TenantContext,
        reservation: Reservation,
        exclude_payment_id: Optional[int] = None,
    ) -> Decimal:
        """max(0, round(房费) + round(消费合计) - 已完成支付合计)"""
        return self.balance_for(ctx, reservation, exclude_payment_id).due_amount

    @service_operation
    def get_balance(self, ctx: TenantContext, reservation_id: int) -> BalanceSummary:
        repo = self._repo(ctx)
        reservation = repo.get_reservation(reservation_id)
        if not reservation:
            raise not_found("Reservation", reservation_id)
        return self._balance(repo, reservation)

    def _ensure_within_total(
        self,
        balance: BalanceSummary,
        attempted: Decimal,
    ) -> None:
        """balance 已排除正在编辑的支付；attempted 为本次将计入的已完成金额"""
        if balance.paid_completed + attempted > balance.grand_total:
            raise DomainFailure(
                ErrorKind.OVERPAYMENT,
                "Completed payments would exceed the reservation total",
                reservation_id=balance.reservation_id,
                grand_total=balance.grand_total,
                paid_completed=balance.paid_completed,
                attempted=attempted,
                max_allowed=max(ZERO, balance.grand_total - balance.paid_completed),
            )

    def _positive_amount(self, amount: Decimal) -> Decimal:
        amount = self.clock.quantize(amount)
        if amount <= ZERO:
            raise validation_failure([{"field": "amount", "message": "Amount must be positive"}])
        return amount

    # ============== 支付 ==============

    @service_operation
    def create_payment(self, ctx: TenantContext, payload) -> Payment:
        """
        记录支付
        只有 completed 支付受上限约束；pending / failed 总是接受
        """
        data = parse_payload(PaymentCreate, payload)
        amount = self._positive_amount(data.amount)
        repo = self._repo(ctx)
        with transaction(self.db):
            reservation = repo.get_reservation(data.reservation_id, lock=True)
            if not reservation:
                raise not_found("Reservation", data.reservation_id)

            if data.status == PaymentStatus.COMPLETED:
                self._ensure_within_total(self._balance(repo, reservation), amount)

            payment = Payment(
                reservation_id=reservation.id,
                amount=amount,
                method=data.method,
                status=data.status,
            )
            self.db.add(payment)
        self.db.refresh(payment)

        logger.info(
            f"Payment {payment.id} ({payment.status.value} {payment.amount}) "
            f"recorded for reservation {payment.reservation_id}"
        )
        self._audit(ctx, AuditAction.PAYMENT_CREATED, "Payment", payment.id,
                    reservation_id=payment.reservation_id, amount=str(payment.amount),
                    method=payment.method.value, status=payment.status.value)
        return payment

    @service_operation
    def update_payment(self, ctx: TenantContext, payment_id: int, payload) -> Payment:
        """先从已完成合计中排除本笔支付，再按新的金额/状态校验上限"""
        data = parse_payload(PaymentUpdate, payload)
        repo = self._repo(ctx)
        with transaction(self.db):
            payment = repo.get_payment(payment_id)
            if not payment:
                raise not_found("Payment", payment_id)
            reservation = repo.get_reservation(payment.reservation_id, lock=True)

            before = {"amount": str(payment.amount), "status": payment.status.value}
            next_amount = money(payment.amount)
            if data.amount is not None:
                next_amount = self._positive_amount(data.amount)
            next_status = data.status or payment.status

            if next_status == PaymentStatus.COMPLETED:
                balance = self._balance(repo, reservation, exclude_payment_id=payment.id)
                self._ensure_within_total(balance, next_amount)

            payment.amount = next_amount
            payment.status = next_status
            if data.method is not None:
                payment.method = data.method
        self.db.refresh(payment)

        self._audit(ctx, AuditAction.PAYMENT_UPDATED, "Payment", payment.id,
                    reservation_id=payment.reservation_id, before=before,
                    after={"amount": str(payment.amount), "status": payment.status.value})
        return payment

    @service_operation
    def delete_payment(self, ctx: TenantContext, payment_id: int) -> int:
        """删除支付只会减少已收金额，总是允许"""
        repo = self._repo(ctx)
        with transaction(self.db):
            payment = repo.get_payment(payment_id)
            if not payment:
                raise not_found("Payment", payment_id)
            repo.get_reservation(payment.reservation_id, lock=True)
            reservation_id = payment.reservation_id
            amount = str(payment.amount)
            self.db.delete(payment)

        logger.info(f"Payment {payment_id} deleted from reservation {reservation_id}")
        self._audit(ctx, AuditAction.PAYMENT_DELETED, "Payment", payment_id,
                    reservation_id=reservation_id, amount=amount)
        return payment_id

    @service_operation
    def get_payment(self, ctx: TenantContext, payment_id: int) -> Payment:
        payment = self._repo(ctx).get_payment(payment_id)
        if not payment:
            raise not_found("Payment", payment_id)
        return payment

    @service_operation
    def list_payments(
        self,
        ctx: TenantContext,
        reservation_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        if status is not None:
            status = parse_payload(PaymentUpdate, {"status": status}).status
        return self._repo(ctx).list_payments(reservation_id=reservation_id, status=status)

    # ============== 杂项消费 ==============

    def _ensure_chargeable(
        self,
        reservation: Reservation,
        locked_statuses=CHARGE_LOCKED_RESERVATION_STATUSES,
    ) -> None:
        if reservation.status in locked_statuses:
            raise DomainFailure(
                ErrorKind.BOOKING_LOCKED,
                f"Charges cannot change on a {reservation.status.value} reservation",
                reservation_id=reservation.id,
                status=reservation.status.value,
            )

    @service_operation
    def create_charge(self, ctx: TenantContext, payload) -> Charge:
        """total 由服务端按 quantity × unit_price 计算，忽略客户端提交的 total"""
        data = parse_payload(ChargeCreate, payload)
        repo = self._repo(ctx)
        with transaction(self.db):
            reservation = repo.get_reservation(data.reservation_id, lock=True)
            if not reservation:
                raise not_found("Reservation", data.reservation_id)
            self._ensure_chargeable(reservation)

            creator = repo.get_user(ctx.actor_id) if ctx.actor_id else None
            charge = Charge(
                hotel_id=ctx.hotel_id,
                reservation_id=reservation.id,
                room_id=reservation.room_id,
                created_by_id=creator.id if creator else None,
                category=data.category,
                description=data.description,
                quantity=data.quantity,
                unit_price=self.clock.quantize(data.unit_price),
                total=self.clock.quantize(data.quantity * data.unit_price),
            )
            self.db.add(charge)
        self.db.refresh(charge)

        logger.info(f"Charge {charge.id} ({charge.total}) added to reservation {charge.reservation_id}")
        self._audit(ctx, AuditAction.CHARGE_CREATED, "Charge", charge.id,
                    reservation_id=charge.reservation_id, category=charge.category.value,
                    total=str(charge.total))
        return charge

    @service_operation
    def update_charge(self, ctx: TenantContext, charge_id: int, payload) -> Charge:
        """降低金额时不能让已完成支付超过新的 grand_total"""
        data = parse_payload(ChargeUpdate, payload)
        repo = self._repo(ctx)
        with transaction(self.db):
            charge = repo.get_charge(charge_id)
            if not charge:
                raise not_found("Charge", charge_id)
            reservation = repo.get_reservation(charge.reservation_id, lock=True)
            self._ensure_chargeable(reservation)

            before = str(charge.total)
            quantity = data.quantity if data.quantity is not None else charge.quantity
            unit_price = self.clock.quantize(
                data.unit_price if data.unit_price is not None else money(charge.unit_price)
            )
            total = self.clock.quantize(quantity * unit_price)

            balance = self._balance(repo, reservation, exclude_charge_id=charge.id)
            self._ensure_covers_payments(balance, total)

            charge.quantity = quantity
            charge.unit_price = unit_price
            charge.total = total
            if data.category is not None:
                charge.category = data.category
            if data.description is not None:
                charge.description = data.description
        self.db.refresh(charge)

        self._audit(ctx, AuditAction.CHARGE_UPDATED, "Charge", charge.id,
                    reservation_id=charge.reservation_id, before=before, total=str(charge.total))
        return charge

    @service_operation
    def delete_charge(self, ctx: TenantContext, charge_id: int) -> int:
        """已退房的预订不能删消费；删除后已完成支付不能超过新的 grand_total"""
        repo = self._repo(ctx)
        with transaction(self.db):
            charge = repo.get_charge(charge_id)
            if not charge:
                raise not_found("Charge", charge_id)
            reservation = repo.get_reservation(charge.reservation_id, lock=True)
            self._ensure_chargeable(reservation, locked_statuses=(ReservationStatus.CHECKED_OUT,))

            balance = self._balance(repo, reservation, exclude_charge_id=charge.id)
            self._ensure_covers_payments(balance, ZERO)

            reservation_id = charge.reservation_id
            total = str(charge.total)
            self.db.delete(charge)

        logger.info(f"Charge {charge_id} deleted from reservation {reservation_id}")
        self._audit(ctx, AuditAction.CHARGE_DELETED, "Charge", charge_id,
                    reservation_id=reservation_id, total=total)
        return charge_id

    def ensure_payments_covered(self, repo: TenantRepository, reservation: Reservation) -> None:
        """预订改价（改日期、换房）后，已完成支付不能超过新的 grand_total"""
        self._ensure_covers_payments(self._balance(repo, reservation), ZERO)

    def _ensure_covers_payments(self, balance: BalanceSummary, charge_total: Decimal) -> None:
        """balance 已排除当前消费；charge_total 为其新的金额"""
        grand_total = balance.grand_total + charge_total
        if balance.paid_completed > grand_total:
            raise DomainFailure(
                ErrorKind.OVERPAYMENT,
                "Completed payments would exceed the reservation total",
                reservation_id=balance.reservation_id,
                grand_total=grand_total,
                paid_completed=balance.paid_completed,
                attempted=charge_total,
                shortfall=balance.paid_completed - grand_total,
            )

    @service_operation
    def list_charges(
        self,
        ctx: TenantContext,
        reservation_id: Optional[int] = None,
        room_id: Optional[int] = None,
    ) -> List[Charge]:
        return self._repo(ctx).list_charges(reservation_id=reservation_id, room_id=room_id)
