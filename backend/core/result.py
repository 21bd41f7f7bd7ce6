"""
core/result.py

统一的操作结果类型 - 所有 service 操作返回此类型
领域冲突以带类型的错误值返回，调用方按 kind 匹配并映射为传输层响应。
"""
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar
import logging

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """错误分类（按种类，而非异常类名）"""
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    ROOM_NOT_AVAILABLE = "conflict.room_not_available"
    INVALID_TRANSITION = "conflict.invalid_transition"
    BOOKING_LOCKED = "conflict.booking_locked"
    OVERPAYMENT = "conflict.overpayment"
    OUTSTANDING_BALANCE = "conflict.outstanding_balance"
    OCCUPIED_ROOM = "conflict.occupied_room"
    DAILY_CLOSE_EXISTS = "conflict.daily_close_exists"
    ROOM_IN_MAINTENANCE = "conflict.room_in_maintenance"
    ROOM_HAS_RESERVATIONS = "conflict.room_has_reservations"
    GUEST_HAS_RESERVATIONS = "conflict.guest_has_reservations"
    INTERNAL = "internal"

    @property
    def is_conflict(self) -> bool:
        return self.value.startswith("conflict.")


@dataclass
class DomainError:
    """
    结构化错误

    Attributes:
        kind: 错误种类
        message: 可读信息
        details: 足够渲染可操作提示的结构化细节（当前状态、尝试值、计算总额）
    """
    kind: ErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class DomainFailure(Exception):
    """
    service 内部用于中断事务的异常，只在 service_operation 边界内使用，
    不会泄漏给调用方。
    """

    def __init__(self, kind: ErrorKind, message: str, **details: Any):
        super().__init__(message)
        self.error = DomainError(kind=kind, message=message, details=details)


@dataclass
class OperationResult(Generic[T]):
    """
    统一的操作结果

    成功时 value 有值，失败时 error 有值，两者互斥。
    """
    value: Optional[T] = None
    error: Optional[DomainError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """取出成功值；失败时抛出 DomainFailure（测试与脚本使用）"""
        if self.error is not None:
            raise DomainFailure(self.error.kind, self.error.message, **self.error.details)
        return self.value

    @staticmethod
    def success(value: T = None) -> "OperationResult[T]":
        """快速创建成功结果"""
        return OperationResult(value=value)

    @staticmethod
    def fail(kind: ErrorKind, message: str, **details: Any) -> "OperationResult":
        """快速创建失败结果"""
        return OperationResult(error=DomainError(kind=kind, message=message, details=details))


def validation_failure(errors: List[Dict[str, Any]], message: str = "Invalid data") -> DomainFailure:
    """构造字段级校验失败"""
    return DomainFailure(ErrorKind.VALIDATION, message, errors=errors)


def service_operation(func: Callable[..., T]) -> Callable[..., OperationResult[T]]:
    """
    service 操作边界

    - 返回值包装为 OperationResult.success
    - DomainFailure 转换为 OperationResult.fail
    - SQLAlchemyError 回滚后转换为 INTERNAL，不重试
    """

    @wraps(func)
    def wrapper(self, *args, **kwargs) -> OperationResult[T]:
        try:
            return OperationResult.success(func(self, *args, **kwargs))
        except DomainFailure as e:
            logger.info(f"{func.__qualname__} rejected: {e.error.kind.value} {e.error.details}")
            return OperationResult(error=e.error)
        except SQLAlchemyError:
            logger.error(f"Storage failure in {func.__qualname__}", exc_info=True)
            db = getattr(self, "db", None)
            if db is not None:
                db.rollback()
            return OperationResult.fail(ErrorKind.INTERNAL, "Storage failure")

    return wrapper


__all__ = [
    "ErrorKind",
    "DomainError",
    "DomainFailure",
    "OperationResult",
    "validation_failure",
    "service_operation",
]
