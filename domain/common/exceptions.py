"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class InvalidStateTransitionException(BusinessException):
    """状态机不允许的转换（例如已退款的支付回到 completed）"""

    def __init__(self, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_STATE_TRANSITION,
            message=f"Cannot move payment from {current} to {target}",
            error_type="InvalidStateTransition",
            details={"current": current, "target": target},
            field="status",
        )


class UserNotFoundException(BusinessException):
    def __init__(self, identifier: Optional[str] = None):
        details = {"identifier": identifier} if identifier else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class UserAlreadyExistsException(BusinessException):
    def __init__(self, email: str):
        super().__init__(
            code=BusinessCode.USER_ALREADY_EXISTS,
            message=f"Email {email} already registered",
            error_type="UserAlreadyExists",
            details={"email": email},
            field="email",
        )


class PaymentNotFoundException(BusinessException):
    """支付记录不存在"""

    def __init__(self, identifier: str):
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_FOUND,
            message=f"Payment not found: {identifier}",
            error_type="PaymentNotFound",
            details={"identifier": identifier},
        )


class PaymentAlreadyExistsException(BusinessException):
    """同一 checkout 已存在支付记录"""

    def __init__(self, checkout_id: str):
        super().__init__(
            code=BusinessCode.PAYMENT_ALREADY_EXISTS,
            message=f"Payment for checkout {checkout_id} already exists",
            error_type="PaymentAlreadyExists",
            details={"checkout_id": checkout_id},
            field="checkout_id",
        )


class InvoiceNotReadyException(BusinessException):
    """发票尚未生成（Polar 异步渲染发票）"""

    def __init__(self, order_id: str):
        super().__init__(
            code=PaymentCode.INVOICE_NOT_READY,
            message=f"Invoice for order {order_id} is not available yet",
            error_type="InvoiceNotReady",
            details={"order_id": order_id},
        )
