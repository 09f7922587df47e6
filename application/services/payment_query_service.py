"""
支付查询应用服务：按 checkout、按用户邮箱查询支付记录，以及按支付记录获取发票链接
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from application.dtos.payments import PaymentDTO, PaymentInvoiceDTO, ProductDTO
from application.ports.payment_gateway import PolarGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    InvoiceNotReadyException,
    PaymentNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus


logger = get_logger(__name__)


class PaymentQueryService:
    """只读查询；发票获取会调用外部网关但不修改本地记录"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: Optional[PolarGateway] = None,
        *,
        invoice_retry_delay: float = 3.0,
        invoice_url_ttl: float = 540.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._invoice_retry_delay = invoice_retry_delay
        self._invoice_url_ttl = invoice_url_ttl
        self._sleep = sleep
        self._clock = clock

    async def get_by_checkout(self, checkout_id: str) -> PaymentDTO:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_checkout_id(checkout_id)
        if payment is None:
            raise PaymentNotFoundException(checkout_id)
        return PaymentDTO.from_entity(payment)

    async def list_by_email(
        self,
        email: str,
        *,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[PaymentDTO]:
        """按创建时间倒序；status 为空时返回全部状态"""
        status_filter: Optional[PaymentStatus] = None
        if status:
            try:
                status_filter = PaymentStatus(status.lower())
            except ValueError:
                raise DomainValidationException(
                    f"Unknown payment status: {status}",
                    field="status",
                    details={"allowed": [s.value for s in PaymentStatus]},
                )
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_by_email(
                email.strip().lower(), skip=skip, limit=limit, status=status_filter
            )
        return [PaymentDTO.from_entity(p) for p in payments]

    async def list_products(self) -> List[ProductDTO]:
        """在售产品目录，按价格升序"""
        async with self._uow_factory(readonly=True) as uow:
            products = await uow.product_repository.list_active()
        return [ProductDTO.from_entity(p) for p in products]

    async def get_invoice_url(self, payment_id: int) -> PaymentInvoiceDTO:
        """
        Polar 异步生成发票：先请求生成，等待固定延迟后读取，
        仍未就绪则再等待一次，最终抛出 InvoiceNotReadyException
        """
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(str(payment_id))

        order_id = payment.order_id
        if not order_id:
            raise InvoiceNotReadyException(payment.checkout_id)

        cached = self._fresh_invoice_url(payment)
        if cached:
            return PaymentInvoiceDTO(payment_id=payment_id, order_id=order_id, url=cached)

        if self._gateway is None:
            raise InvoiceNotReadyException(order_id)

        await self._gateway.generate_invoice(order_id)
        for attempt in range(2):
            await self._sleep(self._invoice_retry_delay)
            link = await self._gateway.get_invoice(order_id)
            if link is not None:
                return PaymentInvoiceDTO(payment_id=payment_id, order_id=order_id, url=link.url)
            logger.info("invoice_fetch_pending", order_id=order_id, attempt=attempt + 1)

        raise InvoiceNotReadyException(order_id)

    def _fresh_invoice_url(self, payment: Payment) -> Optional[str]:
        """邮件发送时缓存的发票链接，超过有效期后视为失效"""
        url = payment.metadata.get("invoice_url")
        issued = payment.metadata.get("invoice_url_issued_at")
        if not url or not issued:
            return None
        try:
            issued_at = datetime.fromisoformat(issued)
        except (TypeError, ValueError):
            return None
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        if (self._clock() - issued_at).total_seconds() >= self._invoice_url_ttl:
            logger.info("invoice_url_expired", order_id=payment.order_id, issued_at=issued)
            return None
        return url
