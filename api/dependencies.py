"""
API依赖项 - 从应用生命周期中取出网关与通知器，组装应用服务
"""
from typing import Optional

from fastapi import Depends, Request

from application.ports.notifier import EmailSender
from application.ports.payment_gateway import PolarGateway
from application.services.payment_query_service import PaymentQueryService
from application.services.payment_service import PaymentService
from application.services.reconciliation_service import ReconciliationService
from application.services.side_effects import SideEffectDispatcher
from core.settings import payment_settings
from infrastructure.external.payments.exceptions import PaymentConfigurationError
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_polar_gateway(request: Request) -> Optional[PolarGateway]:
    """lifespan 中创建的单例客户端；未启动 lifespan 时为 None"""
    return getattr(request.app.state, "polar_gateway", None)


async def require_polar_gateway(
    gateway: Optional[PolarGateway] = Depends(get_polar_gateway),
) -> PolarGateway:
    if gateway is None:
        raise PaymentConfigurationError("Polar client is not initialised", provider="polar")
    return gateway


async def get_email_sender(request: Request) -> Optional[EmailSender]:
    return getattr(request.app.state, "email_sender", None)


async def get_reconciliation_service(
    gateway: Optional[PolarGateway] = Depends(get_polar_gateway),
    email_sender: Optional[EmailSender] = Depends(get_email_sender),
) -> ReconciliationService:
    dispatcher = SideEffectDispatcher(gateway, email_sender, uow_factory=SQLAlchemyUnitOfWork)
    return ReconciliationService(uow_factory=SQLAlchemyUnitOfWork, dispatcher=dispatcher)


async def get_payment_service(
    gateway: PolarGateway = Depends(require_polar_gateway),
) -> PaymentService:
    return PaymentService(
        gateway,
        default_success_url=payment_settings.polar.success_url,
    )


async def get_payment_query_service(
    gateway: Optional[PolarGateway] = Depends(get_polar_gateway),
) -> PaymentQueryService:
    return PaymentQueryService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=gateway,
        invoice_retry_delay=payment_settings.invoice.retry_delay_seconds,
        invoice_url_ttl=payment_settings.invoice.url_ttl_seconds,
    )
