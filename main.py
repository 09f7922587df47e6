"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import RequestIDMiddleware, LoggingMiddleware
from api.routes import checkout as checkout_routes
from api.routes import invoices as invoice_routes
from api.routes import payments as payments_routes
from api.routes import products as product_routes
from api.routes import refunds as refund_routes
from api.routes import webhooks as webhook_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger, configure_logging
from core.response import success_response
from core.settings import payment_settings
from infrastructure.database import create_tables
from infrastructure.external.email import LoggingEmailSender
from infrastructure.external.payments import build_polar_client


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    # Polar 客户端在生命周期内只创建一次，通过依赖注入给路由使用
    app.state.polar_gateway = build_polar_client(payment_settings)
    app.state.email_sender = LoggingEmailSender(
        payment_settings.email.from_address,
        enabled=payment_settings.email.enabled,
    )
    if not payment_settings.polar.webhook_secret:
        logger.warning("polar_webhook_secret_missing", message="Webhook deliveries will be rejected with 500")
    if not payment_settings.polar.access_token:
        logger.warning("polar_access_token_missing", message="Checkout/refund/invoice calls will fail")
    logger.info(
        "polar_client_initialized",
        environment=payment_settings.polar.environment,
        base_url=payment_settings.polar.base_url,
    )

    yield

    gateway = getattr(app.state, "polar_gateway", None)
    if gateway is not None:
        await gateway.aclose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Polar 支付 webhook 对账服务",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(webhook_routes.router, prefix="/api")
app.include_router(payments_routes.router, prefix="/api")
app.include_router(checkout_routes.router, prefix="/api")
app.include_router(refund_routes.router, prefix="/api")
app.include_router(invoice_routes.router, prefix="/api")
app.include_router(product_routes.router, prefix="/api")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查：缺少 webhook secret 时服务仍可查询，但 webhook 会被拒绝"""
    polar = payment_settings.polar
    return success_response(
        data={
            "status": "healthy",
            "polar_environment": polar.environment,
            "webhook_secret_configured": bool(polar.webhook_secret),
            "access_token_configured": bool(polar.access_token),
        },
        message="OK",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
