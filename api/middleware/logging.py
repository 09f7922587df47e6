"""
请求/响应日志中间件
记录请求方法、路径、状态码与耗时；不记录请求体（webhook 载荷包含客户邮箱等个人信息）
"""
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.time()
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
        }
        user_agent = request.headers.get("User-Agent")
        if user_agent:
            request_info["user_agent"] = user_agent

        logger.info("request_started", **request_info)
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.time() - start_time,
                error=str(exc),
                error_type=type(exc).__name__,
                **request_info,
                exc_info=True,
            )
            # 交给全局异常处理器
            raise

        duration = time.time() - start_time
        self._log_response(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    @staticmethod
    def _log_response(response: Response, duration: float, request_info: dict) -> None:
        status_code = response.status_code
        log_data = {"status_code": status_code, "duration": duration, **request_info}
        if status_code < 400:
            logger.info("request_completed", **log_data)
        elif status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
