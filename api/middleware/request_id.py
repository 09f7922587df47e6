"""
Request ID 中间件
生成或透传追踪ID，并通过 contextvars 传递给日志系统；
Polar 投递的 webhook-id 一并绑定，便于按投递关联日志
"""
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Request-ID"
    WEBHOOK_ID_HEADER = "webhook-id"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        request.state.request_id = request_id
        request_id_var.set(request_id)

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "client_ip": self._get_client_ip(request),
            "method": request.method,
            "path": request.url.path,
        }
        webhook_id = request.headers.get(self.WEBHOOK_ID_HEADER)
        if webhook_id:
            context["webhook_id"] = webhook_id
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        # 代理场景优先取 X-Forwarded-For 的第一个地址
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        return request.client.host if request.client else "unknown"


def get_request_id() -> Optional[str]:
    """当前请求的 request_id；不在请求上下文中返回 None"""
    return request_id_var.get()
