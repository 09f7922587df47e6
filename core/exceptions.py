"""
业务异常到 HTTP 响应的映射与全局异常处理器

Polar 相关异常的约定：
- 上游 4xx（参数、金额、状态不符）原样透传状态码，error.upstream_status 同步给出
- 上游 429/5xx 与网络错误统一为 503，并带 Retry-After
- 发票尚未渲染返回 404，同样带 Retry-After，调用方稍后重试即可
"""
from typing import Optional
import traceback
import uuid

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import BusinessException


# 业务码 -> HTTP 状态码（未列出的默认 400）
_CODE_TO_HTTP_STATUS = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

    BusinessCode.USER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.USER_ALREADY_EXISTS: http_status.HTTP_409_CONFLICT,
    BusinessCode.PAYMENT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.PAYMENT_ALREADY_EXISTS: http_status.HTTP_409_CONFLICT,
    BusinessCode.INVALID_STATE_TRANSITION: http_status.HTTP_409_CONFLICT,

    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    BusinessCode.TOO_MANY_REQUESTS: http_status.HTTP_429_TOO_MANY_REQUESTS,

    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_401_UNAUTHORIZED,
    PaymentCode.CONFIGURATION_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    PaymentCode.INVOICE_NOT_READY: http_status.HTTP_404_NOT_FOUND,
}

# 这些业务码的响应带 Retry-After（秒）
_RETRYABLE_CODES = {PaymentCode.PROVIDER_RECOVERABLE, PaymentCode.INVOICE_NOT_READY}


def _upstream_status(exc: BusinessException) -> Optional[int]:
    value = (exc.details or {}).get("http_status")
    return value if isinstance(value, int) else None


def business_code_to_http_status(exc: BusinessException) -> int:
    """根据业务码映射HTTP状态码；Polar 返回的 4xx 原样透传给调用方。"""
    if exc.code == PaymentCode.PROVIDER_ERROR:
        upstream = _upstream_status(exc)
        if upstream is not None and 400 <= upstream < 500:
            return upstream
    return _CODE_TO_HTTP_STATUS.get(exc.code, http_status.HTTP_400_BAD_REQUEST)


def retry_after_seconds(exc: BusinessException) -> Optional[int]:
    if exc.code not in _RETRYABLE_CODES:
        return None
    if exc.code == PaymentCode.INVOICE_NOT_READY:
        return max(1, int(round(payment_settings.invoice.retry_delay_seconds)))
    return max(1, int(round(payment_settings.retry.base_backoff * 10)))


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常（含 Polar 调用失败）"""
        request_id = _request_id(request)
        status_code = business_code_to_http_status(exc)
        provider = (exc.details or {}).get("provider")
        upstream = _upstream_status(exc)

        log = logger.error if status_code >= 500 else logger.info
        log(
            "business_exception",
            request_id=request_id,
            code=int(exc.code),
            error_type=exc.error_type,
            error=exc.message,
            provider=provider,
            upstream_status=upstream,
            http_status=status_code,
        )

        response = error_response(
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=request_id,
            provider=provider,
            upstream_status=upstream,
        )
        retry_after = retry_after_seconds(exc)
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常"""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        response = error_response(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": [{k: v for k, v in e.items() if k not in ("ctx", "input")} for e in errors]},
            field=field,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode="json")
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理HTTP异常（路由未匹配、方法不允许等）"""
        code = {
            401: BusinessCode.UNAUTHORIZED,
            404: BusinessCode.NOT_FOUND,
            429: BusinessCode.TOO_MANY_REQUESTS,
            503: BusinessCode.SERVICE_UNAVAILABLE,
        }.get(exc.status_code, BusinessCode.PARAM_ERROR if exc.status_code < 500 else BusinessCode.SYSTEM_ERROR)

        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode="json"),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = _request_id(request)
        logger.error("unhandled_exception", request_id=request_id, error=str(exc), exc_info=True)

        details = None
        if app.debug:
            details = {"exception": str(exc), "traceback": traceback.format_exc()}

        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode="json")
        )
