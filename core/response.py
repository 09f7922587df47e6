"""
统一响应格式定义

成功响应的 data 直接接收 DTO 或 DTO 列表，序列化在这里完成；
错误响应额外携带 Polar 上游状态，便于调用方区分本地错误与上游拒绝。
"""
from typing import Any, Generic, List, Optional, TypeVar
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_serializer

from shared.codes import BusinessCode


T = TypeVar("T")


def _utc_z(ts: datetime) -> str:
    ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
    return ts.isoformat().replace("+00:00", "Z")


class ErrorDetail(BaseModel):
    """错误详情"""
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    provider: Optional[str] = None
    upstream_status: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return _utc_z(timestamp)


class Response(BaseModel, Generic[T]):
    """统一响应模型"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


class Page(BaseModel, Generic[T]):
    """偏移分页结果；不返回总数，列表接口按 skip/limit 翻页"""
    items: List[T]
    skip: int
    limit: int
    count: int


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_dump(item) for item in data]
    return data


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS
) -> Response:
    """
    创建成功响应

    Args:
        data: DTO、DTO 列表或可直接 JSON 化的值
        message: 成功消息
        code: 业务状态码
    """
    return Response(code=code, message=message, data=_dump(data), error=None)


def page_response(items: List[Any], *, skip: int, limit: int) -> Response:
    """列表查询的分页响应"""
    dumped = _dump(items)
    return success_response(data=Page(items=dumped, skip=skip, limit=limit, count=len(dumped)))


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
    provider: Optional[str] = None,
    upstream_status: Optional[int] = None,
) -> Response:
    """
    创建错误响应

    Args:
        code: 业务状态码
        message: 错误消息
        error_type: 错误类型
        details: 错误详情
        field: 错误字段
        request_id: 请求ID
        provider: 出错的外部服务（目前只有 polar）
        upstream_status: 外部服务返回的 HTTP 状态码
    """
    return Response(
        code=code,
        message=message,
        data=None,
        error=ErrorDetail(
            type=error_type,
            details=details,
            field=field,
            request_id=request_id,
            provider=provider,
            upstream_status=upstream_status,
        )
    )
