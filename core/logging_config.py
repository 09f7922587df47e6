"""
Structlog 日志配置模块

webhook 与 Polar 调用日志会带上签名头、token 等敏感字段，
统一在处理链里脱敏后再渲染。
"""
import logging
import json
import structlog
from structlog.processors import TimeStamper, add_log_level, JSONRenderer
from structlog.dev import ConsoleRenderer
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter
from typing import Any, List, MutableMapping

from core.config import settings


_SENSITIVE_KEYS = frozenset({
    "authorization",
    "access_token",
    "webhook_secret",
    "webhook-signature",
    "webhook_signature",
    "secret",
})

_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine.Engine")


def redact_secrets(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """把敏感字段替换为掩码；嵌套一层的 dict（如 headers）同样处理"""
    for key, value in list(event_dict.items()):
        if key.lower() in _SENSITIVE_KEYS and value:
            event_dict[key] = "***"
        elif isinstance(value, dict):
            event_dict[key] = {
                k: ("***" if str(k).lower() in _SENSITIVE_KEYS and v else v) for k, v in value.items()
            }
    return event_dict


def _use_json() -> bool:
    if settings.log.json_output is not None:
        return settings.log.json_output
    return not settings.DEBUG


def _resolve_level() -> int:
    if settings.log.level:
        return logging.getLevelName(settings.log.level.upper())
    return logging.DEBUG if settings.DEBUG else logging.INFO


def get_renderer() -> Any:
    """DEBUG 下彩色控制台输出，其余环境输出 JSON（中文不转义）"""
    if not _use_json():
        return ConsoleRenderer(colors=True)

    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def configure_logging() -> None:
    """配置 structlog 并桥接标准库 logging 到同一处理链。"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn、sqlalchemy、httpx 的标准库日志也走同一渲染链
    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(),
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level())
    # Polar 请求已有 provider_response 业务日志，逐条请求行只在排查时打开
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)
