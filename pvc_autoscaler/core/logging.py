"""
Logging configuration for the PVC autoscaler.
统一的日志配置：structlog 与标准库日志共用同一个 handler，控制台彩色输出或 JSON 输出。
"""
import logging
import sys
from typing import Any, Callable, List, Optional

import structlog

from ..config import Settings, get_settings

_CONFIGURED = False

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
SERVICE_NAME = "pvc-autoscaler"

# 第三方库日志级别
_NOISY_LOGGERS = {
    "urllib3": logging.WARNING,
    "kubernetes": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def _service_context(env: str) -> Callable[[Any, str, dict], dict]:
    """Processor adding service/env to every event, ours or from foreign loggers."""

    def processor(_logger: Any, _method: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("env", env)
        return event_dict

    return processor


def _shared_processors(env: str) -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=TIMESTAMP_FORMAT, utc=False),
        _service_context(env),
    ]


def _renderer(json_output: bool, colors: bool) -> Any:
    if json_output:
        return structlog.processors.JSONRenderer(ensure_ascii=False, default=str)
    return structlog.dev.ConsoleRenderer(colors=colors)


def setup_logging(settings: Optional[Settings] = None, use_color: bool = True) -> None:
    """配置日志系统（root logger 与 structlog）

    Args:
        settings: 配置实例，默认使用 get_settings()
        use_color: 控制台为 TTY 时是否使用彩色输出
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    shared = _shared_processors(settings.app_env)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            _renderer(settings.log_json, use_color and sys.stdout.isatty()),
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # uvicorn 日志统一走 root handler
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, noisy_level))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """获取日志记录器"""
    return structlog.get_logger(name)
