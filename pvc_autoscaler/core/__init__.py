"""
Core module initialization.
导出日志工具
"""
from .logging import setup_logging, get_logger

__all__ = [
    "setup_logging",
    "get_logger",
]
