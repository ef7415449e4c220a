"""
Kubernetes工具函数模块
提供存储容量（Quantity）、Go 风格时长与取整等转换函数
"""

import re
from datetime import timedelta
from decimal import ROUND_CEILING, Decimal
from fractions import Fraction
from typing import Optional, Union

from kubernetes.utils import parse_quantity

_BINARY_SUFFIXES = (("Ei", 1024**6), ("Pi", 1024**5), ("Ti", 1024**4), ("Gi", 1024**3), ("Mi", 1024**2), ("Ki", 1024))
_DECIMAL_SUFFIXES = (("E", 10**18), ("P", 10**15), ("T", 10**12), ("G", 10**9), ("M", 10**6), ("k", 10**3))

_DURATION_UNITS = {
    "ns": timedelta(microseconds=1) / 1000,
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "μs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_storage_quantity(value: Union[str, int, None]) -> int:
    """
    解析存储容量字符串，返回字节数

    Args:
        value: 容量字符串，如 "100Gi", "500M", "1e3", "1073741824"

    Returns:
        字节数（向上取整）

    Raises:
        ValueError: 不是合法的非负容量
    """
    if value is None:
        raise ValueError("empty quantity")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"negative quantity: {value}")
        return value

    text = str(value).strip()
    if not text:
        raise ValueError("empty quantity")
    parsed = parse_quantity(text)
    if not parsed.is_finite() or parsed < 0:
        raise ValueError(f"invalid quantity: {value}")
    return int(parsed.to_integral_value(rounding=ROUND_CEILING))


def format_storage_quantity(size: int) -> str:
    """
    将字节数格式化为 Kubernetes 容量字符串

    选择二进制（Gi）或十进制（G）后缀中最短的精确表示，无法精确表示时返回字节数。
    """
    size = int(size)
    if size == 0:
        return "0"

    candidates = []
    for suffixes in (_BINARY_SUFFIXES, _DECIMAL_SUFFIXES):
        for suffix, multiplier in suffixes:
            if size % multiplier == 0:
                candidates.append(f"{size // multiplier}{suffix}")
                break
    candidates.append(str(size))
    # min() keeps the first shortest candidate: binary, then decimal, then plain bytes.
    return min(candidates, key=len)


def round_half_up(value: Union[Fraction, int]) -> int:
    """Round a non-negative rational to the nearest integer, halves away from zero."""
    value = Fraction(value)
    if value < 0:
        return -round_half_up(-value)
    return int(value + Fraction(1, 2))


def parse_percentage(value: str) -> Optional[int]:
    """
    解析百分比字符串

    Returns:
        百分比整数，如 "20%" -> 20；不是百分比时返回 None
    """
    text = str(value).strip()
    if not text.endswith("%"):
        return None
    number = text[:-1]
    if not re.fullmatch(r"[+-]?\d+", number):
        return None
    return int(number)


def parse_duration(value: str) -> timedelta:
    """
    解析 Go 风格时长字符串，如 "90s", "1h30m", "1.5h", "500ms"

    Raises:
        ValueError: 格式不合法
    """
    text = str(value).strip()
    if not text:
        raise ValueError("empty duration")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)

    total = timedelta(0)
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += _DURATION_UNITS[match.group(2)] * float(match.group(1))
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total * sign


def format_duration(value: timedelta) -> str:
    """将时长格式化为 Go 风格字符串，如 "1h30m0s" """
    total = value.total_seconds()
    if total == 0:
        return "0s"

    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)

    out = sign
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    out += f"{seconds:g}s"
    return out


def volume_key(namespace: str, name: str) -> str:
    """资源键，如 "default/pvc-0" """
    return f"{namespace}/{name}"


def safe_dict(obj) -> dict:
    """
    安全地将对象转换为字典

    Returns:
        字典，如果对象为None则返回空字典
    """
    if obj is None:
        return {}
    return dict(obj) if hasattr(obj, '__iter__') else {}
