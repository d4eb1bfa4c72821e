import secrets
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional, TypeVar, cast

from resotoaurora.logger import log
from resotoaurora.types import JsonElement

DecoratedFn = TypeVar("DecoratedFn", bound=Callable[..., Any])


def utc() -> datetime:
    return datetime.now(timezone.utc)


def utc_str(dt: Optional[datetime] = None) -> str:
    dt = dt or utc()
    if dt.tzinfo is not None and dt.tzname() != "UTC":
        offset = dt.tzinfo.utcoffset(dt)
        if offset is not None and offset.total_seconds() != 0:
            dt = (dt - offset).replace(tzinfo=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def rnd_hex(byte_length: int = 8) -> str:
    return secrets.token_hex(byte_length)


def ordinal(num: int) -> str:
    suffix = "tsnrhtdd"[(num // 10 % 10 != 1) * (num % 10 < 4) * num % 10 :: 4]  # noqa: E203
    return f"{num}{suffix}"


def value_in_path(element: JsonElement, path: str) -> Optional[Any]:
    """
    Walk a dot separated path into a json element: value_in_path({"a": {"b": 1}}, "a.b") == 1
    """
    result: Any = element
    for part in path.split("."):
        if isinstance(result, dict):
            result = result.get(part)
        else:
            return None
    return result


def log_runtime(f: DecoratedFn) -> DecoratedFn:
    @wraps(f)
    def timer(*args, **kwargs):
        start = time.time()
        ret = f(*args, **kwargs)
        runtime = time.time() - start
        log.debug2(f"Runtime of {f.__name__}: {runtime:.3f} seconds")  # type: ignore
        return ret

    return cast(DecoratedFn, timer)
