"""
``@traced_engine``: one DEBUG record per pure-engine call.

The record is ``PORTFOLIO_ENGINE_TRACE`` with the engine's name and
version, its wall time, and a short fingerprint of the arguments named in
``fingerprint_fields``.  Two calls with equal inputs share a fingerprint,
which is how a recalculation that produced an unexpected status is traced
back to the inputs it saw.  Nothing is computed unless DEBUG is enabled
for ``portfolio_kernel.engines``.
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from portfolio_kernel.logging_config import get_logger
from portfolio_kernel.utils.hashing import canonicalize_json, sha256_hex

F = TypeVar("F", bound=Callable[..., Any])

_logger = get_logger("engines.tracer")

FINGERPRINT_LENGTH = 16


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Hash of the named arguments; absent ones count as None."""
    selected = {name: arguments.get(name) for name in fingerprint_fields}
    try:
        text = canonicalize_json(selected)
    except TypeError:
        text = repr(sorted(selected.items()))
    return sha256_hex(text)[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _logger.isEnabledFor(logging.DEBUG):
                return func(*args, **kwargs)

            fingerprint = ""
            if fingerprint_fields:
                arguments = signature.bind_partial(*args, **kwargs).arguments
                fingerprint = compute_input_fingerprint(fingerprint_fields, arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            _logger.debug(
                "PORTFOLIO_ENGINE_TRACE",
                extra={
                    "trace_type": "PORTFOLIO_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
