"""
workflow_engines.tracer -- WORKFLOW_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine function and emits one DEBUG
    record per call carrying the engine name and version, a fingerprint of
    selected keyword arguments and the call duration.  Two calls with the
    same fingerprint saw the same inputs, which is what makes a refused or
    surprising transition reproducible from the logs.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; logs under ``workflow_kernel.engines.tracer``
    by name so it does not import kernel logging infrastructure.

Usage:
    from workflow_engines.tracer import traced_engine

    @traced_engine("transitions", "1.0", fingerprint_fields=("action",))
    def plan_action(*, action, ...):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, TypeVar

_logger = logging.getLogger("workflow_kernel.engines.tracer")

TRACE_TYPE = "WORKFLOW_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16

F = TypeVar("F", bound=Callable[..., Any])


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def input_fingerprint(fields: tuple[str, ...], kwargs: Mapping[str, Any]) -> str:
    """SHA-256 prefix over the named kwargs.  Absent kwargs hash as null."""
    selected = {name: kwargs.get(name) for name in fields}
    canonical = json.dumps(selected, sort_keys=True, default=_jsonable, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _logger.isEnabledFor(logging.DEBUG):
                return func(*args, **kwargs)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            _logger.debug(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__qualname__,
                    "input_fingerprint": (
                        input_fingerprint(fingerprint_fields, kwargs)
                        if fingerprint_fields else ""
                    ),
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                },
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
