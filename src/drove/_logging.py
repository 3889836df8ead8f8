"""Logging and tracing hooks for drove.

Loggers come from stdlib logging under the 'drove' namespace. Batch loads
are wrapped in a span when a tracer is configured:

    import drove
    drove.configure(tracer=my_opentelemetry_tracer)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Generator


def get_logger(name: str) -> logging.Logger:
    """Get a logger namespaced under 'drove'."""
    return logging.getLogger(f"drove.{name.split('.')[-1]}")


class _NoOpSpan:
    """Stand-in span used when no tracer is configured."""

    def set_attribute(self, _key: str, _value: Any) -> None:
        pass

    def record_exception(self, _exc: BaseException) -> None:
        pass


_tracer: Any = None


def set_tracer(tracer: Any) -> None:
    """Install a global tracer.

    The tracer must support tracer.start_as_current_span(name, attributes={}),
    which matches the OpenTelemetry Tracer interface. Pass None to remove it.
    """
    global _tracer
    _tracer = tracer


def get_tracer() -> Any:
    return _tracer


@contextmanager
def span(name: str, **attributes: Any) -> Generator[Any, None, None]:
    """Open a tracing span if a tracer is configured, else a no-op span.

    Exceptions raised inside the block always propagate to the caller; only
    failures of the tracer itself fall back to the no-op span.
    """
    if _tracer is None:
        yield _NoOpSpan()
        return

    try:
        cm = _tracer.start_as_current_span(name, attributes=attributes)
        s = cm.__enter__()
    except Exception as e:
        logging.getLogger("drove.tracing").debug("Tracer failed to open span", extra={"span": name, "error": str(e)})
        yield _NoOpSpan()
        return

    try:
        yield s
    except BaseException as exc:
        if not cm.__exit__(type(exc), exc, exc.__traceback__):
            raise
    else:
        cm.__exit__(None, None, None)
