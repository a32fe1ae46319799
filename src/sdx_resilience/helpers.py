from __future__ import annotations

from collections.abc import Callable


def describe_callable(func: Callable[..., object]) -> str:
    """Return a readable name for ``func`` suitable for log fields."""
    callable_name = getattr(func, "__qualname__", None)
    if callable_name is None:
        callable_name = getattr(func, "__name__", None)
    if callable_name is None:
        callable_name = func.__class__.__qualname__
    return str(callable_name)
