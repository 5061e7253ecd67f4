from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar

from alignment_vault.core.errors import VenueUnavailableError

T = TypeVar("T")


def status_tuple(
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, tuple[bool, T | str]]]:
    """Turn a raising coroutine into ``(True, result)`` / ``(False, reason)``.

    An unavailable venue is an expected outcome and only warns; anything else
    is logged as an error on ``self.logger``.
    """

    @wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> tuple[bool, T | str]:
        try:
            return (True, await fn(self, *args, **kwargs))
        except VenueUnavailableError as exc:
            self.logger.warning(f"{fn.__name__}: {exc}")
            return (False, str(exc))
        except Exception as exc:
            self.logger.error(f"Error in {fn.__name__}: {exc}")
            return (False, f"{type(exc).__name__}: {exc}")

    return wrapper  # type: ignore[return-value]
