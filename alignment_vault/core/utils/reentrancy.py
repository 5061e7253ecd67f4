from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any

from alignment_vault.core.errors import ReentrancyError

_LOCK_ATTR = "_reentrancy_entered"


def nonreentrant(fn: Callable) -> Callable:
    """Reject a guarded coroutine while any guarded coroutine on ``self`` is running.

    All guarded methods of one object share a single lock, so a receive hook
    that calls back into ``claim_fees`` during ``convert_and_add_liquidity``
    fails the same way a direct recursive call does.
    """

    @functools.wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        if getattr(self, _LOCK_ATTR, False):
            raise ReentrancyError(fn.__name__)
        setattr(self, _LOCK_ATTR, True)
        try:
            return await fn(self, *args, **kwargs)
        finally:
            setattr(self, _LOCK_ATTR, False)

    return wrapper
