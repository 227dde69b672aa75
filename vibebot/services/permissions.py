from __future__ import annotations

from functools import wraps
from typing import Any, Awaitable, Callable, Iterable

from ..utils.errors import PermissionDenied


def is_operator_chat(chat_id: int, admin_chat_ids: Iterable[int]) -> bool:
    """Any chat is trusted when no admin chat is configured."""
    allowed = {int(x) for x in admin_chat_ids}
    return not allowed or chat_id in allowed


def require_operator(func: Callable[..., Awaitable[Any]]):
    """Guard a command handler method taking ``(self, chat_id, ...)``."""

    @wraps(func)
    async def wrapper(self, chat_id: int, *args, **kwargs):
        if not is_operator_chat(chat_id, self.config.admin_chat_ids):
            raise PermissionDenied(f"chat_id={chat_id} is not an operator chat")
        return await func(self, chat_id, *args, **kwargs)

    return wrapper
