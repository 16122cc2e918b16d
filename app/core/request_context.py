"""Request and user context for log correlation."""

from contextvars import ContextVar
from typing import Optional

# Context variables for the current request and authenticated user
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[int]] = ContextVar("user_id", default=None)


def set_request_id(request_id: str | None) -> None:
    """Set the current request ID."""
    request_id_var.set(request_id)


def get_request_id() -> str | None:
    """Get the current request ID."""
    return request_id_var.get()


def set_user_context(user_id: int | None) -> None:
    """Set the current user context.

    Args:
        user_id: Authenticated user ID to set in context
    """
    user_id_var.set(user_id)


def get_user_context() -> int | None:
    """Get the current user context.

    Returns:
        Current user ID or None
    """
    return user_id_var.get()


def clear_user_context() -> None:
    """Clear the current user context."""
    user_id_var.set(None)
