import uuid
from contextvars import ContextVar
from typing import Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_context.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_context.set(request_id)


def ensure_request_id(request_id: Optional[str] = None) -> str:
    """Bind the given request ID (or a fresh one) to the current context and return it."""
    request_id = request_id or get_request_id() or str(uuid.uuid4())
    request_id_context.set(request_id)
    return request_id
