"""Request-scoped context variables."""

from contextvars import ContextVar

# Context variable for correlation ID - accessible throughout the request lifecycle
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
