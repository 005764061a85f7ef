"""Core fault boundary: faults, middleware and logging."""

from faultline.core.caller import CallSite, CallerResolutionError, get_caller
from faultline.core.context import correlation_id_var
from faultline.core.exceptions import (
    FaultEncodeError,
    FaultlineError,
    HTTPFault,
    RequestAborted,
    new_fault,
    render_fault,
    wrap_fault,
)
from faultline.core.middleware import (
    CorrelationIdMiddleware,
    RecoveryMiddleware,
    RequestLoggingMiddleware,
    install_fault_boundary,
)

__all__ = [
    "CallSite",
    "CallerResolutionError",
    "CorrelationIdMiddleware",
    "FaultEncodeError",
    "FaultlineError",
    "HTTPFault",
    "RecoveryMiddleware",
    "RequestAborted",
    "RequestLoggingMiddleware",
    "correlation_id_var",
    "get_caller",
    "install_fault_boundary",
    "new_fault",
    "render_fault",
    "wrap_fault",
]
