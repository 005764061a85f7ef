"""Call-site attribution for wrapped faults."""

import inspect
from dataclasses import dataclass

# Upper bound on how many frames get_caller will walk
MAX_CALLER_DEPTH = 25


class CallerResolutionError(RuntimeError):
    """Raised when the interpreter exposes no frames to inspect."""


@dataclass(frozen=True, slots=True)
class CallSite:
    """Source location a fault was created at."""

    file: str
    line: int
    function: str

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


def get_caller(stacklevel: int = 1) -> CallSite | None:
    """Return the call site ``stacklevel`` frames above the calling function.

    ``stacklevel=1`` is the immediate caller of whoever called this
    function, mirroring :func:`logging.Logger.log`'s ``stacklevel``.

    Args:
        stacklevel: How many frames to step over, counted from the caller.

    Returns:
        The resolved call site, or None when the stack is shallower than
        requested or the walk would exceed MAX_CALLER_DEPTH frames.

    Raises:
        CallerResolutionError: If frame introspection is unavailable.
    """
    frame = inspect.currentframe()
    if frame is None:
        raise CallerResolutionError("unknown caller")

    if stacklevel >= MAX_CALLER_DEPTH:
        return None

    try:
        # Step over get_caller's caller, then the requested levels
        for _ in range(max(stacklevel, 0) + 1):
            frame = frame.f_back
            if frame is None:
                return None

        code = frame.f_code
        module = frame.f_globals.get("__name__", "")
        function = f"{module}.{code.co_qualname}" if module else code.co_qualname
        return CallSite(file=code.co_filename, line=frame.f_lineno, function=function)
    finally:
        # Break the reference cycle between this frame and its locals
        del frame
