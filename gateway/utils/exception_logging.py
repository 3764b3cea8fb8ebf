"""
Helpers for logging transport failures with their full cause chain.

httpx wraps the socket-level error (``ConnectionRefusedError``,
``ssl.SSLError``, ...) as the cause of its own exception, and the gateway in
turn wraps the httpx exception. The interesting part is usually at the bottom
of that chain, so these helpers walk it.
"""

import logging
from typing import List, Optional


def _safe_str(obj) -> str:
    """str() that never raises, falling back to repr and then the type name."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def exception_chain(exception: Optional[BaseException], limit: int = 10) -> List[BaseException]:
    """
    Return ``exception`` followed by its causes, outermost first.

    Explicit causes (``raise ... from``) win over implicit context. Cycles
    and overly long chains are cut at ``limit`` entries.
    """
    chain: List[BaseException] = []
    seen = set()
    current = exception
    while current is not None and id(current) not in seen and len(chain) < limit:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    One-line description of an exception and its causes.

    >>> format_exception_message(ValueError("bad"))
    'ValueError: bad'
    """
    if exception is None:
        return "None"
    parts = []
    for exc in exception_chain(exception):
        text = _safe_str(exc)
        name = type(exc).__name__
        parts.append(f"{name}: {text}" if text else name)
    return " <- ".join(parts)


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Optional[BaseException],
    level: int = logging.ERROR,
    exc_info: bool = False,
) -> None:
    """
    Log ``exception`` with its cause chain on one line.

    Tracebacks are only attached when ``exc_info`` is set; expected
    transport failures (refused connections, timeouts) do not need them.
    """
    message = f"{prefix} {format_exception_message(exception)}"
    try:
        logger.log(level, message, exc_info=exception if exc_info else None)
    except Exception:
        logger.log(level, f"{prefix} (exception logging failed)")
