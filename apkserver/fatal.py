"""Process-level error boundary.

Any error that escapes every handler leaves the process in an unknown
state, so it is logged and the process exits with status 1. Restarting is
left to the process manager.
"""

import asyncio
import logging
import os
import sys
import threading
from typing import Any, Dict, Optional

from common.logging_config import get_logger

logger = get_logger(__name__)

EXIT_FAILURE = 1


def _terminate(exit_code: int) -> None:
    logging.shutdown()
    os._exit(exit_code)


def fail_fast(origin: str, exc: BaseException) -> None:
    """
    Log an unrecoverable error and terminate the process.

    Args:
        origin: Where the error surfaced (used in the log line)
        exc: The escaped exception
    """
    logger.critical(f"{origin}: {exc!r}", exc_info=(type(exc), exc, exc.__traceback__))
    _terminate(EXIT_FAILURE)


def _loop_exception_handler(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    exc = context.get("exception")
    if exc is None:
        loop.default_exception_handler(context)
        return
    fail_fast(f"unhandled async error ({context.get('message', 'no message')})", exc)


def _excepthook(exc_type, exc, tb) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc, tb)
        return
    fail_fast("uncaught exception", exc)


def _thread_excepthook(args: threading.ExceptHookArgs) -> None:
    if args.exc_type is SystemExit:
        return
    name = args.thread.name if args.thread is not None else "unknown"
    fail_fast(f"uncaught exception in thread {name}", args.exc_value)


def install_loop_handler(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """
    Route exceptions nobody awaited (failed tasks, callbacks) to fail_fast.

    Args:
        loop: Loop to install on. Defaults to the running loop
    """
    if loop is None:
        loop = asyncio.get_running_loop()
    loop.set_exception_handler(_loop_exception_handler)


def install_process_hooks() -> None:
    """Route uncaught exceptions of the main thread and worker threads to fail_fast."""
    sys.excepthook = _excepthook
    threading.excepthook = _thread_excepthook
