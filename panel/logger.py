import functools
import gzip
import inspect
import logging
import logging.handlers
import os
import shutil
import sys
from pathlib import Path
from typing import Callable, ParamSpec, TypeVar

from .config import settings

logger = logging.getLogger("panel")
logger.setLevel(logging.DEBUG)
formatter = logging.Formatter(
    "%(asctime)s %(levelname)s [%(module)s:%(funcName)s:%(lineno)d] %(message)s"
)


def gzip_rotator(source: str, dest: str) -> None:
    """Compress a rotated log file and drop the uncompressed copy."""
    with open(source, "rb") as f_in, gzip.open(dest + ".gz", "wb") as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


def _install_handlers(logs_dir: Path) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.TimedRotatingFileHandler(
        logs_dir / "panel.log", when="midnight"
    )
    file_handler.setFormatter(formatter)
    file_handler.rotator = gzip_rotator
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)


_install_handlers(Path(settings.logs_dir))


P = ParamSpec("P")
R = TypeVar("R")


def log_exception(
    prefix: str = "",
    default_return: R | None = None,
    level: int = logging.ERROR,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for best-effort calls: log any exception and return a fallback.

    The prefix may reference the wrapped function's parameters by name, e.g.
    ``@log_exception("node {node.id}")``. Works for sync and async functions.

    Args:
        prefix: Text prepended to the logged message
        default_return: Value returned instead of raising
        level: Logging level used for the failure record
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        sig = inspect.signature(func)

        def describe(args: tuple, kwargs: dict, e: Exception) -> str:
            text = prefix
            if "{" in prefix:
                try:
                    bound = sig.bind(*args, **kwargs)
                    bound.apply_defaults()
                    text = prefix.format_map(bound.arguments)
                except (TypeError, KeyError, AttributeError, ValueError):
                    pass
            head = f"{text}: " if text else ""
            return f"{head}{type(e).__name__}: {e}"

        def report(args: tuple, kwargs: dict, e: Exception) -> None:
            logger.log(
                level,
                describe(args, kwargs, e),
                exc_info=level >= logging.ERROR,
                stacklevel=3,
            )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    report(args, kwargs, e)
                    return default_return  # type: ignore[return-value]

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                report(args, kwargs, e)
                return default_return  # type: ignore[return-value]

        return sync_wrapper

    return decorator
