from time import perf_counter
from typing import Any, Awaitable, Callable, Optional


async def timed_call(
    logger,
    operation: str,
    fn: Callable[..., Awaitable[Any]],
    *args,
    log_level: str = "info",
    warn_threshold_ms: Optional[float] = None,
    **kwargs,
) -> Any:
    """Await `fn(*args, **kwargs)` and log its duration and outcome."""
    started = perf_counter()
    try:
        result = await fn(*args, **kwargs)
    except Exception as exc:
        elapsed_ms = (perf_counter() - started) * 1000
        logger.error(
            f"[timing] operation={operation} duration_ms={elapsed_ms:.2f} status=error error={exc.__class__.__name__}",
        )
        raise

    elapsed_ms = (perf_counter() - started) * 1000
    level_to_use = "warning" if warn_threshold_ms is not None and elapsed_ms >= warn_threshold_ms else log_level
    getattr(logger, level_to_use)(
        f"[timing] operation={operation} duration_ms={elapsed_ms:.2f} status=ok",
    )
    return result
