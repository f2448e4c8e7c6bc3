# ==================================================
# ========  MODULE: decorators & timing utils  =====
# ==================================================
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Tuple, TypeVar

from ndvision.utils.logger import get_logger, get_error_logger

# Public API
__all__ = ["TimerManager", "log_exceptions"]

F = TypeVar("F", bound=Callable[..., Any])


# ====[ Timing manager for cumulative profiling ]====
class TimerManager:
    """
    Lightweight utility for tracking cumulative timing statistics for named tasks.

    Stores the total elapsed time and the number of occurrences for each
    label, e.g. the stages of one Canny run.
    """

    def __init__(self) -> None:
        self.stats: Dict[str, Dict[str, float]] = {}

    def add(self, name: str, elapsed: float) -> None:
        """
        Add an elapsed time entry for a given task name.

        Parameters
        ----------
        name : str
            Identifier for the timed task (e.g., "smoothing", "hysteresis").
        elapsed : float
            Duration in seconds.
        """
        info = self.stats.setdefault(name, {"total": 0.0, "count": 0})
        info["total"] = float(info["total"]) + float(elapsed)
        info["count"] = int(info["count"]) + 1

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Time the enclosed block under `name` (recorded even if it raises)."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.add(name, time.perf_counter() - start)

    def to_dict(self, digits: int = 3) -> Dict[str, Dict[str, float]]:
        """
        Timing statistics as {"name": {"total", "count", "avg"}}.

        Parameters
        ----------
        digits : int, optional
            Number of decimal places to round the results. Default is 3.
        """
        out: Dict[str, Dict[str, float]] = {}
        for name, info in self.stats.items():
            total = float(info["total"])
            count = int(info["count"])
            avg = total / count if count > 0 else 0.0
            out[name] = {"total": round(total, digits), "count": float(count), "avg": round(avg, digits)}
        return out

    def to_list(
        self,
        sort_by: Literal["total", "avg"] = "total",
        descending: bool = True,
        digits: int = 3,
    ) -> List[Tuple[str, int, float, float]]:
        """Return (name, count, total, avg) tuples sorted by `sort_by`."""
        rows: List[Tuple[str, int, float, float]] = []
        for name, info in self.stats.items():
            count = int(info["count"])
            total = round(float(info["total"]), digits)
            avg = round((float(info["total"]) / count) if count > 0 else 0.0, digits)
            rows.append((name, count, total, avg))
        key_idx = 2 if sort_by == "total" else 3
        rows.sort(key=lambda x: x[key_idx], reverse=descending)
        return rows

    def to_log(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO, digits: int = 4) -> None:
        """Emit one record per label, in insertion (stage) order."""
        logger = logger or get_logger()
        for name, info in self.to_dict(digits=digits).items():
            logger.log(
                level,
                f"[timing] {name}: {info['total']}s over {int(info['count'])} run(s), {info['avg']}s avg",
            )


# ====[ Exception logger decorator ]====
def log_exceptions(
    logger_name: str = "ndvision.errors",
    raise_exception: bool = True,
) -> Callable[[F], F]:
    """
    Log exceptions raised by the wrapped function.

    Parameters
    ----------
    logger_name : str, default 'ndvision.errors'
        Name used to get the error logger.
    raise_exception : bool, default True
        If True, re-raise the exception unchanged after logging; otherwise
        the wrapper returns None.

    Returns
    -------
    Callable
        A decorator that logs exceptions and optionally re-raises.
    """
    error_logger = get_error_logger(name=logger_name)

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                error_logger.error(f"Exception in '{func.__name__}': {e}", exc_info=True)
                if raise_exception:
                    raise
                return None
        return wrapper  # type: ignore[return-value]
    return decorator
