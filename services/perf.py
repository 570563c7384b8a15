import logging
from contextlib import contextmanager
from datetime import datetime
from time import perf_counter
from typing import Any, Dict, Iterator

logger = logging.getLogger(__name__)


@contextmanager
def time_block(label: str) -> Iterator[Dict[str, Any]]:
    """
    Log start/end wall-clock times and the duration of a sync run.

    Yields a dict that receives "duration_seconds" when the block exits.
    """
    timing: Dict[str, Any] = {"label": label, "started_at": datetime.now().isoformat(timespec="seconds")}
    logger.info(f"[perf] {label} started at {timing['started_at']}")
    start = perf_counter()
    try:
        yield timing
    finally:
        timing["duration_seconds"] = round(perf_counter() - start, 3)
        logger.info(f"[perf] {label} finished in {timing['duration_seconds']:.1f}s")
