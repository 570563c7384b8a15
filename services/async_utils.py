import asyncio
from typing import Any, Callable, Iterable, List


async def map_in_threads(func: Callable[[Any], Any], items: Iterable[Any], max_concurrency: int = 5) -> List[Any]:
    """
    Run a blocking single-argument 'func' over items concurrently using
    asyncio.to_thread, bounded by max_concurrency. Results keep input order.
    """
    sem = asyncio.Semaphore(max(1, max_concurrency))

    async def _run_one(item: Any) -> Any:
        async with sem:
            return await asyncio.to_thread(func, item)

    tasks = [asyncio.create_task(_run_one(item)) for item in items]
    return list(await asyncio.gather(*tasks))


def run_concurrently(func: Callable[[Any], Any], items: Iterable[Any], max_concurrency: int = 5) -> List[Any]:
    """Blocking entry point for sync callers: fan out, then join."""
    items = list(items)
    if not items:
        return []
    return asyncio.run(map_in_threads(func, items, max_concurrency=max_concurrency))
