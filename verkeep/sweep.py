"""Bounded parallel fan-out over coordinates with per-item failure capture."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed
from typing import Callable, Dict, Iterable, Optional

from .models import ItemResult, MetadataEventResponse, ProjectVersionCoordinate

logger = logging.getLogger(__name__)

SweepTask = Callable[[ProjectVersionCoordinate], ItemResult]


def run_sweep(
    name: str,
    coordinates: Iterable[ProjectVersionCoordinate],
    task: SweepTask,
    max_workers: int,
    timeout_seconds: Optional[float] = None,
) -> MetadataEventResponse:
    """Run ``task`` for every coordinate on a bounded thread pool.

    A task that raises is recorded as ``failed`` under its coordinate and the
    sweep carries on. When ``timeout_seconds`` elapses, work not yet started
    is cancelled and the response holds whatever finished in time.
    """
    response = MetadataEventResponse()
    pending = list(dict.fromkeys(coordinates))
    if not pending:
        logger.info(f"{name}: nothing to process")
        return response

    logger.info(f"{name}: started for {len(pending)} coordinates")
    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
    futures: Dict[Future, ProjectVersionCoordinate] = {}
    try:
        futures = {executor.submit(task, coordinate): coordinate for coordinate in pending}
        for future in as_completed(futures, timeout=timeout_seconds):
            _collect(name, response, futures[future], future)
    except FuturesTimeoutError:
        for future, coordinate in futures.items():
            if future.done() and coordinate not in response.results and not future.cancelled():
                _collect(name, response, coordinate, future)
        abandoned = len(pending) - response.attempted
        message = f"{name} timed out after {timeout_seconds}s, abandoned {abandoned} coordinates"
        logger.warning(message)
        response.add_message(message)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    logger.info(
        f"{name}: completed, attempted={response.attempted} "
        f"succeeded={response.succeeded} failed={response.failed}"
    )
    return response


def _collect(
    name: str,
    response: MetadataEventResponse,
    coordinate: ProjectVersionCoordinate,
    future: Future,
) -> None:
    try:
        result = future.result()
    except Exception as exc:
        logger.error(f"{name}: error processing {coordinate}: {exc}")
        result = ItemResult.from_error(exc)
    response.add_result(coordinate, result)
