"""
Concurrency helpers for the analytics pipeline: cancellation, progress and fan-out.
"""
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable, Iterator, Optional, Tuple

from app.models.analytics import ComputationStage
from app.services.errors import ComputationCancelled

logger = logging.getLogger("app.concurrency")

ProgressCallback = Callable[[ComputationStage, int], None]

# Seconds between cancellation checks while waiting on running calls
CANCEL_POLL_INTERVAL = 0.1


class CancellationToken:
    """Cooperative cancellation flag shared by one computation."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ComputationCancelled(self.reason or "cancelled")


class ProgressReporter:
    """
    Forwards progress to a callback, never letting the percentage go down.

    Safe to call from worker threads.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.stage: Optional[ComputationStage] = None
        self.progress = 0
        self._lock = threading.Lock()

    def report(self, stage: ComputationStage, percent: Optional[int] = None) -> None:
        percent = stage.checkpoint if percent is None else int(percent)
        with self._lock:
            if percent < self.progress:
                percent = self.progress
            self.stage = stage
            self.progress = percent
            if self.callback is None:
                return
            try:
                self.callback(stage, percent)
            except Exception as e:
                logger.warning(f"Progress callback failed at {stage.value} {percent}%: {e}")

    def report_fraction(self, stage: ComputationStage, done: int, total: int, start: int, end: int) -> None:
        """Scale ``done/total`` into the ``start``..``end`` percent range."""
        if total <= 0:
            self.report(stage, end)
            return
        self.report(stage, start + int((end - start) * min(done, total) / total))


def _guarded(func: Callable[[Any], Any], item: Any, cancel_token: Optional[CancellationToken]) -> Any:
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()
    return func(item)


def fan_out(
    func: Callable[[Any], Any],
    items: Iterable[Any],
    max_workers: int,
    cancel_token: Optional[CancellationToken] = None,
) -> Iterator[Tuple[Any, Any, Optional[Exception]]]:
    """
    Run ``func`` over ``items`` on a bounded thread pool.

    Yields ``(item, result, error)`` in completion order; a failing item yields
    its exception instead of aborting the others. Cancellation stops pending
    work and raises ComputationCancelled within ``CANCEL_POLL_INTERVAL``
    seconds, without waiting for calls already running.
    """
    items = list(items)
    if not items:
        return

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items))), thread_name_prefix="analytics")
    cancelled = False
    try:
        futures = {executor.submit(_guarded, func, item, cancel_token): item for item in items}
        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_COMPLETED)
            for future in done:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()

                item = futures[future]
                error = None
                result = None
                try:
                    result = future.result()
                except ComputationCancelled:
                    raise
                except Exception as e:
                    error = e

                yield item, result, error

            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
    except ComputationCancelled:
        cancelled = True
        raise
    finally:
        # Abandoned calls finish on their worker threads
        executor.shutdown(wait=not cancelled, cancel_futures=True)
