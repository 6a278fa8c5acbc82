from __future__ import annotations

import logging
import queue
import sys
import threading
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.progress_event import ProgressEvent, ProgressPhase

"""Progress reporting.

- ProgressHub / ProgressChannel / Subscription: per-job publish/subscribe.
  A channel is opened at dry-run time and torn down right after its
  terminal event (complete | error) is delivered. Publication never blocks
  on subscribers (unbounded per-subscriber queues) and late subscribers do
  not get earlier events replayed.
- ProgressTracker: tqdm progress bar for the CLI (TTY only).
"""

__all__ = [
    "is_tty_enabled",
    "Subscription",
    "ProgressChannel",
    "ProgressHub",
    "ProgressTracker",
]

logger = logging.getLogger(__name__)

_CLOSED = object()


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class Subscription:
    """Iterator over one subscriber's events.

    Iteration ends after the first terminal event, when the channel closes,
    or after ``timeout`` seconds without an event (``timed_out`` is then True).
    """

    def __init__(self, channel: ProgressChannel, timeout: float | None = None) -> None:
        self._channel = channel
        self._queue: queue.Queue[Any] = queue.Queue()
        self.timeout = timeout
        self.timed_out = False
        self._finished = False

    @property
    def job_id(self) -> str:
        return self._channel.job_id

    def deliver(self, item: Any) -> None:
        self._queue.put_nowait(item)

    def __iter__(self) -> Subscription:
        return self

    def __next__(self) -> ProgressEvent:
        if self._finished:
            raise StopIteration
        try:
            item = self._queue.get(timeout=self.timeout)
        except queue.Empty:
            logger.warning(f"progress subscription timed out job_id={self.job_id}")
            self.timed_out = True
            self.close()
            raise StopIteration from None
        if item is _CLOSED:
            self.close()
            raise StopIteration
        if item.is_terminal:
            self.close()
        return item

    def close(self) -> None:
        if not self._finished:
            self._finished = True
            self._channel.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class ProgressChannel:
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.closed = False
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, timeout: float | None = None) -> Subscription:
        subscription = Subscription(self, timeout=timeout)
        with self._lock:
            if self.closed:
                subscription.deliver(_CLOSED)
            else:
                self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            if self.closed:
                logger.debug(f"publish on closed channel job_id={self.job_id} phase={event.phase.value}")
                return
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.deliver(event)

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for subscription in subscribers:
            subscription.deliver(_CLOSED)


class ProgressHub:
    """Registry of per-job progress channels."""

    def __init__(self) -> None:
        self._channels: dict[str, ProgressChannel] = {}
        self._lock = threading.Lock()

    def open(self, job_id: str) -> ProgressChannel:
        with self._lock:
            channel = self._channels.get(job_id)
            if channel is None:
                channel = ProgressChannel(job_id)
                self._channels[job_id] = channel
            return channel

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._channels

    def publish(self, job_id: str, event: ProgressEvent) -> None:
        with self._lock:
            channel = self._channels.get(job_id)
        if channel is None:
            logger.debug(f"no progress channel job_id={job_id} phase={event.phase.value}")
            return
        channel.publish(event)
        if event.is_terminal:
            self.close(job_id)

    def subscribe(self, job_id: str, timeout: float | None = None) -> Subscription:
        with self._lock:
            channel = self._channels.get(job_id)
        if channel is None:
            raise KeyError(job_id)
        return channel.subscribe(timeout=timeout)

    def close(self, job_id: str) -> None:
        with self._lock:
            channel = self._channels.pop(job_id, None)
        if channel is not None:
            channel.close()


class ProgressTracker:
    """tqdm progress bar over imported records, fed by ProgressEvents.

    In non-TTY environments (CI) the bar is disabled to avoid ANSI control
    sequence spam.
    """

    def __init__(self, total_records: int = 0, *, description: str = "Importing") -> None:
        self.total_records = total_records
        self.description = description
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_records,
                desc=description,
                unit="record",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def update_from_event(self, event: ProgressEvent) -> None:
        if event.total and event.total != self.total_records:
            self.total_records = event.total
            if self.pbar is not None:
                self.pbar.total = event.total
        if self.pbar is None:
            return
        if event.phase is ProgressPhase.IMPORTING and event.table:
            self.pbar.set_description(f"{self.description} ({event.table})")
        elif event.phase is ProgressPhase.PARSING and event.sheet:
            self.pbar.set_description(f"Parsing ({event.sheet})")
        elif event.phase is ProgressPhase.COMPLETE:
            self.pbar.set_description(self.description)
        delta = event.current - self.pbar.n
        if delta > 0:
            self.pbar.update(delta)
        self.pbar.set_postfix(warnings=event.warnings)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
