# src/sms_hub/core/queue.py

from __future__ import annotations

"""
In-process task queue.

Callers submit an async callable plus its arguments and get back an
asyncio.Future. The queue:
- orders pending work by priority (higher first, FIFO among equals),
- runs at most `concurrency` tasks at a time,
- retries failed tasks after `retry_delay` seconds, up to `max_retries` attempts,
- supports pause / stop / clear for the whole queue (no per-task cancel).

Each task moves through explicit phases driven by one dispatch loop:

    pending -> executing -> resolved
                         -> awaiting_retry -> pending
                         -> rejected

Everything runs on a single event loop. The dispatch loop never awaits, so
counters cannot change under it.
"""

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import (
    QueueClearedError,
    QueueStoppedError,
    QueueUnavailableError,
    TaskCancelledError,
)

logger = logging.getLogger(__name__)

TaskFunction = Callable[..., Awaitable[Any]]


class QueueState(StrEnum):
    IDLE = "idle"  # nothing queued or running
    RUNNING = "running"  # dispatching
    PAUSED = "paused"  # not dispatching; in-flight tasks continue
    STOPPED = "stopped"  # terminal; rejects new work


class TaskPhase(StrEnum):
    PENDING = "pending"
    EXECUTING = "executing"
    AWAITING_RETRY = "awaiting_retry"
    RESOLVED = "resolved"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class QueueOptions:
    concurrency: int = 5
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds
    name: str = "default-queue"
    log_errors: bool = True


@dataclass(slots=True)
class QueueTask:
    id: str
    fn: TaskFunction
    args: tuple[Any, ...]
    priority: int
    future: asyncio.Future[Any]
    attempts: int = 0
    phase: TaskPhase = TaskPhase.PENDING
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None


@dataclass(frozen=True, slots=True)
class QueueStats:
    """Point-in-time snapshot for diagnostics. Not authoritative."""

    state: QueueState
    queued: int
    active: int
    capacity: int
    name: str


def _new_task_id() -> str:
    return f"task-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


def _runner_cancelling() -> bool:
    """True when the runner task itself, not something it awaited, is being cancelled."""
    current = asyncio.current_task()
    return current is not None and current.cancelling() > 0


class TaskQueue:
    def __init__(self, options: QueueOptions | None = None) -> None:
        self._options = options or QueueOptions()
        if self._options.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self._pending: list[QueueTask] = []
        self._active = 0
        self._state = QueueState.IDLE
        # Strong refs to runner tasks so they are not garbage-collected mid-flight.
        self._runners: set[asyncio.Task[None]] = set()

        logger.debug(
            "Queue %r created (concurrency=%d, max_retries=%d, retry_delay=%.2fs)",
            self._options.name,
            self._options.concurrency,
            self._options.max_retries,
            self._options.retry_delay,
        )

    # ---- introspection ----

    @property
    def options(self) -> QueueOptions:
        return self._options

    @property
    def name(self) -> str:
        return self._options.name

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def active_count(self) -> int:
        return self._active

    def stats(self) -> QueueStats:
        return QueueStats(
            state=self._state,
            queued=len(self._pending),
            active=self._active,
            capacity=self._options.concurrency,
            name=self._options.name,
        )

    # ---- submission ----

    def add(
        self,
        fn: TaskFunction,
        args: Iterable[Any] = (),
        priority: int = 0,
    ) -> asyncio.Future[Any]:
        """
        Queue `fn(*args)` and return a future for its result.

        The task does not run until the queue is started (see submit()).
        A stopped queue returns an already-failed future and leaves the
        pending list untouched.
        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        if self._state is QueueState.STOPPED:
            future.set_exception(
                QueueUnavailableError(
                    f"Queue {self._options.name!r} is stopped and does not accept new tasks"
                )
            )
            return future

        task = QueueTask(
            id=_new_task_id(),
            fn=fn,
            args=tuple(args),
            priority=int(priority),
            future=future,
        )
        self._insert(task)

        logger.debug(
            "Task %s added to queue %r (priority=%d, queued=%d)",
            task.id,
            self._options.name,
            task.priority,
            len(self._pending),
        )

        if self._state is QueueState.RUNNING and self._active < self._options.concurrency:
            self._process()

        return future

    def submit(self, fn: TaskFunction, *args: Any, priority: int = 0) -> asyncio.Future[Any]:
        """add() and start an idle queue, so the caller can simply await the result."""
        future = self.add(fn, args, priority)
        if self._state is QueueState.IDLE:
            self.start()
        return future

    def _insert(self, task: QueueTask) -> None:
        # Insert before the first task with strictly lower priority: equal
        # priorities keep arrival order.
        index = len(self._pending)
        for i, queued in enumerate(self._pending):
            if task.priority > queued.priority:
                index = i
                break
        task.phase = TaskPhase.PENDING
        self._pending.insert(index, task)

    # ---- lifecycle ----

    def start(self) -> None:
        if self._state is QueueState.STOPPED:
            logger.warning("Queue %r is stopped and cannot be started again", self._options.name)
            return
        self._state = QueueState.RUNNING
        logger.info("Queue %r started", self._options.name)
        self._process()

    def pause(self) -> None:
        if self._state is not QueueState.RUNNING:
            return
        self._state = QueueState.PAUSED
        logger.info("Queue %r paused", self._options.name)

    def stop(self) -> None:
        """Stop for good: reject pending tasks, let in-flight tasks finish."""
        was_stopped = self._state is QueueState.STOPPED
        self._state = QueueState.STOPPED
        rejected = self._reject_pending(
            lambda: QueueStoppedError(
                f"Queue {self._options.name!r} was stopped; the task will not run"
            )
        )
        if was_stopped:
            logger.debug("Queue %r already stopped (%d task(s) rejected)", self._options.name, rejected)
        else:
            logger.info("Queue %r stopped, %d pending task(s) rejected", self._options.name, rejected)

    def clear(self) -> None:
        """Reject pending tasks but keep the queue usable."""
        rejected = self._reject_pending(
            lambda: QueueClearedError(
                f"Queue {self._options.name!r} was cleared; the task will not run"
            )
        )
        logger.info("Queue %r cleared, %d pending task(s) rejected", self._options.name, rejected)
        self._process()

    async def join(self) -> None:
        """Wait until no task is executing or waiting for a retry."""
        while self._runners:
            await asyncio.gather(*list(self._runners), return_exceptions=True)

    def _reject_pending(self, make_error: Callable[[], Exception]) -> int:
        tasks, self._pending = self._pending, []
        for task in tasks:
            self._reject(task, make_error())
        return len(tasks)

    # ---- dispatch ----

    def _process(self) -> None:
        if self._state is not QueueState.RUNNING:
            return

        loop = asyncio.get_running_loop()
        while self._pending and self._active < self._options.concurrency:
            task = self._pending.pop(0)
            if task.future.done():
                # Caller gave up on the handle (cancelled it); nothing to deliver to.
                logger.debug("Task %s dropped: result handle already settled", task.id)
                continue

            self._active += 1
            task.started_at = time.time()
            task.attempts += 1
            task.phase = TaskPhase.EXECUTING

            logger.debug(
                "Task %s started in queue %r (attempt %d)",
                task.id,
                self._options.name,
                task.attempts,
            )

            runner = loop.create_task(self._execute(task))
            self._runners.add(runner)
            runner.add_done_callback(self._runners.discard)

        if self._active == 0 and not self._pending:
            self._state = QueueState.IDLE
            logger.debug("Queue %r is idle", self._options.name)

    async def _execute(self, task: QueueTask) -> None:
        try:
            result = task.fn(*task.args)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError as exc:
            self._on_cancelled(task, exc)
            if _runner_cancelling():
                raise
            return
        except Exception as exc:
            await self._on_failure(task, exc)
            return

        self._active -= 1
        task.phase = TaskPhase.RESOLVED
        if not task.future.done():
            task.future.set_result(result)
        logger.debug(
            "Task %s completed in queue %r (attempt %d)",
            task.id,
            self._options.name,
            task.attempts,
        )
        self._process()

    async def _on_failure(self, task: QueueTask, exc: Exception) -> None:
        opts = self._options
        if opts.log_errors:
            logger.error(
                "Task %s failed in queue %r (attempt %d/%d): %s",
                task.id,
                opts.name,
                task.attempts,
                opts.max_retries,
                exc,
            )

        if task.attempts < opts.max_retries:
            # Still counted as active while waiting; invisible to the pending list.
            task.phase = TaskPhase.AWAITING_RETRY
            logger.debug("Task %s will retry in %.2fs", task.id, opts.retry_delay)
            try:
                await asyncio.sleep(opts.retry_delay)
            except asyncio.CancelledError as cancel:
                self._on_cancelled(task, cancel)
                raise

            self._active -= 1
            if self._state is QueueState.STOPPED:
                self._reject(
                    task,
                    QueueStoppedError(
                        f"Queue {opts.name!r} was stopped; the task will not be retried"
                    ),
                )
            else:
                self._insert(task)
            self._process()
            return

        self._active -= 1
        logger.warning(
            "Task %s rejected in queue %r after %d attempt(s): %s",
            task.id,
            opts.name,
            task.attempts,
            exc,
        )
        self._reject(task, exc)
        self._process()

    def _on_cancelled(self, task: QueueTask, exc: asyncio.CancelledError) -> None:
        # Not retried: the slot is released and the handle settles right away.
        self._active -= 1
        logger.warning(
            "Task %s cancelled in queue %r (attempt %d)",
            task.id,
            self._options.name,
            task.attempts,
        )
        error = TaskCancelledError(f"Task {task.id} was cancelled in queue {self._options.name!r}")
        error.__cause__ = exc
        self._reject(task, error)
        self._process()

    @staticmethod
    def _reject(task: QueueTask, exc: BaseException) -> None:
        task.phase = TaskPhase.REJECTED
        if not task.future.done():
            task.future.set_exception(exc)
