"""Delayed tasks for the dialogue engine.

Timers never touch dialogue state themselves: when a task comes due the
scheduler posts a TimerFired event, and the engine handles it on its own
thread. The engine calls consume() first, so a task that was cancelled
after its timer already fired is still ignored.
"""

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from satela.utils import satela_log


@dataclass(frozen=True)
class TimerFired:
    """Posted to the engine when a scheduled task comes due."""
    task_id: int
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScheduledTask:
    task_id: int
    kind: str
    delay: float
    due: float
    payload: Dict[str, Any] = field(default_factory=dict)
    timer: Optional[threading.Timer] = None


class Scheduler:
    """Base scheduler: bookkeeping of pending tasks, cancellable as a unit."""

    def __init__(self, post: Optional[Callable[[TimerFired], None]] = None):
        self._post = post
        self._pending: Dict[int, ScheduledTask] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def bind(self, post: Callable[[TimerFired], None]) -> None:
        """Set the callable that receives TimerFired events."""
        self._post = post

    def now(self) -> float:
        raise NotImplementedError

    def _arm(self, task: ScheduledTask) -> None:
        """Start whatever will eventually call _fire(task)."""

    def _disarm(self, task: ScheduledTask) -> None:
        """Undo _arm for a task that is being cancelled."""

    def schedule(self, delay: float, kind: str, payload: Optional[Dict[str, Any]] = None) -> int:
        delay = max(0.0, float(delay))
        with self._lock:
            task = ScheduledTask(
                task_id=next(self._ids),
                kind=kind,
                delay=delay,
                due=self.now() + delay,
                payload=dict(payload or {}),
            )
            self._pending[task.task_id] = task
        satela_log("TIMER", f"Scheduled {kind} #{task.task_id} in {delay:.2f}s", level="DEBUG")
        self._arm(task)
        return task.task_id

    def _fire(self, task: ScheduledTask) -> None:
        if self._post is None:
            satela_log("TIMER", f"No receiver for {task.kind} #{task.task_id}", level="WARNING")
            return
        self._post(TimerFired(task.task_id, task.kind, dict(task.payload)))

    def consume(self, task_id: int) -> bool:
        """Mark a fired task as handled. False if it was cancelled meanwhile."""
        with self._lock:
            return self._pending.pop(task_id, None) is not None

    def is_pending(self, task_id: int) -> bool:
        with self._lock:
            return task_id in self._pending

    def pending(self) -> List[ScheduledTask]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda task: (task.due, task.task_id))

    def cancel(self, task_id: int) -> bool:
        with self._lock:
            task = self._pending.pop(task_id, None)
        if task is None:
            return False
        self._disarm(task)
        return True

    def cancel_all(self) -> int:
        """Cancel every pending task; returns how many were dropped."""
        with self._lock:
            tasks = list(self._pending.values())
            self._pending.clear()
        for task in tasks:
            self._disarm(task)
        if tasks:
            satela_log("TIMER", f"Cancelled {len(tasks)} pending task(s)")
        return len(tasks)


class ThreadingScheduler(Scheduler):
    """Wall-clock scheduler backed by daemon threading.Timer objects."""

    def now(self) -> float:
        return time.monotonic()

    def _arm(self, task: ScheduledTask) -> None:
        timer = threading.Timer(task.delay, self._fire, args=(task,))
        timer.daemon = True
        task.timer = timer
        timer.start()

    def _disarm(self, task: ScheduledTask) -> None:
        if task.timer is not None:
            task.timer.cancel()
            task.timer = None


class ManualScheduler(Scheduler):
    """Virtual-time scheduler: tasks fire only from advance().

    Used by tests and by anything that wants deterministic timing.
    """

    def __init__(self, post: Optional[Callable[[TimerFired], None]] = None):
        super().__init__(post)
        self._now = 0.0

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, firing due tasks in order.

        Tasks scheduled by handlers during advance() also fire if they
        come due before the target time. Returns the number fired.
        """
        target = self._now + max(0.0, float(seconds))
        fired = 0
        while True:
            due = [task for task in self.pending() if task.due <= target]
            if not due:
                break
            task = due[0]
            self._now = max(self._now, task.due)
            self._fire(task)
            # Handler did not consume (e.g. no engine bound): drop it anyway
            self.consume(task.task_id)
            fired += 1
        self._now = target
        return fired
