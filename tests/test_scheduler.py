"""Tests for delayed task scheduling."""

import os
import sys
import threading

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from satela.scheduler import ManualScheduler, ThreadingScheduler


class TestManualScheduler:
    def test_fires_in_due_order(self):
        fired = []
        scheduler = ManualScheduler(fired.append)
        scheduler.schedule(2.0, "late")
        scheduler.schedule(1.0, "early")
        assert scheduler.advance(3.0) == 2
        assert [event.kind for event in fired] == ["early", "late"]
        assert scheduler.now() == 3.0

    def test_not_due_yet(self):
        fired = []
        scheduler = ManualScheduler(fired.append)
        scheduler.schedule(1.0, "speak")
        scheduler.advance(0.5)
        assert fired == []
        assert [task.kind for task in scheduler.pending()] == ["speak"]

    def test_chained_tasks_fire_within_advance(self):
        scheduler = ManualScheduler()
        fired = []

        def post(event):
            fired.append((event.kind, scheduler.now()))
            scheduler.consume(event.task_id)
            if event.kind == "speak":
                scheduler.schedule(2.0, "listen")

        scheduler.bind(post)
        scheduler.schedule(1.0, "speak")
        scheduler.advance(3.0)
        assert fired == [("speak", 1.0), ("listen", 3.0)]

    def test_cancel(self):
        fired = []
        scheduler = ManualScheduler(fired.append)
        task_id = scheduler.schedule(1.0, "speak")
        assert scheduler.is_pending(task_id)
        assert scheduler.cancel(task_id) is True
        assert not scheduler.is_pending(task_id)
        assert scheduler.cancel(task_id) is False
        scheduler.advance(5.0)
        assert fired == []

    def test_cancel_all(self):
        scheduler = ManualScheduler(lambda event: None)
        scheduler.schedule(1.0, "speak")
        scheduler.schedule(2.0, "deactivate")
        assert scheduler.cancel_all() == 2
        assert scheduler.pending() == []

    def test_consume_rejects_cancelled_task(self):
        scheduler = ManualScheduler(lambda event: None)
        task_id = scheduler.schedule(1.0, "speak")
        scheduler.cancel(task_id)
        assert scheduler.consume(task_id) is False

    def test_payload_is_delivered(self):
        fired = []
        scheduler = ManualScheduler(fired.append)
        scheduler.schedule(0.0, "speak", {"text": "hi"})
        scheduler.advance(0.0)
        assert fired[0].payload == {"text": "hi"}


class TestThreadingScheduler:
    def test_fires_on_timer_thread(self):
        done = threading.Event()
        scheduler = ThreadingScheduler(lambda event: done.set())
        scheduler.schedule(0.05, "speak")
        assert done.wait(2.0)

    def test_cancelled_timer_does_not_fire(self):
        done = threading.Event()
        scheduler = ThreadingScheduler(lambda event: done.set())
        task_id = scheduler.schedule(0.1, "speak")
        scheduler.cancel(task_id)
        assert not done.wait(0.3)
