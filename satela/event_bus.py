"""
Event Bus - шина событий для наблюдателей

Ядро сообщает о сессии, смене состояния, распознанных командах и ошибках;
подписчики (REST API, WebSocket-клиенты, тесты) получают копии событий.
Ядро от подписчиков не зависит: ошибка обработчика только логируется.

Доставка:
    wait=True   обработчики вызываются в потоке публикации
    wait=False  событие ставится в очередь, её разбирают worker-потоки;
                пока шина не запущена, такие события отбрасываются
"""

import queue
import threading
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from satela.utils import satela_log


class EventType(Enum):
    """Типы событий системы."""
    # Сессия
    SESSION_STARTED = auto()
    SESSION_STOPPED = auto()
    SESSION_FAILED = auto()

    # Распознавание
    TRANSCRIPT_UPDATED = auto()
    WAKE_WORD_DETECTED = auto()
    ERROR_RECOGNITION = auto()

    # Диалог
    STATE_CHANGED = auto()
    COMMAND_PROCESSED = auto()
    RESPONSE_SPOKEN = auto()
    DEACTIVATED = auto()


@dataclass
class Event:
    """Событие в системе."""
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    source: str = "unknown"
    timestamp: float = field(default_factory=time.time)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form, as sent to WebSocket clients."""
        return {
            "event": self.type.name,
            "data": self.payload,
            "timestamp": datetime.fromtimestamp(self.timestamp).isoformat(),
            "source": self.source,
            "id": self.event_id,
        }

    def __repr__(self):
        return f"Event({self.type.name}, id={self.event_id}, src={self.source})"


@dataclass
class Subscription:
    sub_id: str
    event_type: EventType
    callback: Callable[[Event], None]
    priority: int = 0
    async_mode: bool = True
    errors: int = 0


class EventBus:
    """
    Pub/Sub между ядром и наблюдателями.

    Обработчики с большим priority вызываются раньше. async_mode=True
    запускает обработчик в отдельном потоке, чтобы медленный подписчик
    не задерживал остальных; порядок событий при этом не гарантируется.
    Синхронные подписчики получают события в порядке публикации.
    """

    def __init__(self, max_queue_size: int = 1000, num_workers: int = 1, history_size: int = 100):
        self._subs: Dict[EventType, List[Subscription]] = defaultdict(list)
        self._by_id: Dict[str, Subscription] = {}
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._num_workers = num_workers
        self._workers: List[threading.Thread] = []
        self._running = False
        self._lock = threading.RLock()

        self._published = 0
        self._delivered = 0
        self._dropped = 0

        self._history: List[Event] = []
        self._history_size = history_size

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Запускает worker-потоки."""
        if self._running:
            return
        self._running = True
        for i in range(self._num_workers):
            worker = threading.Thread(target=self._worker_loop, name=f"EventWorker-{i}", daemon=True)
            worker.start()
            self._workers.append(worker)
        satela_log("EVENT_BUS", f"Started with {self._num_workers} worker(s)")

    def stop(self):
        """Останавливает worker-потоки; события в очереди теряются."""
        if not self._running:
            return
        self._running = False
        for _ in self._workers:
            try:
                self._queue.put_nowait(None)
            except queue.Full:
                pass
        for worker in self._workers:
            worker.join(timeout=2.0)
        self._workers.clear()
        satela_log("EVENT_BUS", "Stopped")

    def _worker_loop(self):
        while self._running:
            try:
                event = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            if event is None:  # Сигнал остановки
                break
            self._deliver(event)

    # ------------------------------------------------------------------
    # Publish / deliver
    # ------------------------------------------------------------------

    def publish(
        self,
        event_type: EventType,
        payload: Optional[Dict[str, Any]] = None,
        source: str = "unknown",
        wait: bool = False
    ) -> Optional[Event]:
        """
        Публикует событие.

        Returns:
            Созданное событие или None, если оно отброшено
        """
        event = Event(type=event_type, payload=payload or {}, source=source)
        with self._lock:
            self._published += 1

        if wait:
            self._deliver(event)
            return event

        if not self._running:
            return None
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            satela_log("EVENT_BUS", f"Queue full, event dropped: {event_type.name}", level="WARNING")
            return None
        return event

    def _deliver(self, event: Event):
        with self._lock:
            subs = sorted(self._subs.get(event.type, []), key=lambda s: s.priority, reverse=True)
            self._delivered += 1
            self._history.append(event)
            del self._history[:-self._history_size]

        for sub in subs:
            if sub.async_mode:
                threading.Thread(target=self._invoke, args=(sub, event), daemon=True).start()
            else:
                self._invoke(sub, event)

    def _invoke(self, sub: Subscription, event: Event):
        try:
            sub.callback(event)
        except Exception as e:
            sub.errors += 1
            satela_log("EVENT_BUS", f"Handler {sub.sub_id} failed on {event.type.name}: {e}", level="ERROR")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        event_type: EventType,
        callback: Callable[[Event], None],
        priority: int = 0,
        async_mode: bool = True
    ) -> str:
        """Подписывает обработчик на один тип событий; возвращает ID подписки."""
        sub = Subscription(uuid.uuid4().hex[:12], event_type, callback, priority, async_mode)
        with self._lock:
            self._subs[event_type].append(sub)
            self._by_id[sub.sub_id] = sub
        name = getattr(callback, "__name__", repr(callback))
        satela_log("EVENT_BUS", f"Subscribed {name} to {event_type.name} (priority={priority})", level="DEBUG")
        return sub.sub_id

    def subscribe_all(
        self,
        callback: Callable[[Event], None],
        priority: int = 0,
        async_mode: bool = True
    ) -> List[str]:
        """Подписывает один обработчик на все типы событий."""
        return [self.subscribe(event_type, callback, priority, async_mode) for event_type in EventType]

    def unsubscribe(self, sub_id: str) -> bool:
        with self._lock:
            sub = self._by_id.pop(sub_id, None)
            if sub is None:
                return False
            self._subs[sub.event_type].remove(sub)
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'events_published': self._published,
                'events_delivered': self._delivered,
                'events_dropped': self._dropped,
                'queue_size': self._queue.qsize(),
                'subscribers': {t.name: len(subs) for t, subs in self._subs.items() if subs},
                'handler_errors': sum(sub.errors for sub in self._by_id.values()),
            }

    def get_recent_events(self, count: int = 10) -> List[Event]:
        """Последние доставленные события, старые первыми."""
        with self._lock:
            return self._history[-count:]


_event_bus_instance: Optional[EventBus] = None
_event_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Общая шина процесса (создаётся при первом обращении)."""
    global _event_bus_instance
    with _event_bus_lock:
        if _event_bus_instance is None:
            _event_bus_instance = EventBus()
        return _event_bus_instance
