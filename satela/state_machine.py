#!/usr/bin/env python3
"""Dialogue state definitions and the state machine for Satela Voice."""

import threading
import time
from enum import Enum
from typing import Dict, FrozenSet, Optional

from satela.errors import InvalidTransition
from satela.event_bus import EventBus, EventType
from satela.utils import satela_log


class DialogueState(str, Enum):
    """Состояния диалога."""
    IDLE = "idle"            # Ожидание wake word
    LISTENING = "listening"  # Слушаем команду
    THINKING = "thinking"    # Команда принята, ответ готовится
    SPEAKING = "speaking"    # Ответ озвучивается

    def __str__(self) -> str:
        return self.value


# idle is reachable from every state (deactivation, stop, no-speech)
ALLOWED_TRANSITIONS: Dict[DialogueState, FrozenSet[DialogueState]] = {
    DialogueState.IDLE: frozenset({DialogueState.LISTENING}),
    DialogueState.LISTENING: frozenset({DialogueState.THINKING, DialogueState.IDLE}),
    DialogueState.THINKING: frozenset({DialogueState.SPEAKING, DialogueState.IDLE}),
    DialogueState.SPEAKING: frozenset({DialogueState.LISTENING, DialogueState.IDLE}),
}


class DialogueStateMachine:
    """Owns the current DialogueState; every change goes through transition()."""

    def __init__(self, event_bus: Optional[EventBus] = None):
        self._state = DialogueState.IDLE
        self._state_lock = threading.Lock()
        self._last_state_change = time.time()
        self._event_bus = event_bus

    @property
    def state(self) -> DialogueState:
        with self._state_lock:
            return self._state

    def time_in_state(self) -> float:
        with self._state_lock:
            return time.time() - self._last_state_change

    def transition(self, new_state: DialogueState, reason: str = "") -> DialogueState:
        """Atomically move to new_state; returns the previous state.

        Raises InvalidTransition (state unchanged) for moves outside
        ALLOWED_TRANSITIONS. Moving to the current state is also illegal,
        except idle → idle which is a no-op.
        """
        with self._state_lock:
            old_state = self._state
            if old_state == new_state == DialogueState.IDLE:
                return old_state
            if new_state not in ALLOWED_TRANSITIONS[old_state]:
                raise InvalidTransition(old_state, new_state)
            self._state = new_state
            self._last_state_change = time.time()

        suffix = f" ({reason})" if reason else ""
        satela_log("STATE", f"{old_state} → {new_state}{suffix}")

        if self._event_bus is not None:
            self._event_bus.publish(
                EventType.STATE_CHANGED,
                {'old_state': old_state.value, 'new_state': new_state.value, 'reason': reason},
                source='state_machine',
            )
        return old_state

    def force_idle(self, reason: str = "") -> DialogueState:
        """Return to idle from any state."""
        return self.transition(DialogueState.IDLE, reason)
