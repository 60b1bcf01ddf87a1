"""Tests for dialogue state transitions."""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from satela.errors import InvalidTransition
from satela.event_bus import EventBus, EventType
from satela.state_machine import DialogueState, DialogueStateMachine


class TestDialogueStateMachine:
    def test_starts_idle(self):
        assert DialogueStateMachine().state == DialogueState.IDLE

    def test_command_cycle(self):
        sm = DialogueStateMachine()
        for state in (DialogueState.LISTENING, DialogueState.THINKING,
                      DialogueState.SPEAKING, DialogueState.LISTENING):
            sm.transition(state)
        assert sm.state == DialogueState.LISTENING

    def test_transition_returns_previous_state(self):
        sm = DialogueStateMachine()
        assert sm.transition(DialogueState.LISTENING) == DialogueState.IDLE

    def test_skipping_listening_is_rejected(self):
        sm = DialogueStateMachine()
        with pytest.raises(InvalidTransition):
            sm.transition(DialogueState.THINKING)
        assert sm.state == DialogueState.IDLE

    def test_thinking_cannot_go_back_to_listening(self):
        sm = DialogueStateMachine()
        sm.transition(DialogueState.LISTENING)
        sm.transition(DialogueState.THINKING)
        with pytest.raises(InvalidTransition):
            sm.transition(DialogueState.LISTENING)
        assert sm.state == DialogueState.THINKING

    def test_idle_to_idle_is_noop(self):
        sm = DialogueStateMachine()
        assert sm.force_idle("again") == DialogueState.IDLE
        assert sm.state == DialogueState.IDLE

    def test_force_idle_from_any_state(self):
        for target in (DialogueState.LISTENING, DialogueState.THINKING, DialogueState.SPEAKING):
            sm = DialogueStateMachine()
            sm.transition(DialogueState.LISTENING)
            if target != DialogueState.LISTENING:
                sm.transition(DialogueState.THINKING)
            if target == DialogueState.SPEAKING:
                sm.transition(DialogueState.SPEAKING)
            assert sm.state == target
            sm.force_idle("stop")
            assert sm.state == DialogueState.IDLE

    def test_publishes_state_changed(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.STATE_CHANGED, seen.append, async_mode=False)

        class InlineBus:
            def publish(self, event_type, payload=None, source="unknown"):
                return bus.publish(event_type, payload, source, wait=True)

        sm = DialogueStateMachine(InlineBus())
        sm.transition(DialogueState.LISTENING, "wake word")
        assert len(seen) == 1
        assert seen[0].payload == {"old_state": "idle", "new_state": "listening", "reason": "wake word"}

    def test_state_values_are_strings(self):
        assert DialogueState.SPEAKING == "speaking"
        assert str(DialogueState.THINKING) == "thinking"
