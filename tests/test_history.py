"""Tests for command records and history ordering."""

import os
import sys
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from satela.history import Category, Command, CommandHistory


def test_newest_first():
    history = CommandHistory()
    first = Command("какая погода", "Сегодня +5°C, облачно с прояснениями", Category.INFO)
    second = Command("спасибо", "Всегда пожалуйста!", Category.SYSTEM)
    history.append(first)
    history.append(second)
    assert history.list() == [second, first]


def test_ids_unique_within_same_millisecond():
    moment = datetime(2026, 10, 18, 12, 0, 0)
    ids = {Command("a", "b", Category.SYSTEM, timestamp=moment).id for _ in range(50)}
    assert len(ids) == 50


def test_explicit_id_kept():
    command = Command("a", "b", Category.APP, id="fixed")
    assert command.id == "fixed"


def test_list_is_a_snapshot():
    history = CommandHistory()
    history.append(Command("a", "b", Category.NOTE))
    snapshot = history.list()
    snapshot.clear()
    assert len(history) == 1


def test_to_dict():
    moment = datetime(2026, 10, 18, 9, 5)
    data = Command("который час", "Сейчас 9:05", Category.INFO, rule="time", timestamp=moment).to_dict()
    assert data["text"] == "который час"
    assert data["response"] == "Сейчас 9:05"
    assert data["category"] == "info"
    assert data["rule"] == "time"
    assert data["timestamp"] == "2026-10-18T09:05:00"
    assert data["id"].startswith(str(int(moment.timestamp() * 1000)))
