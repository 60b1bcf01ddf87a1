"""Tests for text wake word detection."""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from satela.wake_word import WakeWordDetector


def test_substring_case_insensitive():
    detector = WakeWordDetector("сатела")
    assert detector.detect("Привет, САТЕЛА!")
    assert detector.detect("сателапривет")


def test_no_match():
    detector = WakeWordDetector("сатела")
    assert not detector.detect("привет")
    assert not detector.detect("")
    assert not detector.detect(None)


def test_aliases():
    detector = WakeWordDetector("сатела", ["Сателла", "сатела"])
    assert detector.phrases == ["сатела", "сателла"]
    assert detector.detect("сателла, ты здесь?")
    assert detector.keyword == "сатела"


def test_empty_keyword_rejected():
    with pytest.raises(ValueError):
        WakeWordDetector("  ")


def test_detect_is_pure():
    detector = WakeWordDetector("сатела")
    assert detector.detect("сатела")
    assert not detector.detect("погода")
    assert detector.detect("сатела")
