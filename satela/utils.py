#!/usr/bin/env python3
"""
Satela Voice Utilities

Tagged stdout logging with a minimum level, crash files, and the
restart-on-error loop used by the engine consumer thread.
"""

import os
import sys
import traceback
import threading
from datetime import datetime
from typing import Callable

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Таймеры, поток движка и API пишут в stdout одновременно
_stdout_lock = threading.Lock()
_min_level = 1  # INFO


def set_log_level(level: str) -> str:
    """Hide log lines below level. Unknown names mean INFO; returns the level applied."""
    global _min_level
    name = str(level).strip().upper()
    if name not in LOG_LEVELS:
        name = "INFO"
    _min_level = LOG_LEVELS.index(name)
    return name


set_log_level(os.getenv("SATELA_LOG_LEVEL", "INFO"))


def satela_log(tag: str, message: str, level: str = "INFO"):
    """
    Print one tagged line: [HH:MM:SS.mmm] [LEVEL] [TAG] message

    Levels outside LOG_LEVELS are always printed.
    """
    if level in LOG_LEVELS and LOG_LEVELS.index(level) < _min_level:
        return

    stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    with _stdout_lock:
        print(f"[{stamp}] [{level}] [{tag}] {message}", flush=True)


def log_crash(exc_type, exc_value, exc_traceback) -> str:
    """Dump an unhandled exception and the live threads into logs/; returns the file path."""
    from satela import LOGS_DIR

    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    path = os.path.join(LOGS_DIR, f"satela_crash_{stamp}.log")
    lines = [
        "Satela Voice Crash Log",
        f"Timestamp: {stamp}",
        f"Exception: {exc_type.__name__}: {exc_value}",
        "",
        "".join(traceback.format_exception(exc_type, exc_value, exc_traceback)),
        "Threads:",
    ]
    lines += [f"  - {th.name} (daemon={th.daemon})" for th in threading.enumerate()]

    try:
        os.makedirs(LOGS_DIR, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
    except OSError as e:
        print(f"[CRITICAL] Failed to write crash log: {e}", file=sys.stderr)
        return ""

    satela_log("CRASH", f"Crash log saved to {path}", level="ERROR")
    return path


def setup_crash_protection():
    """Route unhandled exceptions through log_crash, then the default hook."""
    def _hook(exc_type, exc_value, exc_traceback):
        log_crash(exc_type, exc_value, exc_traceback)
        sys.__excepthook__(exc_type, exc_value, exc_traceback)

    sys.excepthook = _hook
    satela_log("INIT", "Crash protection enabled")


def thread_safe_loop(thread_name: str, loop_func: Callable, stop_event, retry_delay: float = 1.0):
    """
    Call loop_func until stop_event is set.

    loop_func is one short iteration of work. An exception is logged with its
    traceback and the loop resumes after retry_delay seconds.
    """
    satela_log(thread_name, "Thread started")

    while not stop_event.is_set():
        try:
            loop_func()
        except Exception as e:
            satela_log(thread_name, f"Iteration failed: {e}", level="ERROR")
            satela_log(thread_name, traceback.format_exc(), level="DEBUG")
            if retry_delay:
                satela_log(thread_name, f"Resuming in {retry_delay}s")
                stop_event.wait(retry_delay)

    satela_log(thread_name, "Thread stopped")
