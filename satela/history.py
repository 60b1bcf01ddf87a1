"""Command records and the in-memory command history."""

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

_id_counter = itertools.count(1)
_id_lock = threading.Lock()


class Category(str, Enum):
    """Closed set of command categories."""
    APP = "app"
    SEARCH = "search"
    MEDIA = "media"
    INFO = "info"
    SYSTEM = "system"
    NOTE = "note"

    def __str__(self) -> str:
        return self.value


def next_command_id(now: Optional[datetime] = None) -> str:
    """Unique id: creation time in ms plus a process-wide counter."""
    now = now or datetime.now()
    with _id_lock:
        seq = next(_id_counter)
    return f"{int(now.timestamp() * 1000)}-{seq}"


@dataclass(frozen=True)
class Command:
    """One processed exchange: what was heard and what was answered."""
    text: str
    response: str
    category: Category
    rule: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            object.__setattr__(self, "id", next_command_id(self.timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "response": self.response,
            "category": self.category.value,
            "rule": self.rule,
        }


class CommandHistory:
    """Append-only log, newest first. Lives as long as the process."""

    def __init__(self):
        self._commands: List[Command] = []
        self._lock = threading.Lock()

    def append(self, cmd: Command) -> None:
        with self._lock:
            self._commands.insert(0, cmd)

    def list(self) -> List[Command]:
        """Snapshot of all commands, newest first."""
        with self._lock:
            return list(self._commands)

    def __len__(self) -> int:
        with self._lock:
            return len(self._commands)

    def __iter__(self) -> Iterator[Command]:
        return iter(self.list())
