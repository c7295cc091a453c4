from __future__ import annotations

import threading
from dataclasses import dataclass, field


class ExecStatus:
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STARTED = "STARTED"
    STOPPED = "STOPPED"
    STOPPED_ALL = "STOPPED_ALL"


@dataclass(frozen=True, slots=True)
class CommandResult:
    exec_id: str = ""
    status: str = ""
    command: str = ""
    message: str = ""
    exec_time: str = ""
    exec_second: float = 0.0
    output: str = ""


@dataclass(slots=True)
class Execution:
    exec_id: str
    action: str
    created_at: str
    cancel_event: threading.Event = field(default_factory=threading.Event)
    stopped: bool = False

    def cancel(self) -> None:
        self.cancel_event.set()
        self.stopped = True

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()
