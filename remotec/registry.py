from __future__ import annotations

import threading

from .types import Execution


class RegistryFullError(RuntimeError):
    pass


class ExecutionRegistry:
    """In-memory map of live executions, guarded by a single lock.

    An id present in the map always belongs to an execution that has not been
    cancelled yet: cancellation and removal happen in the same critical
    section, so a stop racing a natural finish sees the entry either present
    (and cancels it) or absent (not found), never both.
    """

    def __init__(self, max_executions: int = 0) -> None:
        self._lock = threading.Lock()
        self._executions: dict[str, Execution] = {}
        self.max_executions = max(0, max_executions)

    def register(self, execution: Execution) -> None:
        with self._lock:
            if self.max_executions and len(self._executions) >= self.max_executions:
                raise RegistryFullError(f"too many active executions (limit {self.max_executions})")
            self._executions[execution.exec_id] = execution

    def cancel(self, exec_id: str) -> bool:
        with self._lock:
            execution = self._executions.pop(exec_id, None)
            if execution is None:
                return False
            execution.cancel()
            return True

    def cancel_all(self) -> int:
        with self._lock:
            for execution in self._executions.values():
                execution.cancel()
            count = len(self._executions)
            self._executions.clear()
            return count

    def cleanup(self, exec_id: str) -> None:
        with self._lock:
            self._executions.pop(exec_id, None)

    def get(self, exec_id: str) -> Execution | None:
        with self._lock:
            return self._executions.get(exec_id)

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._executions)

    def __contains__(self, exec_id: object) -> bool:
        with self._lock:
            return exec_id in self._executions

    def __len__(self) -> int:
        with self._lock:
            return len(self._executions)
