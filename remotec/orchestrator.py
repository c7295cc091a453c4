from __future__ import annotations

import logging
import threading
import time
from typing import Protocol

from .registry import ExecutionRegistry
from .reporting import series_result, started_result, stopped_all_result, stopped_result
from .types import CommandResult, Execution
from .utils import local_now, make_exec_id

logger = logging.getLogger(__name__)

# Event.wait() rejects timeouts above this.
MAX_DELAY_SECONDS = int(threading.TIMEOUT_MAX)


class Runner(Protocol):
    command: str

    def run(self, cancel_event: threading.Event, exec_id: str) -> CommandResult: ...


class ExecutionOrchestrator:
    """Single, multiple and loop executions of the fixed command, plus stop/stop-all.

    Single and multiple run on the calling thread and return a terminal
    result. Loop hands off to a daemon thread and returns a STARTED
    acknowledgment right away; its only external handle is the cancel event
    kept in the registry.
    """

    def __init__(self, *, runner: Runner, registry: ExecutionRegistry):
        self.runner = runner
        self.registry = registry
        self._loop_threads: dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    def _register(self, action: str) -> Execution:
        execution = Execution(exec_id=make_exec_id(), action=action, created_at=local_now())
        self.registry.register(execution)
        return execution

    def run_single(self) -> CommandResult:
        execution = self._register("single")
        try:
            return self.runner.run(execution.cancel_event, execution.exec_id)
        finally:
            self.registry.cleanup(execution.exec_id)

    def run_multiple(self, count: int, delay: int) -> CommandResult:
        count = max(count, 1)
        delay = min(max(delay, 0), MAX_DELAY_SECONDS)
        execution = self._register("multiple")
        started_at = local_now()
        elapsed = 0.0
        runs = 0
        last: CommandResult | None = None
        stopped = False

        try:
            for index in range(count):
                if execution.cancelled:
                    stopped = True
                    logger.info("Multiple execution stopped exec_id=%s runs=%s/%s", execution.exec_id, runs, count)
                    break
                last = self.runner.run(execution.cancel_event, execution.exec_id)
                runs += 1
                elapsed += last.exec_second
                if delay and index < count - 1:
                    execution.cancel_event.wait(delay)
            else:
                # A stop that landed during the final run still ends the series as stopped.
                stopped = execution.cancelled
        finally:
            self.registry.cleanup(execution.exec_id)

        return series_result(
            exec_id=execution.exec_id,
            command=self.runner.command,
            started_at=started_at,
            elapsed=elapsed,
            runs=runs,
            requested=count,
            last=last,
            stopped=stopped,
        )

    def start_loop(self, delay: int) -> CommandResult:
        delay = min(max(delay, 0), MAX_DELAY_SECONDS)
        execution = self._register("loop")
        thread = threading.Thread(
            target=self._run_loop,
            args=(execution, delay),
            name=f"remotec-loop-{execution.exec_id}",
            daemon=True,
        )
        with self._threads_lock:
            self._loop_threads[execution.exec_id] = thread
        thread.start()
        logger.info("Loop execution started exec_id=%s delay=%ss", execution.exec_id, delay)
        return started_result(exec_id=execution.exec_id, command=self.runner.command, delay=delay)

    def _run_loop(self, execution: Execution, delay: int) -> None:
        iterations = 0
        try:
            while not execution.cancelled:
                self.runner.run(execution.cancel_event, execution.exec_id)
                iterations += 1
                if delay:
                    execution.cancel_event.wait(delay)
            logger.info("Loop execution stopped exec_id=%s iterations=%s", execution.exec_id, iterations)
        except Exception:
            logger.exception("Loop execution crashed exec_id=%s", execution.exec_id)
        finally:
            self.registry.cleanup(execution.exec_id)
            with self._threads_lock:
                self._loop_threads.pop(execution.exec_id, None)

    def stop(self, exec_id: str) -> CommandResult | None:
        if not self.registry.cancel(exec_id):
            return None
        logger.info("Execution stopped exec_id=%s", exec_id)
        return stopped_result(exec_id)

    def stop_all(self) -> CommandResult:
        count = self.registry.cancel_all()
        logger.info("Stopped all executions count=%s", count)
        return stopped_all_result(count)

    def active_count(self) -> int:
        return len(self.registry)

    def join_loops(self, timeout: float | None = None) -> None:
        """Wait for loop threads to exit; used on shutdown after ``stop_all``."""
        with self._threads_lock:
            threads = list(self._loop_threads.values())
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
