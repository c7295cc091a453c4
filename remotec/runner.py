from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time

from .config import Settings
from .reporting import log_result
from .types import CommandResult, ExecStatus
from .utils import decode_output, local_now

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"


class CommandRunner:
    """Runs the fixed command once per call, honouring a cancel event.

    Execution failures never raise: they come back as FAILED results.
    """

    def __init__(self, settings: Settings):
        self.command = settings.command
        self.shell = settings.shell
        self.max_output_bytes = settings.max_output_bytes
        self.kill_grace_seconds = settings.kill_grace_seconds
        self.poll_interval = settings.poll_interval

    def _argv(self) -> list[str]:
        if IS_WINDOWS:
            return ["cmd.exe", "/C", self.command]
        return [self.shell, "-c", self.command]

    def _result(self, exec_id: str, status: str, message: str, started_at: str, elapsed: float, output: str) -> CommandResult:
        return CommandResult(
            exec_id=exec_id,
            status=status,
            command=self.command,
            message=message,
            exec_time=started_at,
            exec_second=elapsed,
            output=output,
        )

    def run(self, cancel_event: threading.Event, exec_id: str) -> CommandResult:
        started_at = local_now()
        if cancel_event.is_set():
            result = self._result(exec_id, ExecStatus.FAILED, "cancelled before start", started_at, 0.0, "")
            log_result(result)
            return result

        logger.debug("Executing command exec_id=%s cmd=%s", exec_id, self.command.replace("\n", " ")[:300])
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                self._argv(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=not IS_WINDOWS,
            )
        except OSError as exc:
            elapsed = time.monotonic() - start
            logger.error("Could not spawn command exec_id=%s: %s", exec_id, exc)
            result = self._result(exec_id, ExecStatus.FAILED, "spawn failed", started_at, elapsed, str(exc))
            log_result(result)
            return result

        raw, cancelled = self._wait(proc, cancel_event)
        elapsed = time.monotonic() - start
        output = decode_output(raw, self.max_output_bytes)

        if cancelled:
            status, message = ExecStatus.FAILED, "cancelled"
        elif proc.returncode == 0:
            status, message = ExecStatus.COMPLETED, "exit status 0"
        elif proc.returncode < 0:
            status, message = ExecStatus.FAILED, f"terminated by signal {-proc.returncode}"
        else:
            status, message = ExecStatus.FAILED, f"exit status {proc.returncode}"

        result = self._result(exec_id, status, message, started_at, elapsed, output)
        log_result(result)
        return result

    def _wait(self, proc: subprocess.Popen[bytes], cancel_event: threading.Event) -> tuple[bytes, bool]:
        # communicate() may be retried after a timeout without losing output.
        while True:
            try:
                out, _ = proc.communicate(timeout=self.poll_interval)
                return out or b"", False
            except subprocess.TimeoutExpired:
                if not cancel_event.is_set():
                    continue
            logger.info("Terminating running command pid=%s", proc.pid)
            self._terminate(proc)
            try:
                out, _ = proc.communicate(timeout=self.kill_grace_seconds + 1.0)
            except subprocess.TimeoutExpired as exc:
                # A descendant left the process group and still holds the pipe open.
                logger.warning("Output pipe still open after termination pid=%s", proc.pid)
                out = exc.output
                if proc.stdout is not None:
                    proc.stdout.close()
                proc.wait()
            return out or b"", True

    def _group_alive(self, proc: subprocess.Popen[bytes]) -> bool:
        proc.poll()
        try:
            os.killpg(proc.pid, 0)
        except ProcessLookupError:
            return False
        return True

    def _terminate(self, proc: subprocess.Popen[bytes]) -> None:
        if IS_WINDOWS:
            proc.kill()
            return
        try:
            os.killpg(proc.pid, signal.SIGTERM)
        except ProcessLookupError:
            return

        # The shell may exit on SIGTERM while other members of its group ignore it.
        deadline = time.monotonic() + self.kill_grace_seconds
        while time.monotonic() < deadline:
            if not self._group_alive(proc):
                return
            time.sleep(min(self.poll_interval, max(0.0, deadline - time.monotonic())))

        if not self._group_alive(proc):
            return
        logger.warning("Process group ignored SIGTERM; killing it pid=%s", proc.pid)
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
