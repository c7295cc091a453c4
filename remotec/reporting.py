from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from .types import CommandResult, ExecStatus
from .utils import dumps_json, local_now

RESULT_LOGGER_NAME = "remotec.results"
result_logger = logging.getLogger(RESULT_LOGGER_NAME)


def result_payload(result: CommandResult) -> dict[str, Any]:
    return asdict(result)


def log_result(result: CommandResult) -> None:
    """Emit the one-line JSON record kept for every command invocation."""
    result_logger.info(dumps_json(result_payload(result)))


def started_result(*, exec_id: str, command: str, delay: int) -> CommandResult:
    return CommandResult(
        exec_id=exec_id,
        status=ExecStatus.STARTED,
        command=command,
        message=f"loop execution started, delay between runs: {delay}s",
        exec_time=local_now(),
    )


def series_result(
    *,
    exec_id: str,
    command: str,
    started_at: str,
    elapsed: float,
    runs: int,
    requested: int,
    last: CommandResult | None,
    stopped: bool,
) -> CommandResult:
    if stopped:
        status = ExecStatus.STOPPED
        message = f"stopped after {runs} of {requested} runs"
    else:
        status = ExecStatus.COMPLETED
        message = f"executed {runs} times"
    return CommandResult(
        exec_id=exec_id,
        status=status,
        command=command,
        message=message,
        exec_time=started_at,
        exec_second=elapsed,
        output=last.output if last is not None else "",
    )


def stopped_result(exec_id: str) -> CommandResult:
    return CommandResult(
        exec_id=exec_id,
        status=ExecStatus.STOPPED,
        message="execution stopped",
        exec_time=local_now(),
    )


def stopped_all_result(count: int) -> CommandResult:
    return CommandResult(
        status=ExecStatus.STOPPED_ALL,
        message=f"stopped {count} executions",
        exec_time=local_now(),
    )
