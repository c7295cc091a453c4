from __future__ import annotations

from dataclasses import dataclass

from .config import Settings
from .orchestrator import ExecutionOrchestrator
from .registry import ExecutionRegistry
from .runner import CommandRunner
from .utils import make_exec_id


@dataclass
class Services:
    settings: Settings
    endpoint: str
    registry: ExecutionRegistry
    runner: CommandRunner
    orchestrator: ExecutionOrchestrator


def build_services(settings: Settings) -> Services:
    registry = ExecutionRegistry(max_executions=settings.max_executions)
    runner = CommandRunner(settings)
    orchestrator = ExecutionOrchestrator(runner=runner, registry=registry)

    return Services(
        settings=settings,
        endpoint=settings.endpoint or make_exec_id(),
        registry=registry,
        runner=runner,
        orchestrator=orchestrator,
    )
