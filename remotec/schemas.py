from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .orchestrator import MAX_DELAY_SECONDS

ACTIONS = {"multiple", "loop", "stop", "stopAll"}


class TriggerRequest(BaseModel):
    action: str = ""
    delay: int = Field(default=0, le=MAX_DELAY_SECONDS)
    count: int = 1
    exec_id: str = ""

    model_config = {"extra": "ignore", "str_strip_whitespace": True}

    @field_validator("action", "exec_id", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("delay", "count", mode="before")
    @classmethod
    def _blank_as_default(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0
        return value

    @field_validator("delay")
    @classmethod
    def _clamp_delay(cls, value: int) -> int:
        return max(value, 0)

    @field_validator("count")
    @classmethod
    def _clamp_count(cls, value: int) -> int:
        return max(value, 1)

    @property
    def strategy(self) -> Literal["single", "multiple", "loop", "stop", "stopAll"]:
        if self.action in ACTIONS:
            return self.action  # type: ignore[return-value]
        return "single"


class CommandResultResponse(BaseModel):
    exec_id: str = ""
    status: str
    command: str = ""
    message: str = ""
    exec_time: str = ""
    exec_second: float = 0.0
    output: str = ""


class ErrorResponse(BaseModel):
    error: str = Field(min_length=1)
