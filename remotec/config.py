from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping

DEFAULT_SHELL = "sh"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    command: str = ""
    port: int = 0
    host: str = "0.0.0.0"
    token: str | None = None
    endpoint: str | None = None
    shell: str = DEFAULT_SHELL
    max_executions: int = 0
    max_output_bytes: int = 0
    kill_grace_seconds: float = 2.0
    poll_interval: float = 0.1
    result_log_path: str | None = None
    log_level: str = "INFO"


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer") from None


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number") from None


def load_settings(env: Mapping[str, str] | None = None, **overrides: Any) -> Settings:
    """Build validated settings from ``REMOTEC_*`` variables.

    Keyword overrides (CLI flags) win over the environment; ``None`` values
    are ignored so unset flags fall through.
    """
    env = os.environ if env is None else env
    settings = Settings(
        command=(env.get("REMOTEC_COMMAND") or "").strip(),
        port=_env_int(env, "REMOTEC_PORT", 0),
        host=(env.get("REMOTEC_HOST") or "0.0.0.0").strip(),
        token=(env.get("REMOTEC_TOKEN") or "").strip() or None,
        endpoint=(env.get("REMOTEC_ENDPOINT") or "").strip() or None,
        shell=(env.get("REMOTEC_SHELL") or DEFAULT_SHELL).strip(),
        max_executions=_env_int(env, "REMOTEC_MAX_EXECUTIONS", 0),
        max_output_bytes=_env_int(env, "REMOTEC_MAX_OUTPUT_BYTES", 0),
        kill_grace_seconds=_env_float(env, "REMOTEC_KILL_GRACE_SECONDS", 2.0),
        poll_interval=_env_float(env, "REMOTEC_POLL_INTERVAL", 0.1),
        result_log_path=(env.get("REMOTEC_RESULT_LOG_PATH") or "").strip() or None,
        log_level=(env.get("REMOTEC_LOG_LEVEL") or "INFO").strip().upper(),
    )
    cleaned = {key: value for key, value in overrides.items() if value is not None}
    if cleaned:
        settings = replace(settings, **cleaned)
    return validate_settings(settings)


def validate_settings(settings: Settings) -> Settings:
    command = settings.command.strip()
    if not command:
        raise ConfigError("command is required (-c)")
    if settings.port < 1 or settings.port > 65535:
        raise ConfigError("port must be between 1 and 65535 (-p)")
    if not settings.shell.strip():
        raise ConfigError("shell cannot be empty")
    if settings.max_executions < 0:
        raise ConfigError("max_executions cannot be negative")
    if settings.max_output_bytes < 0:
        raise ConfigError("max_output_bytes cannot be negative")
    if settings.kill_grace_seconds < 0:
        raise ConfigError("kill_grace_seconds cannot be negative")
    if settings.poll_interval <= 0:
        raise ConfigError("poll_interval must be positive")

    endpoint = (settings.endpoint or "").strip().strip("/") or None
    token = (settings.token or "").strip() or None
    return replace(
        settings,
        command=command,
        endpoint=endpoint,
        token=token,
        shell=settings.shell.strip(),
        log_level=settings.log_level.strip().upper() or "INFO",
    )
