from __future__ import annotations

import asyncio
import json
import logging
import secrets
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .registry import RegistryFullError
from .reporting import result_payload
from .schemas import CommandResultResponse, ErrorResponse, TriggerRequest
from .service_container import Services
from .types import CommandResult
from .utils import dumps_json

logger = logging.getLogger(__name__)

SHUTDOWN_JOIN_SECONDS = 5.0


class PrettyJSONResponse(JSONResponse):
    media_type = "application/json; charset=utf-8"

    def render(self, content: Any) -> bytes:
        return (dumps_json(content, indent=2) + "\n").encode("utf-8")


def _error(message: str, status_code: int) -> PrettyJSONResponse:
    return PrettyJSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _validation_message(exc: ValidationError | RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "request"
    return f"invalid {field}: {first.get('msg', 'invalid value')}"


async def _read_params(request: Request) -> dict[str, Any]:
    params: dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return params

    body = await request.body()
    if not body.strip():
        return params
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="request body must be valid JSON") from None
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=400, detail="request body must be a JSON object")
    params.update(parsed)
    return params


async def _run_in_own_thread(func: Callable[..., CommandResult], *args: Any) -> CommandResult:
    """Run a blocking strategy on a dedicated thread and await its result.

    Each blocking request holds its own thread for as long as it runs, so a
    burst of long runs never delays other requests.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[CommandResult] = loop.create_future()

    def deliver(result: CommandResult | None, exc: Exception | None) -> None:
        if future.done():
            return
        if exc is not None:
            future.set_exception(exc)
        else:
            future.set_result(result)  # type: ignore[arg-type]

    def target() -> None:
        try:
            result = func(*args)
        except Exception as exc:
            loop.call_soon_threadsafe(deliver, None, exc)
        else:
            loop.call_soon_threadsafe(deliver, result, None)

    threading.Thread(target=target, name="remotec-request", daemon=True).start()
    return await future


def _respond(result: CommandResult) -> PrettyJSONResponse:
    payload = CommandResultResponse(**result_payload(result))
    return PrettyJSONResponse(status_code=200, content=payload.model_dump())


def create_app(services: Services) -> FastAPI:
    orchestrator = services.orchestrator
    token = services.settings.token

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info("Shutdown: %s", orchestrator.stop_all().message)
        await asyncio.to_thread(orchestrator.join_loops, SHUTDOWN_JOIN_SECONDS)

    app = FastAPI(title="remotec", version=__version__, lifespan=lifespan)

    async def require_token(request: Request) -> None:
        if not token:
            return
        header = request.headers.get("Authorization", "")
        if not secrets.compare_digest(header.encode("utf-8"), f"Bearer {token}".encode("utf-8")):
            logger.warning("Authentication failed, authorization header present=%s", bool(header))
            raise HTTPException(status_code=403, detail="unauthorized")

    async def dispatch(params: TriggerRequest) -> CommandResult:
        strategy = params.strategy
        if strategy == "stopAll":
            return orchestrator.stop_all()
        if strategy == "loop":
            return orchestrator.start_loop(params.delay)
        if strategy == "multiple":
            return await _run_in_own_thread(orchestrator.run_multiple, params.count, params.delay)
        return await _run_in_own_thread(orchestrator.run_single)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True}

    @app.api_route(f"/{services.endpoint}", methods=["GET", "POST"], dependencies=[Depends(require_token)])
    async def trigger(request: Request) -> PrettyJSONResponse:
        raw = await _read_params(request)
        try:
            params = TriggerRequest.model_validate(raw)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=_validation_message(exc)) from exc

        if params.strategy == "stop":
            if not params.exec_id:
                raise HTTPException(status_code=400, detail="missing exec_id parameter")
            result = orchestrator.stop(params.exec_id)
            if result is None:
                raise HTTPException(status_code=404, detail="invalid exec_id")
            return _respond(result)

        try:
            result = await dispatch(params)
        except RegistryFullError as exc:
            raise HTTPException(status_code=429, detail=str(exc)) from exc
        return _respond(result)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> PrettyJSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "request failed"
        if exc.status_code == 405:
            detail = "method not allowed"
        return _error(detail, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError) -> PrettyJSONResponse:
        return _error(_validation_message(exc), 400)

    return app
