"""REST API exposing VM sessions and the action pipeline.

Endpoints:

    GET  /health                  -> {"status": "ok", ...}
    POST /                        <- {"connect": "win10"}
                                  <- {"clone": "win10", "snapshot": "clean"}
                                  -> {"id": ..., "execute": url, "run": url, "close": url}
    POST /vm/{id}/api/execute     <- {"actions": [["mouseMove", 10, 20], ...], "isolated": false}
                                  -> {"success": true, "result": ...}
    POST /vm/{id}/run             <- {"commandLine": ["cmd", "/c", "dir"]}
    POST /vm/{id}/close

Creating sessions is protected by HTTP basic auth when a username or
password is configured; the per-session URLs act as capabilities.
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

from vmrobot.actions.calibration import RedRectangleCalibrator
from vmrobot.actions.pipeline import ActionPipeline
from vmrobot.config.settings import HypervisorConfig, Settings
from vmrobot.domain.errors import (
    PreconditionFailedError,
    ResourceNotFoundError,
    SessionCloseError,
    VMRobotError,
)
from vmrobot.hypervisor.base import Hypervisor, ProcessRequest, ProcessResult
from vmrobot.keyboard.translator import ScancodeTranslator
from vmrobot.session.manager import SessionManager
from vmrobot.session.vm import VMSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class CreateVMRequest(BaseModel):
    connect: str | None = Field(default=None, description="Running machine to attach to")
    clone: str | None = Field(default=None, description="Machine to clone and launch")
    snapshot: str | None = Field(default=None, description="Snapshot of the cloned machine to start from")


class CreateVMResponse(BaseModel):
    id: str
    execute: str
    run: str
    close: str


class ExecuteRequest(BaseModel):
    actions: list[Any] = Field(description="Ordered actions, list or object form")
    isolated: bool = Field(default=False, description="Record translation errors per action")


class ExecuteResponse(BaseModel):
    success: bool
    result: Any = None


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = 0


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def _matches(given: str, expected: str) -> bool:
    """Constant-time comparison that accepts non-ASCII credentials."""
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def build_hypervisor(config: HypervisorConfig) -> Hypervisor:
    """Create the configured hypervisor backend."""
    if config.backend == "memory":
        from vmrobot.hypervisor.memory import InMemoryHypervisor

        hypervisor = InMemoryHypervisor()
        for name in config.machines:
            hypervisor.add_machine(name)
        return hypervisor
    raise ValueError(f"Unknown hypervisor backend: {config.backend!r}")


def build_pipeline(settings: Settings) -> ActionPipeline:
    return ActionPipeline(
        translator=ScancodeTranslator.for_layout(settings.pipeline.keyboard_layout),
        calibrator=RedRectangleCalibrator(tolerance=settings.pipeline.calibration_tolerance),
        tick=settings.pipeline.smooth_move_tick,
    )


def create_app(
    settings: Settings | None = None,
    manager: SessionManager | None = None,
    pipeline: ActionPipeline | None = None,
) -> FastAPI:
    """Create the vmrobot REST API application.

    Args:
        settings: Configuration; defaults to ``Settings()``.
        manager: Optional pre-built SessionManager (for testing). When
                 omitted, the configured hypervisor is connected on startup.
        pipeline: Optional pre-built ActionPipeline (for testing).
    """
    settings = settings or Settings()
    security = HTTPBasic(auto_error=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        hypervisor = None
        if app.state.manager is None:
            hypervisor = build_hypervisor(settings.hypervisor)
            await hypervisor.connect()
            app.state.manager = SessionManager(
                hypervisor, clone_timeout=settings.hypervisor.clone_timeout
            )
            logger.info("vmrobot server started (backend=%s)", settings.hypervisor.backend)

        yield

        try:
            await app.state.manager.close_all()
        except SessionCloseError as e:
            logger.error("Some sessions could not be closed on shutdown: %s", e)
        if hypervisor is not None:
            await hypervisor.disconnect()
        logger.info("vmrobot server stopped")

    app = FastAPI(
        title="vmrobot",
        description="Remote keyboard/mouse control of virtual machines",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.pipeline = pipeline or build_pipeline(settings)

    def check_auth(credentials: HTTPBasicCredentials | None = Depends(security)) -> None:
        username = settings.server.username
        password = settings.server.password.get_secret_value() if settings.server.password else None
        if username is None and password is None:
            return
        if (
            credentials is None
            or (username is not None and not _matches(credentials.username, username))
            or (password is not None and not _matches(credentials.password, password))
        ):
            raise HTTPException(
                status_code=401,
                detail="Unauthorized",
                headers={"WWW-Authenticate": 'Basic realm="protected area"'},
            )

    def _get_session(vm_id: str) -> VMSession:
        try:
            return app.state.manager.get(vm_id)
        except ResourceNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.get("/health")
    async def health_check() -> HealthResponse:
        manager: SessionManager | None = app.state.manager
        return HealthResponse(status="ok", sessions=len(manager.sessions) if manager else 0)

    @app.post("/", dependencies=[Depends(check_auth)])
    async def create_vm(body: CreateVMRequest, request: Request) -> CreateVMResponse:
        manager: SessionManager = app.state.manager
        try:
            if body.clone:
                session = await manager.clone_and_launch(body.clone, snapshot=body.snapshot)
            elif body.connect:
                session = await manager.attach(body.connect)
            else:
                raise HTTPException(status_code=400, detail="Expected 'clone' or 'connect'")
        except PreconditionFailedError as e:
            raise HTTPException(status_code=412, detail=str(e)) from e
        except ResourceNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except VMRobotError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e

        base_url = f"{str(request.base_url).rstrip('/')}/vm/{session.id}"
        return CreateVMResponse(
            id=session.id,
            execute=f"{base_url}/api/execute",
            run=f"{base_url}/run",
            close=f"{base_url}/close",
        )

    @app.post("/vm/{vm_id}/api/execute")
    async def execute(vm_id: str, body: ExecuteRequest) -> ExecuteResponse:
        session = _get_session(vm_id)
        pipeline: ActionPipeline = app.state.pipeline
        try:
            if body.isolated:
                results = await pipeline.execute_isolated(session, body.actions)
                result: Any = [r.model_dump() for r in results]
            else:
                result = await pipeline.execute(session, body.actions)
        except VMRobotError as e:
            logger.warning("/vm/%s execute failed: %s", vm_id, e)
            return ExecuteResponse(success=False, result=f"{e} when executing /vm/{vm_id}/api/execute")
        return ExecuteResponse(success=True, result=result)

    @app.post("/vm/{vm_id}/run")
    async def run_process(vm_id: str, body: ProcessRequest) -> ProcessResult:
        session = _get_session(vm_id)
        logger.info("/vm/%s/run %s", vm_id, " ".join(body.command_line))
        try:
            return await session.run_process(body)
        except VMRobotError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e

    @app.post("/vm/{vm_id}/close")
    async def close_vm(vm_id: str) -> dict[str, str]:
        manager: SessionManager = app.state.manager
        try:
            await manager.close(vm_id)
        except ResourceNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except SessionCloseError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return {"status": "ok", "id": vm_id}

    return app


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main(settings: Settings | None = None) -> None:
    """Run the vmrobot server."""
    settings = settings or Settings()
    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
