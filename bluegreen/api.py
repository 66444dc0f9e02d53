import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from bluegreen.controlplane import ControlPlane
from bluegreen.errors import (
    BlueGreenError,
    ChaosInjectionError,
    ConfigMissingError,
    DrillError,
    InvalidPoolError,
    MalformedRecordError,
    NotFoundError,
    PersistError,
    ProxyUnreachableError,
    ReloadPendingError,
    TemplateError,
)
from bluegreen.models import ChaosResult, DrillReport, Pool, StatusView, SwitchResult

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins.
STATUS_CODES: list[tuple[type, int]] = [
    (InvalidPoolError, 400),
    (ReloadPendingError, 409),
    (ConfigMissingError, 503),
    (NotFoundError, 503),
    (MalformedRecordError, 503),
    (ChaosInjectionError, 502),
    (ProxyUnreachableError, 502),
    (TemplateError, 502),
    (PersistError, 502),
    (DrillError, 502),
]


def status_code_for(exc: BlueGreenError) -> int:
    for cls, code in STATUS_CODES:
        if isinstance(exc, cls):
            return code
    return 500


def create_app(plane: ControlPlane) -> FastAPI:
    """Serve the control plane over HTTP.

    Requests run concurrently in FastAPI's threadpool; switches stay
    linearised because they all go through the store's writer lock.
    """

    def require_config():
        if not plane.store.exists():
            raise ConfigMissingError(plane.store.name, "Environment file")

    app = FastAPI(
        title="Blue/Green Control Plane",
        description="Pool switching and failover verification for a blue/green deployment",
        version="1.0.0",
        dependencies=[Depends(require_config)],
    )

    @app.exception_handler(BlueGreenError)
    async def handle_error(request: Request, exc: BlueGreenError):
        code = status_code_for(exc)
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        body = {"detail": str(exc), "error": type(exc).__name__}
        if isinstance(exc, ReloadPendingError):
            body["active_pool"] = Pool.parse(exc.pool).value
        if isinstance(exc, DrillError) and exc.report is not None:
            body["report"] = exc.report.model_dump(mode="json")
        return JSONResponse(status_code=code, content=body)

    @app.get("/status", response_model=StatusView)
    def get_status():
        return plane.status.snapshot()

    @app.post("/switch/{pool}", response_model=SwitchResult)
    def switch(pool: str):
        return plane.switcher.switch_to(pool)

    @app.post("/reload")
    def reload():
        pool = plane.switcher.retry_reload()
        return {"active_pool": pool.value, "message": f"Nginx reloaded for {pool.value}"}

    @app.post("/chaos", response_model=ChaosResult)
    def chaos(pool: Optional[str] = None):
        return plane.chaos.induce_chaos(pool)

    @app.post("/heal", response_model=ChaosResult)
    def heal(pool: Optional[str] = None):
        return plane.chaos.heal_chaos(pool)

    @app.post("/drill", response_model=DrillReport)
    def drill():
        return plane.drill.run()

    return app
