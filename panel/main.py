from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .db.database import init_db
from .errors import (
    AllocationConflict,
    AllocationUnavailable,
    DaemonError,
    HasActiveServers,
    InsufficientCapacity,
    NotFound,
    PanelError,
    ValidationError,
)
from .logger import logger
from .routers import allocations, nodes, tasks
from .routers.servers import create as server_create
from .routers.servers import rebuild as server_rebuild

ERROR_STATUS_CODES: dict[type[PanelError], int] = {
    ValidationError: 400,
    AllocationUnavailable: 400,
    NotFound: 404,
    InsufficientCapacity: 409,
    AllocationConflict: 409,
    HasActiveServers: 409,
    DaemonError: 502,
}


def status_code_for(exc: PanelError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up and initializing the database...")
    await init_db()
    logger.info("Startup complete.")
    yield


api_app = FastAPI(root_path="/api")

api_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@api_app.exception_handler(PanelError)
async def panel_error_handler(request: Request, exc: PanelError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


api_app.include_router(nodes.router)
api_app.include_router(allocations.router)
api_app.include_router(server_create.router)
api_app.include_router(server_rebuild.router)
api_app.include_router(tasks.router)

app = FastAPI(lifespan=lifespan, title="Panel")
app.mount("/api", api_app)
