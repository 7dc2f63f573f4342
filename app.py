from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from connections import ConnectionManager
from constants import LOG_FILE, LOG_LEVEL
from errors import BackendError, InvalidArgumentError, RoomAlreadyExistsError, RoomNotFoundError, RoomRegistryError
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from routers.clients import clients_router
from routers.rooms import rooms_router
from routers.websocket import websocket_router
from schemas.rooms import HealthResponse

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    RoomAlreadyExistsError: 409,
    RoomNotFoundError: 404,
    InvalidArgumentError: 400,
    BackendError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A registry handed to create_app belongs to the caller; one built here is closed here
    owns_registry = getattr(app.state, "registry", None) is None
    if owns_registry:
        app.state.registry = RoomRegistry.from_config()
        app.state.connection_manager = ConnectionManager(app.state.registry)
    logger.info("Room registry service started")
    try:
        yield
    finally:
        await app.state.connection_manager.close_all()
        if owns_registry:
            app.state.registry.close()
            del app.state.registry
            del app.state.connection_manager
        logger.info("Room registry service stopped")


async def registry_error_handler(request: Request, exc: RoomRegistryError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "kind": exc.kind, "operation": exc.operation},
    )


async def health(request: Request):
    registry: RoomRegistry = request.app.state.registry
    registry.ping()
    return HealthResponse(status="ok", backend=registry.backend.name, room_count=len(registry.get_all_rooms()))


def create_app(registry: Optional[RoomRegistry] = None) -> FastAPI:
    app = FastAPI(title="Room Registry", lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if registry is not None:
        app.state.registry = registry
        app.state.connection_manager = ConnectionManager(registry)

    app.add_exception_handler(RoomRegistryError, registry_error_handler)
    app.add_api_route("/health", health, methods=["GET"], response_model=HealthResponse, tags=["health"])
    app.include_router(rooms_router)
    app.include_router(clients_router)
    app.include_router(websocket_router)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
