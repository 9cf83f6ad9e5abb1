import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from carebridge.config.logging_config import NO_CORRELATION_ID, correlation_id_var, setup_logging
from carebridge.config.settings import Config
from carebridge.database.connection import close_mongo_connection, connect_to_mongo, get_database
from carebridge.repositories.conversation_repository import ConversationRepository
from carebridge.repositories.device_repository import DeviceRepository
from carebridge.routers.chat import router as chat_router
from carebridge.routers.devices import router as devices_router
from carebridge.routers.realtime import router as realtime_router
from carebridge.services.errors import ChatError
from carebridge.services.notification_service import NotificationDispatcher
from carebridge.utils.broadcaster import ChannelBroadcaster
from carebridge.utils.locks import ConversationLockManager
from carebridge.utils.notifications import create_push
from carebridge.utils.realtime_bus import create_bus
from carebridge.utils.websocket_manager import ConnectionManager


setup_logging(Config.LOG_LEVEL, Config.LOG_PATH)
logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every log line of a request with the caller's X-Correlation-ID."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", NO_CORRELATION_ID)
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):

    await connect_to_mongo()
    db = get_database()
    await ConversationRepository(db).ensure_indexes()
    await DeviceRepository(db).ensure_indexes()
    await app.state.broadcaster.start()
    try:
        yield
    finally:
        await app.state.dispatcher.drain()
        await app.state.broadcaster.stop()
        await app.state.bus.close()
        await close_mongo_connection()


async def chat_error_handler(request: Request, exc: ChatError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Internal server error"}
    if not Config.is_production():
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


def create_app() -> FastAPI:
    app = FastAPI(title="CareBridge Chat", lifespan=lifespan)

    # realtime collaborators are built once per process and handed to handlers
    connections = ConnectionManager()
    app.state.connections = connections
    app.state.bus = create_bus(Config.REDIS_URL)
    app.state.broadcaster = ChannelBroadcaster(connections, app.state.bus)
    app.state.locks = ConversationLockManager(Config.CONVERSATION_LOCK_CAPACITY)
    app.state.dispatcher = NotificationDispatcher()
    app.state.push = create_push(Config.FCM_SERVICE_ACCOUNT_FILE, Config.FCM_PROJECT_ID)

    app.add_middleware(CorrelationIdMiddleware)
    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(chat_router)
    app.include_router(devices_router)
    app.include_router(realtime_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
