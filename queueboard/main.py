from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.routing import Mount

from queueboard.config import get_settings
from queueboard.dependencies.services import get_backend_client_cached

from queueboard.health import router as health_router
from queueboard.mcp_server import mcp
from queueboard.queue_board_view import router as queue_board_router
from queueboard.tools.queue import router as queue_router
from queueboard.tools.reminders import router as reminders_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)


configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings_snapshot = settings.model_dump(exclude={"backend_token"})
    logger.info("Application settings on startup: %s", settings_snapshot)

    has_mcp = any(isinstance(r, Mount) and r.path == "/mcp" for r in app.routes)
    logger.debug("MCP mount present: %s", has_mcp)

    client = get_backend_client_cached()
    logger.info("Application startup complete.")

    try:
        yield
    finally:
        logger.info("Closing booking backend client.")
        await client.close()
        logger.info("Application shutdown complete.")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(queue_router, prefix="/tools/queue")
app.include_router(reminders_router, prefix="/tools/reminders")
app.include_router(health_router)
app.include_router(queue_board_router)

app.mount("/mcp", mcp.streamable_http_app())
