import asyncio
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from routes.realtime_ws import router as realtime_router
from routes.session_route import router as session_router
from services.realtime.session_registry import SessionRegistry
from services.realtime.ws_session import ConnectionGateway
from utils.database_cleaner import DatabaseCleaner
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite database holding minted video sessions (DATABASE_DIR/app.db)
      - the in-memory session registry and the signaling gateway that owns it
      - the periodic cleanup of ended video-session rows
    and attach them to `app.state`.
    """
    settings: Settings = app.state.settings

    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    app.state.gateway = ConnectionGateway(SessionRegistry(), privileged_role=settings.privileged_role)

    cleaner = DatabaseCleaner(db_initializer, retention_seconds=settings.session_retention_seconds)
    cleanup_task = asyncio.create_task(cleaner.run_periodic_cleanup(settings.cleanup_interval_seconds))
    LOGGER.info("Signaling relay ready (privileged role %s)", settings.privileged_role)

    try:
        yield
    finally:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting DB initialization and live relay sessions.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        gateway = getattr(request.app.state, "gateway", None)
        return {
            "ok": True,
            "db_initialized": has_db,
            "active_sessions": len(gateway.registry) if gateway is not None else 0,
        }

    app.include_router(session_router)
    app.include_router(realtime_router)

    return app


app = create_app()
