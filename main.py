import inspect
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from google import genai
from openai import AsyncOpenAI

from dal.generation_dal import GenerationDAL
from routes.generation_route import router as generation_router
from routes.generation_ws import router as generation_ws_router
from routes.history_route import router as history_router
from services.generation.image_normalizer import ImageNormalizer
from services.generation.orchestrator import PipelineOrchestrator
from services.generation.reconstruction_client import ReconstructionClient
from services.generation.view_backends import GeminiViewGenerator, OpenAIViewGenerator
from services.generation.view_synthesis import ViewSynthesizer
from services.history_recorder import HistoryRecorder
from services.product_url import ProductImageFetcher
from services.session_store import SessionStore
from utils.app_config import GenerationConfig
from utils.database_init import AsyncDatabaseInitializer

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
LOGGER = logging.getLogger(__name__)

LifespanHandler = Callable[[FastAPI], Any]


async def _close_quietly(client: Any) -> None:
    """Close a client that exposes `aclose` or `close`, sync or async."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception as exc:
        # Shutdown errors must not mask the original failure.
        LOGGER.warning("Error while closing %s: %s", type(client).__name__, exc)


def configure_logging(level: str) -> None:
    """Apply the configured level to the root logger."""
    logging.getLogger().setLevel(level)


async def shutdown_services(
    session_store: SessionStore,
    reconstruction: ReconstructionClient,
    *clients: Any,
) -> None:
    """Cancel every session, let the remote job cancels go out, then close clients."""
    session_store.close_all()
    await reconstruction.drain()
    for client in clients:
        if client is not None:
            await _close_quietly(client)


def build_session_store(
    config: GenerationConfig,
    synthesizer: ViewSynthesizer,
    reconstruction: ReconstructionClient,
    recorder: Optional[HistoryRecorder] = None,
) -> SessionStore:
    """Return a store whose sessions share the pipeline collaborators."""
    normalizer = ImageNormalizer(max_size=config.max_image_size)

    def factory(session_id: str) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            synthesizer,
            normalizer,
            reconstruction,
            session_id=session_id,
            on_complete=recorder,
        )

    return SessionStore(factory)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan manager to initialize:
      - the SQLite history database (fresh on startup, at DATABASE_DIR/app.db)
      - the shared httpx, Gemini and (optionally) OpenAI clients
      - the session store that owns every generation session
    and attach them to `app.state`.
    """
    config = GenerationConfig.from_env()
    config.require_credentials()
    configure_logging(config.log_level)
    app.state.config = config

    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(120.0, connect=10.0))
    app.state.http_client = http_client

    try:
        gemini_client = genai.Client(api_key=config.google_api_key)
    except Exception as exc:
        raise RuntimeError("Failed to initialize Gemini client") from exc
    app.state.gemini_client = gemini_client

    openai_client = None
    if config.image_backend == "openai":
        try:
            openai_client = AsyncOpenAI(api_key=config.openai_api_key)
        except Exception as exc:
            raise RuntimeError("Failed to initialize OpenAI Async client") from exc
        generator = OpenAIViewGenerator(openai_client, model=config.openai_image_model)
    else:
        generator = GeminiViewGenerator(gemini_client, model=config.gemini_image_model)
    app.state.openai_client = openai_client

    reconstruction = ReconstructionClient(
        http_client,
        config.fal_key,
        submit_url=config.reconstruction_url,
        poll_interval=config.poll_interval,
        max_wait=config.max_wait,
    )
    recorder = HistoryRecorder(GenerationDAL(db_initializer))
    app.state.session_store = build_session_store(config, ViewSynthesizer(generator), reconstruction, recorder)
    app.state.product_fetcher = ProductImageFetcher(gemini_client, http_client, model=config.gemini_text_model)
    LOGGER.info("Generation service ready (image backend: %s)", config.image_backend)

    try:
        yield
    finally:
        await shutdown_services(app.state.session_store, reconstruction, openai_client, http_client)


def create_app(lifespan_handler: Optional[LifespanHandler] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        lifespan_handler: Replacement lifespan, used by tests to inject fakes.
    """
    app = FastAPI(title="Product to 3D", lifespan=lifespan_handler or lifespan)

    @app.get("/health")
    async def health(request: Request):
        """Simple health check that reports which shared services are present."""
        state = request.app.state
        return {
            "ok": True,
            "db_initialized": hasattr(state, "db_initializer"),
            "sessions_available": getattr(state, "session_store", None) is not None,
            "active_sessions": len(state.session_store) if getattr(state, "session_store", None) else 0,
        }

    # Register application routers
    app.include_router(generation_router)
    app.include_router(generation_ws_router)
    app.include_router(history_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").lower(),
    )
