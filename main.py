import inspect
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from openai import AsyncOpenAI

from dal.post_dal import PostDAL
from routes.post_route import router as post_router
from routes.score_route import router as score_router
from services.scoring.food_scorer import FoodScorer
from services.scoring.history import HealthScoreHistory
from services.scoring.trigger import ScoringTrigger
from services.storage.object_store import PUBLIC_PREFIX, ObjectStore
from services.upload.orchestrator import UploadOrchestrator
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


async def _close_quietly(client) -> None:
    """Close a client exposing `aclose`/`close`, ignoring shutdown errors."""
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
        LOGGER.warning("Ignoring error while closing %r: %s", client, exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the settings (unless injected by `create_app`)
      - the SQLite database at <DATABASE_DIR>/app.db
      - the object store and its public file mount
      - the shared httpx and OpenAI async clients
      - the scorer, scoring trigger, upload orchestrator and score history
    and attach them to `app.state`.
    """
    settings: Optional[Settings] = getattr(app.state, "settings", None)
    if settings is None:
        settings = Settings.from_env()
        app.state.settings = settings
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db_initializer = AsyncDatabaseInitializer(settings.database_dir, reset=settings.reset_database_on_startup)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    store = ObjectStore(settings.storage_dir, settings.storage_bucket, settings.public_base_url)
    app.state.object_store = store
    mount_path = f"{PUBLIC_PREFIX}/{store.bucket}"
    if not any(getattr(route, "path", None) == mount_path for route in app.routes):
        app.mount(mount_path, StaticFiles(directory=store.bucket_dir), name="public-objects")

    owned_clients = []
    http_client = getattr(app.state, "http_client", None)
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.trigger_timeout + 5.0))
        app.state.http_client = http_client
        owned_clients.append(http_client)

    openai_client = getattr(app.state, "openai_client", None)
    if openai_client is None:
        try:
            openai_client = AsyncOpenAI()
        except Exception as exc:
            raise RuntimeError("Failed to initialize OpenAI Async client; is OPENAI_API_KEY set?") from exc
        app.state.openai_client = openai_client
        owned_clients.append(openai_client)

    app.state.food_scorer = FoodScorer(
        openai_client,
        http_client,
        models=settings.scoring_models,
        max_attempts=settings.scoring_max_attempts,
        base_delay=settings.overload_base_delay,
        image_timeout=settings.image_fetch_timeout,
        inference_timeout=settings.inference_timeout,
    )

    trigger = ScoringTrigger(http_client, settings.scoring_function_url, timeout=settings.trigger_timeout)
    post_dal = PostDAL(db_initializer)
    orchestrator = UploadOrchestrator(store, post_dal, trigger, max_retries=settings.upload_max_retries)
    app.state.scoring_trigger = trigger
    app.state.upload_orchestrator = orchestrator
    app.state.score_history = HealthScoreHistory(post_dal, trigger)

    try:
        yield
    finally:
        # Scoring tasks may call back into this server, which is stopping.
        await orchestrator.wait_for_background_tasks(timeout=settings.shutdown_grace_period)
        for client in owned_clients:
            await _close_quietly(client)
        # Clients created here are recreated on the next startup.
        if http_client in owned_clients:
            app.state.http_client = None
        if openai_client in owned_clients:
            app.state.openai_client = None


def create_app(
    settings: Optional[Settings] = None,
    *,
    openai_client: Optional[AsyncOpenAI] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Shared clients passed here are reused instead of being created (and
    closed) by the lifespan.
    """
    app = FastAPI(title="BiteClub", lifespan=lifespan)
    app.state.settings = settings
    app.state.openai_client = openai_client
    app.state.http_client = http_client

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies DB initializer and OpenAI client presence.
        """
        has_db = getattr(request.app.state, "db_initializer", None) is not None
        has_openai = getattr(request.app.state, "openai_client", None) is not None
        return {"ok": True, "db_initialized": has_db, "openai_available": has_openai}

    # Register application routers
    app.include_router(score_router)
    app.include_router(post_router)

    return app


app = create_app()
