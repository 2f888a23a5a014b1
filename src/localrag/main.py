import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from localrag.api.routes import router as rag_router
from localrag.engine import reset_engine_cache
from localrag.logging_config import configure_logging
from localrag.settings import Settings

_settings = Settings.from_env()
configure_logging(_settings.log_dir, _settings.log_level, json_console=_settings.log_format != "plain")

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="LocalRAG API")
app.include_router(rag_router)


@app.on_event("shutdown")
def _close_engine() -> None:
    """Release the session's store and worker pools."""

    reset_engine_cache()


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe."""
    return "ok"
