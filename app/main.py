"""Entry point for the FastAPI-powered metadata enrichment service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import settings
from .services.enrichment import InvalidRequestError, MetadataEnrichmentService
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
# httpx logs full request URLs, which carry the TMDB api_key parameter.
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=5.0),
        )
    )
    tmdb = TMDBClient(settings, tmdb_http_client)
    fastapi_app.state.enrichment_service = MetadataEnrichmentService(settings, tmdb)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie metadata enrichment for watch-history tier lists",
        version=__version__,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_enrichment_service(fastapi_app: FastAPI) -> MetadataEnrichmentService:
    service = getattr(fastapi_app.state, "enrichment_service", None)
    if not isinstance(service, MetadataEnrichmentService):
        raise RuntimeError("Enrichment service not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/fetch-metadata")
    async def fetch_metadata(request: Request) -> JSONResponse:
        service = get_enrichment_service(fastapi_app)
        try:
            payload = await request.json()
        except ValueError:
            return _error_response("Invalid request: body must be JSON", 400)
        if not isinstance(payload, dict):
            return _error_response("Invalid request: movies array required", 400)

        user_api_key = payload.get("userApiKey")
        if user_api_key is not None and not isinstance(user_api_key, str):
            return _error_response("Invalid request: userApiKey must be a string", 400)

        try:
            result = await service.enrich(payload.get("movies"), user_api_key)
        except InvalidRequestError as exc:
            return _error_response(str(exc), 400)
        except Exception as exc:
            logger.exception("Error in fetch-metadata")
            message = str(exc) or (
                "An unexpected error occurred while fetching movie metadata"
            )
            return _error_response(message, 500)
        return JSONResponse(result.to_payload())


def _error_response(message: str, status_code: int) -> JSONResponse:
    body: dict[str, Any] = {"error": message}
    return JSONResponse(body, status_code=status_code)


app = create_app()


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""

    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - manual execution
    run()
