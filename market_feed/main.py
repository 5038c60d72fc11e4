"""
Main FastAPI application for Crypto Market Feed Service.
Includes lifespan management for the shared HTTP client and the fallback store.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
import httpx
import time

from .core.config import provider_config, settings
from .core.logging_config import setup_logging, create_logger
from .api.endpoints import router as api_router
from .api.schemas import ErrorResponse
from .services.cache import FallbackStore, create_fallback_store
from .services.data_aggregator import MarketAggregator, create_aggregator

# Setup logging first
setup_logging()
logger = create_logger(__name__)


def create_app(
    store: Optional[FallbackStore] = None,
    aggregator: Optional[MarketAggregator] = None
) -> FastAPI:
    """
    Build the application.

    ``store`` and ``aggregator`` may be injected (tests); otherwise they are
    built from settings when the application starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Crypto Market Feed Service", extra={
            "version": settings.app_version,
            "debug": settings.debug,
            "fallback_store": settings.fallback_store_backend
        })

        client: Optional[httpx.AsyncClient] = None
        app.state.store = store or create_fallback_store()
        await app.state.store.connect()

        if aggregator is not None:
            app.state.aggregator = aggregator
        else:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.upstream_timeout, connect=10.0),
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
                follow_redirects=True
            )
            app.state.aggregator = create_aggregator(app.state.store, client)

        app.state.startup_time = datetime.now(timezone.utc)
        logger.info("Crypto Market Feed Service started successfully")

        yield  # Application is running

        logger.info("Shutting down Crypto Market Feed Service")
        if client is not None:
            await client.aclose()
        await app.state.store.disconnect()
        logger.info("Crypto Market Feed Service shutdown completed")

    app = FastAPI(
        title=settings.app_name,
        description="Best-effort crypto market data aggregation with per-slice fallbacks",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan
    )

    # Read-only public feed: any origin may call it
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=provider_config.CORS_ALLOW_HEADERS,
    )

    @app.middleware("http")
    async def answer_preflight(request: Request, call_next):
        """Every OPTIONS request gets an empty 200, whatever headers it asks for."""
        if request.method != "OPTIONS":
            return await call_next(request)
        return Response(status_code=200, headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, OPTIONS",
            "Access-Control-Allow-Headers": ", ".join(provider_config.CORS_ALLOW_HEADERS),
            "Access-Control-Max-Age": "600"
        })

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests and responses."""
        start_time = time.time()

        logger.info("Request received", extra={
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent")
        })

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error("Request failed", extra={
                "method": request.method,
                "url": str(request.url),
                "error": str(e),
                "process_time": round(process_time, 4)
            })
            return JSONResponse(
                status_code=500,
                content=jsonable_encoder(ErrorResponse(
                    error="Internal server error",
                    error_code="INTERNAL_ERROR"
                ))
            )

        process_time = time.time() - start_time
        logger.info("Request completed", extra={
            "method": request.method,
            "url": str(request.url),
            "status_code": response.status_code,
            "process_time": round(process_time, 4)
        })
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        """Handle 404 errors with structured response."""
        return JSONResponse(
            status_code=404,
            content=jsonable_encoder(ErrorResponse(
                error="Endpoint not found",
                error_code="NOT_FOUND",
                details={
                    "path": request.url.path,
                    "method": request.method
                }
            ))
        )

    app.include_router(api_router, tags=["Market Feed API"])

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint with service information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "docs_url": "/docs" if settings.debug else "disabled",
            "timestamp": datetime.now(timezone.utc)
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "market_feed.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True
    )
