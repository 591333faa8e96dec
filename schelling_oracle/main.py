"""
Schelling Oracle FastAPI Server

Main application entry point for the oracle aggregation API.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schelling_oracle.config import Settings, get_cors_config, get_settings
from schelling_oracle.errors import OracleError
from schelling_oracle.protocol.service import OracleService
from schelling_oracle.routers.providers import router as providers_router
from schelling_oracle.routers.requests import router as requests_router

logger = logging.getLogger(__name__)


async def sweep_forever(service: OracleService, interval: float) -> None:
    """Expire due requests every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            closed = await asyncio.to_thread(service.sweep)
        except Exception:
            logger.exception("Expiry sweep failed")
            continue
        if closed:
            logger.info(f"Sweep closed {closed} requests")


async def oracle_error_handler(request: Request, exc: OracleError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail},
    )


def create_app(
    service: Optional[OracleService] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """
    Build the API application.

    Args:
        service: Preconfigured service; built from settings at startup when omitted
        settings: Settings to use instead of the environment

    Returns:
        The FastAPI application
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            app.state.service = OracleService.from_settings(settings)
        await asyncio.to_thread(app.state.service.reconcile)
        sweeper = asyncio.create_task(
            sweep_forever(app.state.service, settings.ORACLE_SWEEP_INTERVAL_SECONDS)
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
            await asyncio.to_thread(app.state.service.deliver_notifications)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Commit/reveal oracle aggregation with median consensus and provider reputation",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.service = service

    # Configure CORS
    app.add_middleware(CORSMiddleware, **get_cors_config(settings))

    app.add_exception_handler(OracleError, oracle_error_handler)

    # Include routers
    app.include_router(requests_router)
    app.include_router(providers_router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {"message": settings.APP_NAME}

    @app.get("/health")
    async def healthcheck():
        """Health check endpoint"""
        return {"status": "healthy", "service": "schelling-oracle"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
