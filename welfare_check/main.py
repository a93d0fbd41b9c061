"""
Welfare Check Reconciler - Main Application Entry Point

Receives Retell call lifecycle webhooks for scheduled welfare check-in
calls and keeps the call records the dashboard reads up to date.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from welfare_check.core.config import settings
from welfare_check.core.logging import setup_logging, get_logger
from welfare_check.core.exceptions import WelfareCheckException
from welfare_check.db import CallRecordStore, create_store
from welfare_check.services.reconciler import CallReconciler
from welfare_check.api.routes import webhooks, health

setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


def create_app(store: Optional[CallRecordStore] = None) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        store: Call record store to use; built from settings when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("=" * 60)
        logger.info(f"Starting {settings.app_name}")
        logger.info(f"Version: {VERSION}")
        logger.info(f"Environment: {settings.environment}")
        logger.info(f"Store backend: {settings.store_backend if store is None else type(store).__name__}")
        logger.info(f"Webhook signatures required: {settings.webhook_signature_required}")
        logger.info("=" * 60)

        active_store = store if store is not None else create_store()
        app.state.store_ready = await active_store.initialize()
        if not app.state.store_ready:
            logger.error("Call record store failed to initialize")

        app.state.store = active_store
        app.state.reconciler = CallReconciler(active_store)

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}")
        await active_store.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Welfare Check Reconciler API",
        description="""
        ## Welfare Check Call Reconciliation

        Ingests Retell call lifecycle webhooks (`call_started`, `call_ended`,
        `call_analyzed`) and reconciles them into welfare call records.

        ### Responses

        - **204**: event reconciled (including updates that changed nothing)
        - **200**: event type acknowledged but not acted on
        - **400**: malformed body or missing call id
        - **404**: no call record for the call id
        - **500**: store failure after retries
        """,
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WelfareCheckException)
    async def welfare_check_exception_handler(request: Request, exc: WelfareCheckException):
        """Handle custom welfare check exceptions"""
        logger.warning(f"WelfareCheckException: {exc.error_code} - {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict()
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": {"exception": str(exc)} if settings.debug else {}
            }
        )

    app.include_router(health.router)
    app.include_router(webhooks.router, prefix="/api/v1")

    @app.get("/api")
    async def api_info():
        """API information endpoint"""
        return {
            "service": settings.app_name,
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "retell_webhook": "/api/v1/webhooks/retell"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "welfare_check.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug
    )
