from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kodi_integration.config import settings, setup_logging
from kodi_integration.database import close_db, init_db
from kodi_integration.dependencies import reset_integration, set_integration
from kodi_integration.services.errors import NotConfiguredError
from kodi_integration.services.integration_service import KodiIntegration

from kodi_integration.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting Kodi Integration...")

    try:
        await init_db()

        integration = KodiIntegration.from_settings(settings)
        integration.scheduler.start()
        set_integration(integration)
    except Exception as e:
        logger.error(f"Failed to start Kodi Integration: {e}", exc_info=True)
        raise

    # An unreachable backend must not keep the API from serving
    try:
        await integration.connect()
    except NotConfiguredError as e:
        logger.warning(f"Not connecting: {e}")

    logger.info("Kodi Integration started")

    yield

    logger.info("Shutting down Kodi Integration...")

    try:
        await integration.aclose()
    except Exception as e:
        logger.error(f"Error during integration shutdown: {e}", exc_info=True)
    finally:
        reset_integration()
        await close_db()

    logger.info("Kodi Integration stopped")


app = FastAPI(
    title="Kodi Integration",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    try:
        body = await request.body()
        logger.error(f"Request body: {body.decode('utf-8')}")

    except (ValueError, UnicodeDecodeError, RuntimeError):
        logger.error("Could not read request body")

    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )


def run() -> None:
    """Console entry point: serve the API with uvicorn"""
    import uvicorn

    uvicorn.run("kodi_integration.main:app", host="0.0.0.0", port=8000)
