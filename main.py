"""
FastAPI application entry point
Minimal main.py - all business logic is in routers and services
"""
import asyncio

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from projectfiles import database
from projectfiles.core.config import settings
from projectfiles.core.dependencies import get_upload_manager
from projectfiles.core.exceptions import FileManagerError
from projectfiles.routers import files, projects, storage, uploads, websocket
from projectfiles.services.cache_service import close_cache_service, get_cache_service
from projectfiles.services.file_service import FileService
from projectfiles.services.storage_service import get_storage_service
from projectfiles.services.tree_store import TreeStore
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(title=settings.APP_TITLE, version=settings.APP_VERSION)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(projects.router)
app.include_router(files.router)
app.include_router(uploads.router)
app.include_router(storage.router)
app.include_router(websocket.router)


@app.exception_handler(FileManagerError)
async def file_manager_error_handler(request: Request, exc: FileManagerError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_class": exc.error_class},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Metadata store error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Metadata store error", "error_class": "transient"},
    )


async def sweep_abandoned_uploads():
    """Periodically drop idle chunked-upload sessions and their placeholder nodes"""
    while True:
        await asyncio.sleep(settings.UPLOAD_SWEEP_INTERVAL_SECONDS)
        if database.SessionLocal is None:
            continue
        db = database.SessionLocal()
        try:
            file_service = FileService(
                TreeStore(db),
                get_storage_service(),
                uploads=get_upload_manager(),
                cache=await get_cache_service(),
            )
            reaped = await file_service.reap_abandoned_uploads()
            if reaped:
                logger.info(f"Reaped {reaped} abandoned upload(s)")
        except FileManagerError as e:
            logger.error(f"Upload sweep failed: {e.message}")
        except Exception as e:
            # Keep sweeping after unexpected errors
            logger.exception(f"Upload sweep failed: {type(e).__name__}: {e}")
        finally:
            db.close()


@app.on_event("startup")
async def startup_event():
    """Initialize app on startup"""
    logger.info(f"Starting {settings.APP_TITLE} v{settings.APP_VERSION}")
    logger.info(f"Storage: {'S3' if settings.use_s3 else 'Local'}")

    if database.engine is not None:
        database.Base.metadata.create_all(bind=database.engine)
        logger.info("Database tables ensured")
    else:
        logger.warning("DATABASE_URL is not set; project routes will fail until it is configured")

    await get_cache_service()
    app.state.upload_sweeper = asyncio.create_task(sweep_abandoned_uploads())


@app.on_event("shutdown")
async def shutdown_event():
    sweeper = getattr(app.state, "upload_sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    await close_cache_service()
    logger.info("Shutdown complete")


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": settings.APP_VERSION}


@app.get("/api/config")
async def get_config():
    """Get current configuration"""
    storage_type = "s3" if settings.use_s3 else "local"
    return {
        "storage_type": storage_type,
        "bucket": settings.AWS_S3_BUCKET if settings.use_s3 else None,
        "region": settings.AWS_REGION if settings.use_s3 else None,
        "system_folders": list(settings.SYSTEM_FOLDERS),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
