import asyncio
import contextlib

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from shortener.config import settings
from shortener.delete_processor.delete_worker import start_delete_worker
from shortener.dependencies import get_app_logger, get_queue, get_storage, get_url_service
from shortener.exceptions import ShortenerError
from shortener.services.url_service import URLService
from shortener.api.v1 import urls, user, redirect


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the delete worker for as long as the app is up"""
    logger = get_app_logger()
    storage = get_storage()
    worker, task = start_delete_worker(queue=get_queue(), storage=storage, logger=logger)
    try:
        yield
    finally:
        worker.stop()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        storage.close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="A URL shortener service built with FastAPI",
    debug=settings.debug,
    lifespan=lifespan
)


@app.exception_handler(ShortenerError)
async def shortener_error_handler(request: Request, exc: ShortenerError):
    """Answer with the status code the error carries"""
    if exc.status_code >= 500:
        get_app_logger().error("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment, "storage": settings.storage_backend}


@app.get("/ping", response_class=PlainTextResponse)
async def ping(url_service: URLService = Depends(get_url_service)):
    """Storage connectivity check (database ping with a short timeout)"""
    if not await url_service.ping():
        raise HTTPException(status_code=500, detail="Database connection error")
    return "OK"


######## Include routers
app.include_router(urls.router, prefix="/api/v1")
app.include_router(user.router, prefix="/api/v1")
app.include_router(redirect.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port)
