# ------------------------------ IMPORTS ------------------------------
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional, Callable
import logging

from core.database import init_db
from core.config.settings import settings
from core.exceptions import AutomationError, ERROR_VALIDATION
from shalom.routes import router as shalom_router
from shalom.service import ShalomService

# ------------------------------ SETUP ------------------------------
logger = logging.getLogger("shalom")

# ------------------------------ LIFESPAN ------------------------------
def build_lifespan(service_factory):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables, start the shared browser and restore sessions; flush them on exit."""
        logger.info("Initializing database...")
        init_db()
        logger.info("Database initialized successfully")

        service = service_factory()
        app.state.shalom_service = service
        await service.start()
        logger.info("Shalom service started")

        try:
            yield
        finally:
            logger.info("Shutting down Shalom service...")
            await service.shutdown()

    return lifespan

# ------------------------------ ERROR HANDLERS ------------------------------
async def automation_error_handler(request: Request, exc: AutomationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error_type": ERROR_VALIDATION,
            "error": "ValidationError",
            "message": "Invalid request body",
            "details": [
                {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in exc.errors()
            ],
        },
    )

# ------------------------------ APP ------------------------------
def create_app(service_factory: Optional[Callable[[], ShalomService]] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Multi-tenant automation API for the Shalom courier portal",
        version=settings.APP_VERSION,
        lifespan=build_lifespan(service_factory or ShalomService.build),
    )

    # ------------------------------ CORS ------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AutomationError, automation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # ------------------------------ ROUTERS ------------------------------
    app.include_router(shalom_router, prefix="/api", tags=["Shalom"])

    # ------------------------------ HEALTH ENDPOINTS ------------------------------
    @app.get("/", tags=["Health"])
    async def root():
        return {"message": settings.APP_NAME, "status": "running"}

    @app.get("/health", tags=["Health"])
    async def health(request: Request):
        service = getattr(request.app.state, "shalom_service", None)
        return {
            "status": "healthy",
            "live_sessions": len(service.manager.registry) if service else 0,
        }

    return app

app = create_app()

# ------------------------------ MAIN ------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.api.host, port=settings.api.port, reload=True)

# ------------------------------ END OF FILE ------------------------------
