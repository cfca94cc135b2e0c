import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi

from schoollink.api import academics, grades, report_cards
from schoollink.config import settings
from schoollink.database import engine, Base
from schoollink.exceptions import SchoolLinkError
from schoollink.middleware.logging import setup_logging, add_logging_middleware
import schoollink.models  # noqa: F401  registers every model on Base.metadata

# Initialize FastAPI app
app = FastAPI(
    title="SchoolLink API",
    description="Academic calendar, grade entry and report cards for multi-school management",
    version="1.0.0",
    docs_url=None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup logging
setup_logging()
add_logging_middleware(app)
logger = logging.getLogger(__name__)

# Errors raised by the services carry their own status code
@app.exception_handler(SchoolLinkError)
async def schoollink_exception_handler(request: Request, exc: SchoolLinkError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message} [status: {exc.status_code}]")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )

# Custom exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )

# Create database tables
@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or verified")

# Include routers
app.include_router(academics.router, prefix="/api", tags=["Academics"])
app.include_router(grades.router, prefix="/api", tags=["Grades"])
app.include_router(report_cards.router, prefix="/api", tags=["Report Cards"])

# API documentation
@app.get("/api/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    return get_swagger_ui_html(
        openapi_url="/api/openapi.json",
        title="SchoolLink API Documentation",
        swagger_ui_parameters={"defaultModelsExpandDepth": -1},
    )

@app.get("/api/openapi.json", include_in_schema=False)
async def get_openapi_endpoint():
    return get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

@app.get("/", tags=["Root"])
async def root():
    return {"message": "Welcome to SchoolLink API. Visit /api/docs for documentation."}

# Run the server
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("schoollink.main:app", host="0.0.0.0", port=5000, reload=True)
