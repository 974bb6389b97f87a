"""
VTRIA ERP FastAPI Main Application
Entry point for the VTRIA engineering/manufacturing ERP REST API
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vtria_erp.api.v1.api_router import api_router
from vtria_erp.core.config import settings
from vtria_erp.core.database import SessionLocal, check_db_connection, init_db
from vtria_erp.core.exceptions import VTRIAException
from vtria_erp.core.logging import get_logger, setup_logging, setup_uvicorn_logging
from vtria_erp.core.responses import error_response
from vtria_erp.services.reference_data import seed_reference_data
from vtria_erp.services.sla_monitor import SLAScheduler

logger = get_logger("api")

sla_scheduler = SLAScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown

    Creates tables, seeds reference data and runs the SLA scheduler
    for the lifetime of the process.
    """
    setup_logging()
    setup_uvicorn_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not check_db_connection()["connected"]:
        logger.error("Failed to connect to database on startup")
        raise RuntimeError("Database connection failed")

    if settings.AUTO_CREATE_TABLES:
        init_db()
    db = SessionLocal()
    try:
        seed_reference_data(db)
    finally:
        db.close()

    if settings.ENABLE_SLA_SCHEDULER:
        sla_scheduler.start()
    logger.info("Application startup completed successfully")

    yield

    sla_scheduler.stop()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## VTRIA Engineering/Manufacturing ERP API

    Case-driven ERP for an engineering and manufacturing business.

    ### Business Modules:
    - **Cases**: enquiry to closure workflow with sub-states, approvals and SLA tracking
    - **Sales**: enquiries, estimations, quotations and sales orders
    - **Purchasing**: vendors, requisitions, purchase orders and goods receipts
    - **Inventory**: products, warehouses and stock movements
    - **Manufacturing**: work orders and delivery notes
    - **HR**: employees, geofenced attendance and leave
    - **Audit**: full audit trail with scope change approval
    """,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VTRIAException)
async def vtria_exception_handler(request: Request, exc: VTRIAException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_response(exc.message, exc.details))
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(str(exc.detail)),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(error_response("Validation failed", exc.errors()))
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=error_response(
            "Internal server error",
            str(exc) if settings.DEBUG else None
        )
    )


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    db_status = check_db_connection()
    return {
        "status": "healthy" if db_status["connected"] else "degraded",
        "version": settings.APP_VERSION,
        "database": "connected" if db_status["connected"] else "disconnected",
        "sla_scheduler": "running" if sla_scheduler.running else "stopped",
    }


# System information endpoint
@app.get("/info", tags=["System"])
async def system_info():
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api_prefix": settings.API_PREFIX,
        "docs_url": settings.DOCS_URL,
        "business_modules": {
            "cases": "Case lifecycle, sub-states, approvals and SLA",
            "sales": "Enquiries, estimations, quotations, sales orders",
            "purchasing": "Vendors, requisitions, purchase orders, goods receipts",
            "inventory": "Products, warehouses, stock movements",
            "manufacturing": "Work orders and delivery notes",
            "hr": "Employees, attendance and leave",
            "audit": "Audit trail and scope changes",
        }
    }


# Include API routers
app.include_router(api_router, prefix=settings.API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vtria_erp.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
