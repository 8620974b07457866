from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wastetrack import __version__
from wastetrack.api.errors import register_exception_handlers
from wastetrack.api.routers import auto_approval, health, shipments
from wastetrack.common.logger import configure_logging
from wastetrack.core.config import get_settings

settings = get_settings()

configure_logging(settings)

app = FastAPI(
    title=settings.app_name,
    description="Waste shipment custody tracking with time-bounded auto-approval",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health.router)
app.include_router(auto_approval.router, prefix="/api")
app.include_router(shipments.router, prefix="/api")


@app.get("/")
def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
