# planhub/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from planhub.core.config import settings
from planhub.core.logging_config import setup_logging
from planhub.routers.analyze import router as analyze_router
from planhub.routers.external_api import router as external_api_router
from planhub.routers.health import router as health_router
from planhub.routers.leads import router as leads_router
from planhub.routers.marketing_plan import router as marketing_plan_router
from planhub.routers.vendors import router as vendors_router
from planhub.routers.webhook import router as webhook_router

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", include_in_schema=False)
@app.get("", include_in_schema=False)
def root():
    return {"message": "backend up"}


# Routers
app.include_router(health_router)
app.include_router(leads_router)
app.include_router(marketing_plan_router)
app.include_router(external_api_router)
app.include_router(webhook_router)
app.include_router(analyze_router)
app.include_router(vendors_router)


@app.on_event("startup")
async def log_routes():
    logger.info("=== registered routes ===")
    for route in app.routes:
        if isinstance(route, APIRoute):
            logger.info("%s -> %s", sorted(route.methods), route.path)
