"""
Main FastAPI application for the subscription bot backend.
Serves auth, content materials, subscriptions, payments (checkout + provider webhooks),
health and metrics.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.routes import auth, health, materials, payments, subscriptions
from app.db.session import init_db
from app.utils.metrics import router as metrics_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    yield


app = FastAPI(
    title="Baguvix Subscription API",
    description="Subscriptions, payments and content for the Baguvix community bot",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = [settings.mini_app_url, "http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router)
app.include_router(materials.router)
app.include_router(subscriptions.router)
app.include_router(payments.router)
app.include_router(metrics_router)
