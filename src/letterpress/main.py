# src/letterpress/main.py
"""ASGI application: the publishing API plus optional in-process delivery workers."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from letterpress.api.v1 import newsletters_router
from letterpress.core.settings import settings
from letterpress.db.session import SessionLocal
from letterpress.services.delivery_worker import DeliveryWorker
from letterpress.services.email_client import get_email_client

app = FastAPI(
    title="Letterpress API",
    description="Idempotent newsletter publishing with transactional delivery",
    version=settings.app_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.add_middleware(GZipMiddleware)

app.include_router(newsletters_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    """Start the configured number of delivery workers, if enabled."""
    workers: list[DeliveryWorker] = []
    if settings.delivery_worker_enabled:
        email_client = get_email_client()
        for index in range(max(1, settings.delivery_worker_count)):
            worker = DeliveryWorker(
                email_client,
                SessionLocal,
                name=f"delivery-worker-{index}",
            )
            await worker.start()
            workers.append(worker)
    app.state.delivery_workers = workers


@app.on_event("shutdown")
async def on_shutdown() -> None:
    workers: list[DeliveryWorker] = getattr(app.state, "delivery_workers", [])
    for worker in workers:
        await worker.stop()
    if workers:
        await get_email_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness probe; does not touch the database."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "name": "Letterpress API",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("letterpress.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
