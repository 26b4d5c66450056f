"""FastAPI application exposing the reservation and dispatch services."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from kartqueue.enterprise.config.settings import get_settings
from kartqueue.observability import configure_logging, configure_tracer
from kartqueue.observability.metrics import REQUEST_COUNTER
from kartqueue.persistence import create_schema
from kartqueue.persistence.database import dispose_engine
from kartqueue.server.api.routers import (
	cases_router,
	events_router,
	health_router,
	karts_router,
	observability_router,
	orders_router,
	users_router,
)
from kartqueue.server.dependencies import get_message_bus, get_platform

settings = get_settings()
configure_logging(settings.logging, settings.environment)
configure_tracer("kartqueue-api", settings.telemetry.otlp_endpoint, settings.environment)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
	if settings.database.enabled:
		await create_schema()

	bus = get_message_bus()
	await bus.connect()
	await get_platform().triggers.bind(bus, settings.messaging.topic_triggers)
	logger.info("api_started", environment=settings.environment, bus=settings.messaging.backend)
	try:
		yield
	finally:
		await bus.close()
		if settings.database.enabled:
			await dispose_engine()


app = FastAPI(title="Kart Queue API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def count_requests(request: Request, call_next):
	REQUEST_COUNTER.inc()
	response = await call_next(request)
	return response


app.include_router(health_router, prefix="/api/v1")
app.include_router(orders_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(cases_router, prefix="/api/v1")
app.include_router(karts_router, prefix="/api/v1")
app.include_router(events_router, prefix="/api/v1")
app.include_router(observability_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
	return {"message": "Kart Queue API"}
