"""FastAPI server for the clinic chat agent.

Run with:
    uv run uvicorn clinic_agent.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from clinic_agent.agent import create_clinic_agent
from clinic_agent.api.routes import router
from clinic_agent.config import (
    CORS_ORIGINS,
    SERVER_HOST,
    SERVER_PORT,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
)
from clinic_agent.services.supabase_client import SupabaseClient

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the database client and the agent once, tear them down on exit."""
    store = None
    if SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY:
        store = SupabaseClient()
    else:
        logger.warning("Supabase is not configured; chat bookings and logs are disabled")

    agent = create_clinic_agent(store)
    application.state.store = store
    application.state.agent = agent
    logger.info("Agent ready.")
    yield

    chat_log = agent.config.chat_log
    if chat_log is not None:
        chat_log.shutdown(wait=True)
    if store is not None:
        store.close()


app = FastAPI(
    title="Clinic Chat Agent",
    description=(
        "AI receptionist for Dr. Priyanka's Naturopathy Clinic. Answers "
        "questions and books appointments."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (client-supplied or generated) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "Clinic Chat Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting clinic chat API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "clinic_agent.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
