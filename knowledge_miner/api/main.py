#!/usr/bin/env python3
"""
FastAPI main application for YouTube Knowledge Miner
Video library, semantic search, Q&A and export API
"""

import asyncio
import os
import logging
from datetime import datetime
from typing import Optional

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

load_dotenv()

from .db import check_database, get_db_connection
from .errors import register_error_handlers
from .routers import anonymous, auth, categories, collections, export, qa, saved_searches, search, videos
from .services import anonymous_sessions, llm
from .utils.request_id import RequestIDMiddleware, setup_request_id_logging

setup_request_id_logging(level=os.getenv("LOG_LEVEL", "INFO"))

logger = logging.getLogger(__name__)

SERVICE_NAME = "YouTube Knowledge Miner API"
API_VERSION = "1.0.0"
SESSION_CLEANUP_INTERVAL_HOURS = float(os.getenv("SESSION_CLEANUP_INTERVAL_HOURS", "24"))


def get_allowed_origins():
    origins = os.getenv("ALLOWED_ORIGINS") or os.getenv("FRONTEND_URL") or "*"
    return [origin.strip() for origin in origins.split(",") if origin.strip()]


app = FastAPI(
    title=SERVICE_NAME,
    description="YouTube transcript library with semantic search, Q&A and export",
    version=API_VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(anonymous.router)
app.include_router(videos.router)
app.include_router(qa.video_qa_router)
app.include_router(qa.router)
app.include_router(categories.router)
app.include_router(collections.router)
app.include_router(saved_searches.router)
app.include_router(search.router)
app.include_router(export.router)


# =============================================================================
# Background session sweep
# =============================================================================

_cleanup_task: Optional[asyncio.Task] = None


def run_session_cleanup() -> int:
    """Delete guest sessions (and their videos) idle for too long."""
    conn = get_db_connection()
    try:
        return anonymous_sessions.cleanup_expired_sessions(conn)
    finally:
        conn.close()


async def _session_cleanup_loop(interval_seconds: float):
    while True:
        try:
            removed = await run_in_threadpool(run_session_cleanup)
            logger.info(f"[Anonymous] Session cleanup removed {removed} expired sessions")
        except (HTTPException, psycopg2.Error) as e:
            logger.error(f"[Anonymous] Session cleanup failed: {e}")
        await asyncio.sleep(interval_seconds)


@app.on_event("startup")
async def startup_event():
    global _cleanup_task

    logger.info("=" * 60)
    logger.info(f"{SERVICE_NAME} v{API_VERSION} starting")
    logger.info(f"   OpenAI configured: {llm.is_openai_configured()}")
    logger.info(f"   Chat model: {llm.get_chat_model()}")
    logger.info(f"   Guest video limit: {anonymous_sessions.ANONYMOUS_VIDEO_LIMIT}")
    logger.info("=" * 60)

    if SESSION_CLEANUP_INTERVAL_HOURS > 0:
        _cleanup_task = asyncio.create_task(_session_cleanup_loop(SESSION_CLEANUP_INTERVAL_HOURS * 3600))
    else:
        logger.info("Session cleanup disabled (SESSION_CLEANUP_INTERVAL_HOURS <= 0)")


@app.on_event("shutdown")
async def shutdown_event():
    global _cleanup_task
    if _cleanup_task is not None:
        _cleanup_task.cancel()
        try:
            await _cleanup_task
        except asyncio.CancelledError:
            pass
        _cleanup_task = None


# =============================================================================
# Service endpoints
# =============================================================================

@app.get("/")
@app.head("/")
async def root():
    """Root endpoint"""
    return {"status": "ok", "service": SERVICE_NAME}


@app.get("/health")
def health_check():
    """
    Health check endpoint for production monitoring
    Returns: 200 OK if healthy, 503 if the database is unreachable
    """
    health_status = {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": datetime.now().isoformat(),
        "checks": {},
    }

    if check_database():
        health_status["checks"]["database"] = "ok"
    else:
        health_status["checks"]["database"] = "degraded"
        health_status["status"] = "degraded"

    health_status["checks"]["openai"] = "configured" if llm.is_openai_configured() else "not_configured"

    status_code = 503 if health_status["status"] == "degraded" else 200
    return JSONResponse(content=health_status, status_code=status_code)


@app.get("/api/status")
def api_status():
    return {
        "service": SERVICE_NAME,
        "version": API_VERSION,
        "features": {
            "summaries": llm.is_openai_configured(),
            "semantic_search": llm.is_openai_configured(),
            "qa": llm.is_openai_configured(),
            "youtube_data_api": bool(os.getenv("YOUTUBE_API_KEY")),
        },
        "anonymous_video_limit": anonymous_sessions.ANONYMOUS_VIDEO_LIMIT,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
