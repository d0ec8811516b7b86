"""
Keyword Research API Application

FastAPI app that:
1. Initializes the session store on startup
2. Wires SellerSprite client, pipeline, store and cache into a session manager
3. Maps KeywordResearchError to JSON error responses
"""

import logging
import sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.cache import RedisCache, ResearchCache
from src.collector import SellerSpriteClient, SellerSpriteError
from src.database import SessionStore, check_db_connection, init_db
from src.research import (
    KeywordResearchError,
    KeywordResearchPipeline,
    ResearchSessionManager,
)
from src.utils import get_settings

from .keywords import router as keywords_router

# Configure logging to stdout
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="ASIN Keyword Research",
    description="Keyword aggregation, opportunity mining and gap analysis for Amazon products",
    version="2.0.0",
)
app.include_router(keywords_router)


# ============================================================================
# ERROR HANDLING
# ============================================================================

@app.exception_handler(KeywordResearchError)
async def keyword_research_error_handler(request: Request, exc: KeywordResearchError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code},
    )


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

def build_session_manager(settings, client: SellerSpriteClient) -> ResearchSessionManager:
    """Assemble the production object graph."""
    pipeline = KeywordResearchPipeline.from_settings(client, settings)
    return ResearchSessionManager(
        pipeline=pipeline,
        store=SessionStore(),
        cache=ResearchCache(RedisCache()),
    )


@app.on_event("startup")
async def startup_event():
    """Initialize database and wire the research service."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())

    logger.info("Initializing database...")
    try:
        init_db()
        if not check_db_connection():
            logger.warning("Database connection check failed - continuing anyway")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    try:
        client = SellerSpriteClient.from_settings(settings)
    except SellerSpriteError as e:
        logger.error(f"Keyword research disabled: {e}")
        app.state.session_manager = None
        return

    app.state.sellersprite_client = client
    app.state.session_manager = build_session_manager(settings, client)
    logger.info(f"Keyword research service ready ({settings.ENVIRONMENT})")


@app.on_event("shutdown")
async def shutdown_event():
    client = getattr(app.state, "sellersprite_client", None)
    if client is not None:
        await client.close()
    manager = getattr(app.state, "session_manager", None)
    if manager is not None:
        await manager.cache.redis.close()


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    return {"service": "asin-keyword-research", "version": app.version}


@app.get("/api/health")
async def health_check():
    """Database and cache status."""
    manager = getattr(app.state, "session_manager", None)
    cache = await manager.cache.redis.health_check() if manager else {"healthy": False, "status": "not configured"}
    database = check_db_connection()
    return {
        "status": "healthy" if database and manager else "degraded",
        "database": "connected" if database else "unavailable",
        "cache": cache,
        "research_service": "ready" if manager else "not configured",
    }


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
