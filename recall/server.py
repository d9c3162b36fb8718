"""
Recall Server

FastAPI server answering reminder questions.

Endpoints:
- POST /search: Answer a query over the caller's reminders
- GET /health: Health check

Pipeline:
1. Authenticate (bearer token or admin bypass)
2. Resolve dates and embed the query
3. Run retrieval strategies, fuse and hydrate
4. Synthesize the answer
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .common.auth import AuthVerifier
from .common.config import RecallConfig, ensure_directories, load_config
from .common.errors import QueryValidationError, RecallError
from .retriever.pipeline import SearchPipeline
from .retriever.temporal import explicit_range

logger = logging.getLogger("recall.server")


# Global state
config: RecallConfig = load_config()
pipeline: Optional[SearchPipeline] = None
auth_verifier: Optional[AuthVerifier] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global pipeline, auth_verifier

    logger.info("Starting up...")
    ensure_directories()

    logger.info(
        "Using config (store=%s, embedding=%s, llm=%s)",
        config.store.backend, config.embedding.backend, config.llm.provider,
    )

    pipeline = SearchPipeline.from_config(config)
    auth_verifier = AuthVerifier(
        supabase_url=config.store.supabase_url,
        api_key=config.store.supabase_anon_key or config.store.supabase_service_role_key,
        admin_secret=config.server.admin_secret,
    )
    logger.info("Search pipeline ready")

    yield

    if pipeline:
        await pipeline.close()
    logger.info("Shutting down...")


app = FastAPI(
    title="Recall",
    description="Hybrid reminder retrieval and answer synthesis",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.server.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-admin-secret"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "recall",
        "initialized": pipeline is not None,
        "embedding_backend": pipeline.embedding_service.backend_name if pipeline else None,
        "llm_available": pipeline.synthesizer.has_llm if pipeline else False,
    }


@app.post("/search")
async def search(request: Request):
    """
    Answer a query over the caller's reminders.

    Body: {query, dev_user_id?, target_date?, start_date?, end_date?}
    """
    if not pipeline or not auth_verifier:
        return _error(503, "Service not initialized")

    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "Invalid JSON body")
    if not isinstance(body, dict):
        return _error(400, "Invalid JSON body")

    query = body.get("query")
    if not isinstance(query, str) or not query.strip():
        return _error(400, "Query is required")

    try:
        user_id = await auth_verifier.authenticate(
            authorization=request.headers.get("authorization"),
            admin_secret=request.headers.get("x-admin-secret"),
            dev_user_id=body.get("dev_user_id"),
        )

        override = explicit_range(
            target_date=body.get("target_date"),
            start_date=body.get("start_date"),
            end_date=body.get("end_date"),
        )
        payload = await pipeline.search(query, user_id, explicit_range=override)
    except QueryValidationError as e:
        return _error(400, str(e))
    except RecallError as e:
        if e.status_code >= 500:
            logger.error("Search failed: %s", e)
        return _error(e.status_code, str(e))
    except Exception:
        logger.exception("Unhandled error during search")
        return _error(500, "Internal server error")

    return JSONResponse(payload.to_dict())


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Recall server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        "recall.server:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
