"""FastAPI application exposing indexing and search per user.

Authentication happens upstream; the caller identifies the user with the
``X-User-Id`` header.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, List

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from notefinder import __version__
from notefinder.config import AppConfig
from notefinder.errors import EmbeddingError, InvalidK
from notefinder.models import SearchHit
from notefinder.service import RetrievalService, create_service

LOGGER = logging.getLogger(__name__)

MAX_TOP_K = 20
# Applied when a search request omits min_score.
DEFAULT_MIN_SCORE = 0.1

app = FastAPI(title="NoteFinder API", version=__version__)
_service_lock = threading.Lock()


class IndexPayload(BaseModel):
    force: bool = False


class SearchPayload(BaseModel):
    query: str
    top_k: int = 5
    min_score: float | None = None


def get_service(request: Request) -> RetrievalService:
    state = request.app.state
    with _service_lock:
        service = getattr(state, "service", None)
        if service is None:
            config = getattr(state, "config", None) or AppConfig()
            service = create_service(config, base_dir=Path.cwd())
            state.service = service
    return service


def get_user_id(x_user_id: str = Header(...)) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="Missing user id")
    return user_id


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    service = getattr(app.state, "service", None)
    if service is not None:
        service.close()
        app.state.service = None


@app.post("/index")
async def build_index(
    payload: IndexPayload | None = None,
    user_id: str = Depends(get_user_id),
    service: RetrievalService = Depends(get_service),
) -> dict[str, Any]:
    force = payload.force if payload is not None else False
    try:
        report = await asyncio.to_thread(service.build_index, user_id, force)
    except Exception as exc:
        LOGGER.exception("Indexing failed for %s: %s", user_id, exc)
        raise HTTPException(status_code=500, detail="Failed to index documents") from exc
    return report.as_dict()


@app.post("/search")
async def search_documents(
    payload: SearchPayload,
    user_id: str = Depends(get_user_id),
    service: RetrievalService = Depends(get_service),
) -> dict[str, List[SearchHit]]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    top_k = max(1, min(payload.top_k, MAX_TOP_K))
    min_score = payload.min_score if payload.min_score is not None else DEFAULT_MIN_SCORE
    min_score = max(0.0, min(min_score, 1.0))

    try:
        results = await asyncio.to_thread(service.search, user_id, query, top_k, min_score)
    except InvalidK as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except EmbeddingError as exc:
        LOGGER.error("Search unavailable for %s: %s", user_id, exc)
        raise HTTPException(status_code=503, detail="Embedding service unavailable") from exc
    return {"results": results}


@app.get("/status")
async def index_status(
    user_id: str = Depends(get_user_id),
    service: RetrievalService = Depends(get_service),
) -> dict[str, Any]:
    return (await asyncio.to_thread(service.status, user_id)).as_dict()


@app.delete("/index")
async def delete_index(
    user_id: str = Depends(get_user_id),
    service: RetrievalService = Depends(get_service),
) -> dict[str, bool]:
    await asyncio.to_thread(service.delete_index, user_id)
    return {"success": True}


@app.get("/token-estimate")
async def token_estimate(
    user_id: str = Depends(get_user_id),
    service: RetrievalService = Depends(get_service),
) -> dict[str, int]:
    return {"token_estimate": await asyncio.to_thread(service.token_estimate, user_id)}
