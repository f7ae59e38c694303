"""API route handlers for the DevDash operator API."""

from __future__ import annotations

import logging
import math
import sqlite3

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from devdash.ingestion.models import PostStatus
from devdash.jobs import run_refresh_all, run_refresh_source
from devdash.storage.connection import get_connection
from devdash.storage.posts import SQLitePostStore
from devdash.storage.sources import SourceRepository
from devdash.web.models import (
    PipelineRunListResponse,
    PostListResponse,
    PostOut,
    PostStatusUpdate,
    RefreshAccepted,
    SourceListResponse,
    SourceOut,
)
from devdash.web.queries import get_post, list_pipeline_runs, list_posts, list_sources

logger = logging.getLogger(__name__)

router = APIRouter()
health_router = APIRouter()


@health_router.get("/health")
def health(request: Request) -> JSONResponse:
    """Check database connectivity and return health status."""
    database_path = request.app.state.database_path
    try:
        with get_connection(database_path) as conn:
            conn.execute("SELECT 1")
        return JSONResponse({"status": "healthy", "database": "ok"})
    except (sqlite3.Error, OSError) as exc:
        logger.warning("Health check failed: %s", exc)
        return JSONResponse(
            {"status": "unhealthy", "database": "error", "detail": str(exc)},
            status_code=503,
        )


@router.get("/sources", response_model=SourceListResponse)
def sources(request: Request) -> SourceListResponse:
    rows = list_sources(request.app.state.database_path)
    return SourceListResponse(sources=[SourceOut(**r) for r in rows], total=len(rows))


@router.post("/sources/refresh", response_model=RefreshAccepted, status_code=202)
def refresh_all_sources(request: Request, background_tasks: BackgroundTasks) -> RefreshAccepted:
    background_tasks.add_task(run_refresh_all, request.app.state.config)
    return RefreshAccepted()


@router.post("/sources/{source_id}/refresh", response_model=RefreshAccepted, status_code=202)
def refresh_source(
    request: Request, source_id: int, background_tasks: BackgroundTasks,
) -> RefreshAccepted:
    config = request.app.state.config
    if SourceRepository(config.database_path).get(source_id) is None:
        raise HTTPException(status_code=404, detail="Source not found")
    background_tasks.add_task(run_refresh_source, config, source_id)
    return RefreshAccepted(source_id=source_id)


@router.get("/posts", response_model=PostListResponse)
def posts(
    request: Request,
    source: str | None = None,
    status: PostStatus | None = None,
    sort: str = "priority",
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
) -> PostListResponse:
    database_path = request.app.state.database_path

    filters: dict[str, str] = {}
    if source is not None:
        filters["source"] = source
    if status is not None:
        filters["status"] = status.value

    rows, total = list_posts(
        database_path, filters=filters, page=page, per_page=per_page, sort=sort,
    )
    pages = math.ceil(total / per_page) if total else 0
    return PostListResponse(
        posts=[PostOut(**r) for r in rows],
        total=total,
        page=page,
        per_page=per_page,
        pages=pages,
    )


@router.patch("/posts/{post_id}", response_model=PostOut)
def update_post_status(request: Request, post_id: int, body: PostStatusUpdate) -> PostOut:
    database_path = request.app.state.database_path
    if SQLitePostStore(database_path).set_status(post_id, body.status) is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return PostOut(**get_post(database_path, post_id))


@router.get("/runs", response_model=PipelineRunListResponse)
def runs(
    request: Request,
    run_type: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
) -> PipelineRunListResponse:
    database_path = request.app.state.database_path
    rows, total = list_pipeline_runs(
        database_path, run_type=run_type, page=page, per_page=per_page,
    )
    pages = math.ceil(total / per_page) if total else 0
    return PipelineRunListResponse(
        runs=rows,
        total=total,
        page=page,
        per_page=per_page,
        pages=pages,
    )
