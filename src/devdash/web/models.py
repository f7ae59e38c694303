"""Pydantic v2 request and response models for the DevDash API."""

from __future__ import annotations

from pydantic import BaseModel

from devdash.ingestion.models import PostStatus


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------
class SourceOut(BaseModel):
    id: int
    name: str
    source_type: str
    url: str | None
    active: bool
    auto_fetch_enabled: bool
    last_fetched_at: str | None
    status: str | None
    status_kind: str


class SourceListResponse(BaseModel):
    sources: list[SourceOut]
    total: int


class RefreshAccepted(BaseModel):
    status: str = "accepted"
    source_id: int | None = None


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
class PostOut(BaseModel):
    id: int
    source: str
    source_type: str
    external_id: str
    title: str
    url: str
    author: str
    posted_at: str
    summary: str
    tags: list[str]
    status: str
    priority_score: float
    created_at: str
    updated_at: str


class PostListResponse(BaseModel):
    posts: list[PostOut]
    total: int
    page: int
    per_page: int
    pages: int


class PostStatusUpdate(BaseModel):
    status: PostStatus


# ---------------------------------------------------------------------------
# Pipeline Runs
# ---------------------------------------------------------------------------
class PipelineRun(BaseModel):
    id: str
    run_type: str
    started_at: str
    finished_at: str
    status: str
    result: dict
    error: str | None


class PipelineRunListResponse(BaseModel):
    runs: list[PipelineRun]
    total: int
    page: int
    per_page: int
    pages: int
