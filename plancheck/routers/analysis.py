"""Analysis API router: run feature/TODO analyses and browse their history."""
from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from plancheck.db import connection
from plancheck.db.repositories import SqliteRunRepository
from plancheck.errors import ConfigurationError
from plancheck.models import AggregateReport, AnalysisRunSummary, RunDiff, StoredResult
from plancheck.services import analysis


analysis_router = APIRouter(prefix="/api/analysis", tags=["analysis"])


class FeatureAnalysisRequest(BaseModel):
    root: str
    planDirs: Optional[list[str]] = None
    includeChecked: bool = False
    registryPath: Optional[str] = None
    groupBy: str = "document"
    configPath: Optional[str] = None
    maxWorkers: Optional[int] = Field(default=None, ge=1, le=64)
    timeoutSeconds: Optional[float] = Field(default=None, ge=0)
    asOf: Optional[str] = None
    persist: bool = True


class TodoAnalysisRequest(BaseModel):
    root: str
    includeArchived: bool = True
    groupBy: str = "band"
    configPath: Optional[str] = None
    maxWorkers: Optional[int] = Field(default=None, ge=1, le=64)
    timeoutSeconds: Optional[float] = Field(default=None, ge=0)
    asOf: Optional[str] = None
    persist: bool = True


class AnalysisRunResponse(BaseModel):
    runId: Optional[str] = None
    report: AggregateReport


class RunDetailResponse(BaseModel):
    run: AnalysisRunSummary
    results: list[StoredResult] = Field(default_factory=list)


async def _run(fn, persist: bool, **kwargs) -> AnalysisRunResponse:
    try:
        report = await asyncio.to_thread(fn, **kwargs)
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    run_id = None
    if persist:
        db = await connection.get_connection()
        run_id = await SqliteRunRepository(db).save_run(report)
    return AnalysisRunResponse(runId=run_id, report=report)


@analysis_router.post("/features", response_model=AnalysisRunResponse)
async def analyze_features(req: FeatureAnalysisRequest):
    return await _run(
        analysis.run_feature_analysis,
        req.persist,
        root=req.root,
        config_path=req.configPath,
        plan_dirs=req.planDirs,
        include_checked=req.includeChecked,
        registry_path=req.registryPath,
        group_by=req.groupBy,
        max_workers=req.maxWorkers,
        timeout_seconds=req.timeoutSeconds,
        as_of=req.asOf,
    )


@analysis_router.post("/todos", response_model=AnalysisRunResponse)
async def analyze_todos(req: TodoAnalysisRequest):
    return await _run(
        analysis.run_todo_analysis,
        req.persist,
        root=req.root,
        config_path=req.configPath,
        include_archived=req.includeArchived,
        group_by=req.groupBy,
        max_workers=req.maxWorkers,
        timeout_seconds=req.timeoutSeconds,
        as_of=req.asOf,
    )


@analysis_router.get("/runs", response_model=list[AnalysisRunSummary])
async def list_runs(
    kind: str = Query("", description="Filter by kind: feature|todo"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    if kind and kind not in ("feature", "todo"):
        raise HTTPException(status_code=400, detail=f"Unknown run kind: {kind}")
    db = await connection.get_connection()
    return await SqliteRunRepository(db).list_runs(kind=kind or None, limit=limit, offset=offset)


@analysis_router.get("/runs/{run_id}", response_model=RunDetailResponse)
async def get_run(run_id: str):
    db = await connection.get_connection()
    repo = SqliteRunRepository(db)
    run = await repo.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
    return RunDetailResponse(run=run, results=await repo.get_run_results(run_id))


@analysis_router.get("/runs/{run_id}/diff/{other_id}", response_model=RunDiff)
async def diff_runs(run_id: str, other_id: str):
    db = await connection.get_connection()
    diff = await SqliteRunRepository(db).diff_runs(run_id, other_id)
    if diff is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id} or {other_id}")
    return diff
