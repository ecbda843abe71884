"""Analysis runs: repository index -> candidate discovery -> engine -> aggregate report."""
from __future__ import annotations

import logging
from pathlib import Path

from plancheck import config
from plancheck.aggregator import GROUP_KEYS, aggregate
from plancheck.date_utils import utc_now_iso
from plancheck.engine import EvaluationEngine
from plancheck.models import AggregateReport
from plancheck.observability import record_run, start_span
from plancheck.parsers.planning import extract_feature_candidates
from plancheck.parsers.registry import apply_registry, load_registry
from plancheck.parsers.todos import scan_todos
from plancheck.repo_index import FilesystemRepoIndex, RepoIndex
from plancheck.scoring import KIND_FEATURE, KIND_TODO
from plancheck.settings import EngineSettings, load_engine_settings

logger = logging.getLogger("plancheck.analysis")


def resolve_settings(settings: EngineSettings | None = None, config_path: str | None = None) -> EngineSettings:
    if settings is not None:
        return settings
    return load_engine_settings(config_path or config.ENGINE_CONFIG_PATH)


def _group_key(group_by: str):
    token = (group_by or "").strip().lower()
    if token not in GROUP_KEYS:
        raise ValueError(f"Unsupported group_by '{group_by}'. Expected one of: {', '.join(GROUP_KEYS)}")
    return GROUP_KEYS[token]


def _index_for(root: str | Path, settings: EngineSettings, repo_index: RepoIndex | None, as_of: str | None) -> RepoIndex:
    if repo_index is not None:
        return repo_index
    return FilesystemRepoIndex(root, max_read_bytes=settings.max_read_bytes, as_of=as_of)


def run_feature_analysis(
    root: str | Path,
    settings: EngineSettings | None = None,
    config_path: str | None = None,
    plan_dirs: list[str] | None = None,
    include_checked: bool = False,
    registry_path: str | None = None,
    group_by: str = "document",
    max_workers: int | None = None,
    timeout_seconds: float | None = None,
    as_of: str | None = None,
    repo_index: RepoIndex | None = None,
) -> AggregateReport:
    """Score every planned checklist item under ``root`` against its codebase."""
    resolved = resolve_settings(settings, config_path)
    group_key = _group_key(group_by)
    engine = EvaluationEngine(resolved, max_workers=max_workers, timeout_seconds=timeout_seconds)
    index = _index_for(root, resolved, repo_index, as_of)

    with start_span("plancheck.feature_analysis", {"root": str(root)}):
        candidates, warnings = extract_feature_candidates(
            index,
            plan_dirs=plan_dirs if plan_dirs is not None else config.PLAN_DIRS,
            include_checked=include_checked,
            settings=resolved,
        )
        if registry_path:
            candidates = apply_registry(candidates, load_registry(registry_path))
        batch = engine.evaluate(candidates, index)

    report = aggregate(
        batch.results,
        group_key,
        kind=KIND_FEATURE,
        warnings=[*warnings, *batch.warnings],
        settings=resolved,
    )
    report.generatedAt = utc_now_iso()
    report.root = str(root)
    record_run(KIND_FEATURE)
    logger.info(
        "Feature analysis of %s: %d items, %d%% implemented",
        root,
        report.total,
        report.progressPercent,
    )
    return report


def run_todo_analysis(
    root: str | Path,
    settings: EngineSettings | None = None,
    config_path: str | None = None,
    include_archived: bool = True,
    group_by: str = "band",
    max_workers: int | None = None,
    timeout_seconds: float | None = None,
    as_of: str | None = None,
    repo_index: RepoIndex | None = None,
) -> AggregateReport:
    """Score every TODO-style comment under ``root`` for likely completion."""
    resolved = resolve_settings(settings, config_path)
    group_key = _group_key(group_by)
    engine = EvaluationEngine(resolved, max_workers=max_workers, timeout_seconds=timeout_seconds)
    index = _index_for(root, resolved, repo_index, as_of)

    with start_span("plancheck.todo_analysis", {"root": str(root)}):
        candidates, warnings = scan_todos(index, include_archived=include_archived, settings=resolved)
        batch = engine.evaluate(candidates, index)

    report = aggregate(
        batch.results,
        group_key,
        kind=KIND_TODO,
        warnings=[*warnings, *batch.warnings],
        settings=resolved,
    )
    report.generatedAt = utc_now_iso()
    report.root = str(root)
    record_run(KIND_TODO)
    logger.info(
        "TODO analysis of %s: %d items, %d potential cleanups",
        root,
        report.total,
        report.potentialCleanup,
    )
    return report
