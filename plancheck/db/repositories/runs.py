"""SQLite implementation of the analysis run history."""
from __future__ import annotations

import json
import uuid

import aiosqlite

from plancheck.date_utils import utc_now_iso
from plancheck.models import AggregateReport, AnalysisRunSummary, ConfidenceDelta, FeatureCandidate, RunDiff, StoredResult

_DONE_STATUSES = {"feature": {"implemented"}, "todo": {"veryHigh", "high"}}


def _parse_json(value: object, default: dict | list) -> dict | list:
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return default
        if isinstance(parsed, type(default)):
            return parsed
    return default


def _is_done(result: StoredResult) -> bool:
    return result.status in _DONE_STATUSES.get(result.kind, set())


class SqliteRunRepository:
    """SQLite-backed storage for aggregate reports and their per-item results."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def save_run(self, report: AggregateReport, run_id: str | None = None) -> str:
        resolved_id = run_id or uuid.uuid4().hex
        created_at = report.generatedAt or utc_now_iso()
        await self.db.execute(
            """
            INSERT INTO analysis_runs (
                id, kind, root, created_at, total, progress_percent,
                average_confidence, summary_json, warnings_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                resolved_id,
                report.kind,
                report.root,
                created_at,
                report.total,
                report.progressPercent,
                report.averageConfidence,
                json.dumps(report.summary),
                json.dumps(report.warnings),
            ),
        )
        rows = []
        for position, result in enumerate(report.results):
            candidate = result.candidate
            subject = candidate.description if isinstance(candidate, FeatureCandidate) else candidate.text
            rows.append(
                (
                    resolved_id,
                    position,
                    candidate.identity,
                    result.kind,
                    subject,
                    result.status,
                    result.band,
                    result.confidence,
                    result.recommendation,
                )
            )
        if rows:
            await self.db.executemany(
                """
                INSERT INTO run_results (
                    run_id, position, identity, kind, subject, status, band, confidence, recommendation
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        await self.db.commit()
        return resolved_id

    async def list_runs(self, kind: str | None = None, limit: int = 50, offset: int = 0) -> list[AnalysisRunSummary]:
        query = "SELECT * FROM analysis_runs"
        params: list[object] = []
        if kind:
            query += " WHERE kind = ?"
            params.append(kind)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([max(1, int(limit)), max(0, int(offset))])
        async with self.db.execute(query, params) as cur:
            rows = await cur.fetchall()
        return [self._row_to_summary(row) for row in rows]

    async def get_run(self, run_id: str) -> AnalysisRunSummary | None:
        async with self.db.execute("SELECT * FROM analysis_runs WHERE id = ?", (run_id,)) as cur:
            row = await cur.fetchone()
        return self._row_to_summary(row) if row else None

    async def get_run_results(self, run_id: str) -> list[StoredResult]:
        async with self.db.execute(
            "SELECT * FROM run_results WHERE run_id = ? ORDER BY position",
            (run_id,),
        ) as cur:
            rows = await cur.fetchall()
        return [
            StoredResult(
                identity=row["identity"],
                kind=row["kind"],
                subject=row["subject"] or "",
                status=row["status"],
                band=row["band"] or "",
                confidence=int(row["confidence"] or 0),
                recommendation=row["recommendation"] or "",
            )
            for row in rows
        ]

    async def diff_runs(self, base_run_id: str, target_run_id: str) -> RunDiff | None:
        """Compare two runs by candidate identity; ``None`` when either run is unknown."""
        if await self.get_run(base_run_id) is None or await self.get_run(target_run_id) is None:
            return None
        before = {result.identity: result for result in await self.get_run_results(base_run_id)}
        after_rows = await self.get_run_results(target_run_id)
        after = {result.identity: result for result in after_rows}

        diff = RunDiff(baseRunId=base_run_id, targetRunId=target_run_id)
        for identity, current in after.items():
            previous = before.get(identity)
            if previous is None:
                diff.added.append(identity)
                continue
            if _is_done(current) and not _is_done(previous):
                diff.newlyDone.append(identity)
            elif _is_done(previous) and not _is_done(current):
                diff.regressed.append(identity)
            if current.confidence != previous.confidence:
                diff.confidenceDeltas.append(
                    ConfidenceDelta(
                        identity=identity,
                        before=previous.confidence,
                        after=current.confidence,
                        beforeStatus=previous.status,
                        afterStatus=current.status,
                    )
                )
        diff.removed = [identity for identity in before if identity not in after]
        return diff

    def _row_to_summary(self, row: aiosqlite.Row) -> AnalysisRunSummary:
        warnings = _parse_json(row["warnings_json"], [])
        return AnalysisRunSummary(
            id=row["id"],
            kind=row["kind"],
            root=row["root"] or "",
            createdAt=row["created_at"],
            total=int(row["total"] or 0),
            progressPercent=int(row["progress_percent"] or 0),
            averageConfidence=int(row["average_confidence"] or 0),
            summary={str(key): int(value) for key, value in _parse_json(row["summary_json"], {}).items()},
            warningCount=len(warnings),
        )
