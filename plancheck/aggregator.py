"""Rollups over scored results: groups, summary buckets, top-N and cleanup lists."""
from __future__ import annotations

from collections import Counter
from typing import Callable, Iterable

from plancheck.classifier import (
    FEATURE_STATUSES,
    Classifier,
    STATUS_IMPLEMENTED,
    STATUS_MISSING,
    STATUS_PARTIAL,
    STATUS_UNKNOWN,
    TODO_BANDS,
)
from plancheck.models import (
    AggregateReport,
    CleanupFile,
    FeatureCandidate,
    GroupSummary,
    ScoredResult,
    TodoRecommendations,
)
from plancheck.scoring import KIND_FEATURE, KIND_TODO
from plancheck.settings import EngineSettings

GroupKeyFn = Callable[[ScoredResult], str]

_FEATURE_PRIORITY = {STATUS_MISSING: 0, STATUS_UNKNOWN: 1, STATUS_PARTIAL: 2, STATUS_IMPLEMENTED: 3}
_IMPLEMENTED_BANDS = ("high", "medium", "low")


def progress_percent(done: int, total: int) -> int:
    """``100 * done / total`` rounded half up with integer math (1/3 -> 33, 2/3 -> 67)."""
    if total <= 0:
        return 0
    return (200 * done + total) // (2 * total)


def by_document(result: ScoredResult) -> str:
    candidate = result.candidate
    if isinstance(candidate, FeatureCandidate):
        return candidate.document
    return candidate.file


def by_file(result: ScoredResult) -> str:
    return by_document(result)


def by_band(result: ScoredResult) -> str:
    return result.band or result.status


def by_status(result: ScoredResult) -> str:
    return result.status


GROUP_KEYS: dict[str, GroupKeyFn] = {
    "document": by_document,
    "file": by_file,
    "band": by_band,
    "status": by_status,
}


class Aggregator:
    def __init__(
        self,
        settings: EngineSettings | None = None,
        top_n: int = 10,
        cleanup_files: int = 10,
        high_confidence_limit: int = 20,
    ):
        self.settings = settings or EngineSettings()
        self.classifier = Classifier(self.settings)
        self.top_n = top_n
        self.cleanup_files = cleanup_files
        self.high_confidence_limit = high_confidence_limit

    def is_done(self, result: ScoredResult) -> bool:
        if result.kind == KIND_TODO:
            return result.status != STATUS_UNKNOWN and result.confidence >= self.settings.todo_bands.high
        return result.status == STATUS_IMPLEMENTED

    def aggregate(
        self,
        results: Iterable[ScoredResult],
        group_key_fn: GroupKeyFn = by_status,
        kind: str | None = None,
        warnings: list[str] | None = None,
    ) -> AggregateReport:
        ordered = list(results)
        report_kind = kind or (ordered[0].kind if ordered else KIND_FEATURE)

        groups: dict[str, GroupSummary] = {}
        confidence_sums: dict[str, int] = {}
        for result in ordered:
            key = str(group_key_fn(result) or "(none)")
            group = groups.get(key)
            if group is None:
                group = GroupSummary(key=key, implementedBands=self._empty_bands(report_kind))
                groups[key] = group
                confidence_sums[key] = 0
            self._count(group, result)
            confidence_sums[key] += result.confidence

        for key, group in groups.items():
            group.progressPercent = progress_percent(group.done, group.total)
            group.averageConfidence = progress_percent(confidence_sums[key], group.total * 100) if group.total else 0

        total = len(ordered)
        done = sum(1 for result in ordered if self.is_done(result))
        confidence_total = sum(result.confidence for result in ordered)

        report = AggregateReport(
            kind=report_kind,
            total=total,
            groups=list(groups.values()),
            summary=self._summary(ordered, report_kind),
            progressPercent=progress_percent(done, total),
            averageConfidence=progress_percent(confidence_total, total * 100) if total else 0,
            implementedBands=self._implemented_bands(ordered, report_kind),
            topItems=self._top_items(ordered, report_kind),
            highConfidence=self._high_confidence(ordered, report_kind),
            results=ordered,
            warnings=list(warnings or []),
        )
        if report_kind == KIND_TODO:
            cleanup = sum(1 for result in ordered if result.status == "veryHigh")
            report.potentialCleanup = cleanup
            report.potentialCleanupPercent = progress_percent(cleanup, total)
            report.recommendations = self._todo_recommendations(ordered)
        return report

    def _count(self, group: GroupSummary, result: ScoredResult) -> None:
        group.total += 1
        group.statusCounts[result.status] = group.statusCounts.get(result.status, 0) + 1
        if result.status == STATUS_UNKNOWN:
            group.unknown += 1
        elif result.kind == KIND_FEATURE:
            if result.status == STATUS_IMPLEMENTED:
                group.implemented += 1
                band = self.classifier.feature_band(result.confidence)
                group.implementedBands[band] = group.implementedBands.get(band, 0) + 1
            elif result.status == STATUS_PARTIAL:
                group.partial += 1
            elif result.status == STATUS_MISSING:
                group.missing += 1
        if self.is_done(result):
            group.done += 1

    def _summary(self, results: list[ScoredResult], kind: str) -> dict[str, int]:
        buckets = TODO_BANDS if kind == KIND_TODO else FEATURE_STATUSES
        summary = {bucket: 0 for bucket in buckets}
        summary[STATUS_UNKNOWN] = 0
        for result in results:
            summary[result.status] = summary.get(result.status, 0) + 1
        return summary

    @staticmethod
    def _empty_bands(kind: str) -> dict[str, int]:
        return {band: 0 for band in _IMPLEMENTED_BANDS} if kind == KIND_FEATURE else {}

    def _implemented_bands(self, results: list[ScoredResult], kind: str) -> dict[str, int]:
        """Implemented features split by confidence band, so weak matches stay visible."""
        bands = self._empty_bands(kind)
        if kind != KIND_FEATURE:
            return bands
        for result in results:
            if result.status == STATUS_IMPLEMENTED:
                band = self.classifier.feature_band(result.confidence)
                bands[band] = bands.get(band, 0) + 1
        return bands

    def _high_confidence(self, results: list[ScoredResult], kind: str) -> list[ScoredResult]:
        if kind != KIND_FEATURE:
            return []
        floor = self.settings.feature_bands.high
        chosen = [
            pair for pair in enumerate(results)
            if pair[1].status == STATUS_IMPLEMENTED and pair[1].confidence >= floor
        ]
        chosen.sort(key=lambda pair: (-pair[1].confidence, pair[0]))
        return [result for _, result in chosen[: self.high_confidence_limit]]

    def _top_items(self, results: list[ScoredResult], kind: str) -> list[ScoredResult]:
        indexed = list(enumerate(results))
        if kind == KIND_TODO:
            ranked = [pair for pair in indexed if pair[1].status != STATUS_UNKNOWN]
            ranked.sort(key=lambda pair: (-pair[1].confidence, pair[0]))
            return [result for _, result in ranked[: self.top_n]]

        low_floor = self.settings.feature_bands.medium
        ranked = []
        for index, result in indexed:
            if result.status == STATUS_IMPLEMENTED and result.confidence >= low_floor:
                continue
            ranked.append((_FEATURE_PRIORITY.get(result.status, 4), result.confidence, index, result))
        ranked.sort(key=lambda item: item[:3])
        return [item[3] for item in ranked[: self.top_n]]

    def _todo_recommendations(self, results: list[ScoredResult]) -> TodoRecommendations:
        def pick(status: str) -> list[ScoredResult]:
            chosen = [pair for pair in enumerate(results) if pair[1].status == status]
            chosen.sort(key=lambda pair: (-pair[1].confidence, pair[0]))
            return [result for _, result in chosen]

        likely_done = [result for result in results if self.is_done(result)]
        counts = Counter(by_file(result) for result in likely_done)
        first_seen = {path: index for index, path in reversed(list(enumerate(by_file(r) for r in likely_done)))}
        files = sorted(counts.items(), key=lambda item: (-item[1], first_seen[item[0]]))
        return TodoRecommendations(
            safeToClose=pick("veryHigh"),
            needsReview=pick("high"),
            possiblyDone=pick("medium"),
            topCleanupFiles=[CleanupFile(file=path, count=count) for path, count in files[: self.cleanup_files]],
        )


def aggregate(
    results: Iterable[ScoredResult],
    group_key_fn: GroupKeyFn = by_status,
    kind: str | None = None,
    warnings: list[str] | None = None,
    settings: EngineSettings | None = None,
    top_n: int = 10,
) -> AggregateReport:
    return Aggregator(settings, top_n=top_n).aggregate(results, group_key_fn, kind=kind, warnings=warnings)
