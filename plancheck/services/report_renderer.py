"""Single renderer for aggregate reports: markdown, JSON, CSV and console text."""
from __future__ import annotations

import csv
import io
import json

from plancheck.models import AggregateReport, FeatureCandidate, ScoredResult, TodoCandidate
from plancheck.scoring import KIND_TODO

FORMATS = ("markdown", "json", "csv", "console")

_TODO_BAND_LABELS = {
    "veryHigh": "Very high (90-100%)",
    "high": "High (70-89%)",
    "medium": "Medium (50-69%)",
    "low": "Low (30-49%)",
    "active": "Active (<30%)",
    "unknown": "Unknown (timed out)",
}
_FEATURE_LABELS = {
    "implemented": "Implemented",
    "partial": "Partial",
    "missing": "Missing",
    "unknown": "Unknown (timed out)",
}
_IMPLEMENTED_BAND_LABELS = {
    "high": "High confidence (70%+)",
    "medium": "Medium confidence (60-69%)",
    "low": "Low confidence (<60%)",
}
_CSV_COLUMNS = [
    "identity",
    "kind",
    "subject",
    "status",
    "band",
    "confidence",
    "files",
    "tests",
    "usages",
    "patterns",
    "recommendation",
]


def progress_bar(percent: int, width: int = 20) -> str:
    filled = max(0, min(width, (percent * width + 50) // 100))
    return f"[{'█' * filled}{'░' * (width - filled)}]"


def _subject(result: ScoredResult) -> str:
    candidate = result.candidate
    if isinstance(candidate, FeatureCandidate):
        return candidate.description
    return candidate.text


def _location(result: ScoredResult) -> str:
    return result.candidate.identity


def _summary_labels(report: AggregateReport) -> dict[str, str]:
    return _TODO_BAND_LABELS if report.kind == KIND_TODO else _FEATURE_LABELS


def _filtered(report: AggregateReport, min_confidence: int) -> list[ScoredResult]:
    return [result for result in report.results if result.confidence >= min_confidence]


def render_json(report: AggregateReport, min_confidence: int = 0) -> str:
    payload = report.model_dump(mode="json")
    payload["results"] = [result.model_dump(mode="json") for result in _filtered(report, min_confidence)]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render_csv(report: AggregateReport, min_confidence: int = 0) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=_CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for result in _filtered(report, min_confidence):
        evidence = result.evidence
        writer.writerow(
            {
                "identity": _location(result),
                "kind": result.kind,
                "subject": _subject(result),
                "status": result.status,
                "band": result.band,
                "confidence": result.confidence,
                "files": ";".join(evidence.filesFound),
                "tests": ";".join(evidence.testsFound),
                "usages": len(evidence.usage_files()),
                "patterns": len(evidence.pattern_files()),
                "recommendation": result.recommendation,
            }
        )
    return buffer.getvalue()


def _markdown_result(result: ScoredResult) -> list[str]:
    lines = [f"- **{_subject(result)}** (`{_location(result)}`): {result.status}, {result.confidence}%"]
    for reason in result.reasons:
        lines.append(f"  - {reason}")
    if result.recommendation:
        lines.append(f"  - _{result.recommendation}_")
    return lines


def _markdown_confident(result: ScoredResult) -> list[str]:
    evidence = result.evidence
    found = [
        f"{len(evidence.filesFound)} file(s)" if evidence.filesFound else "",
        f"{len(evidence.testsFound)} test(s)" if evidence.testsFound else "",
        f"{len(evidence.usage_files())} importer(s)" if evidence.usageDetected else "",
    ]
    lines = [f"- **{_subject(result)}** (`{_location(result)}`): {result.confidence}%"]
    summary = ", ".join(part for part in found if part)
    if summary:
        lines.append(f"  - Evidence: {summary}")
    return lines


def render_markdown(report: AggregateReport, min_confidence: int = 0) -> str:
    is_todo = report.kind == KIND_TODO
    title = "TODO Completion Analysis" if is_todo else "Feature Implementation Analysis"
    lines = [f"# {title}", ""]
    if report.root:
        lines.append(f"- Root: `{report.root}`")
    if report.generatedAt:
        lines.append(f"- Generated: {report.generatedAt}")
    lines.append(f"- Items analyzed: {report.total}")
    done_label = "Likely completed" if is_todo else "Implemented"
    lines.append(f"- {done_label}: {report.progressPercent}% {progress_bar(report.progressPercent)}")
    lines.append(f"- Average confidence: {report.averageConfidence}%")
    if is_todo:
        lines.append(f"- Potential cleanup: {report.potentialCleanup} ({report.potentialCleanupPercent}%)")
    lines.extend(["", "## Summary", "", "| Bucket | Count |", "|---|---|"])
    labels = _summary_labels(report)
    for bucket, count in report.summary.items():
        lines.append(f"| {labels.get(bucket, bucket)} | {count} |")
    if report.implementedBands:
        lines.extend(["", "### Implemented by confidence", "", "| Band | Count |", "|---|---|"])
        for band, count in report.implementedBands.items():
            lines.append(f"| {_IMPLEMENTED_BAND_LABELS.get(band, band)} | {count} |")

    if report.groups:
        if is_todo:
            lines.extend(["", "## Groups", "", "| Group | Total | Done | Progress |", "|---|---|---|---|"])
        else:
            lines.extend(
                ["", "## Groups", "", "| Group | Total | Done | High / Medium / Low | Progress |", "|---|---|---|---|---|"]
            )
        for group in report.groups:
            bar = f"{group.progressPercent}% {progress_bar(group.progressPercent, 10)}"
            if is_todo:
                lines.append(f"| {group.key} | {group.total} | {group.done} | {bar} |")
            else:
                bands = " / ".join(str(group.implementedBands.get(band, 0)) for band in _IMPLEMENTED_BAND_LABELS)
                lines.append(f"| {group.key} | {group.total} | {group.done} | {bands} | {bar} |")

    if report.topItems:
        heading = "Most likely completed" if is_todo else "Needs attention"
        lines.extend(["", f"## {heading}", ""])
        for result in report.topItems:
            if result.confidence >= min_confidence:
                lines.extend(_markdown_result(result))

    if not is_todo:
        lines.extend(["", "## Implemented Features (High Confidence)", ""])
        confident = [result for result in report.highConfidence if result.confidence >= min_confidence]
        if not confident:
            lines.append("No features detected as implemented with high confidence.")
        for result in confident:
            lines.extend(_markdown_confident(result))

    if is_todo and report.recommendations is not None:
        recs = report.recommendations
        sections = (
            ("Safe to close", recs.safeToClose),
            ("Needs review", recs.needsReview),
            ("Possibly done", recs.possiblyDone),
        )
        lines.extend(["", "## Recommendations"])
        for label, items in sections:
            lines.extend(["", f"### {label} ({len(items)})", ""])
            for result in items:
                candidate = result.candidate
                if isinstance(candidate, TodoCandidate):
                    lines.append(f"- `{candidate.identity}` [{candidate.todoType}] {candidate.text} ({result.confidence}%)")
        if recs.topCleanupFiles:
            lines.extend(["", "### Files with the most completed TODOs", ""])
            for entry in recs.topCleanupFiles:
                lines.append(f"- `{entry.file}`: {entry.count}")

    if report.warnings:
        lines.extend(["", "## Warnings", ""])
        lines.extend(f"- {warning}" for warning in report.warnings)
    return "\n".join(lines) + "\n"


def render_console(report: AggregateReport, min_confidence: int = 0) -> str:
    is_todo = report.kind == KIND_TODO
    labels = _summary_labels(report)
    lines = [
        "TODO completion analysis" if is_todo else "Feature implementation analysis",
        "=" * 40,
        f"Items: {report.total}",
        f"{'Likely completed' if is_todo else 'Implemented'}: {progress_bar(report.progressPercent)} {report.progressPercent}%",
        f"Average confidence: {report.averageConfidence}%",
        "",
    ]
    for bucket, count in report.summary.items():
        lines.append(f"  {labels.get(bucket, bucket):<24} {count:>5}")
    for band, count in report.implementedBands.items():
        lines.append(f"    {_IMPLEMENTED_BAND_LABELS.get(band, band):<22} {count:>5}")
    if is_todo:
        lines.append(f"  {'Potential cleanup':<24} {report.potentialCleanup:>5} ({report.potentialCleanupPercent}%)")

    shown = [result for result in report.topItems if result.confidence >= min_confidence]
    if shown:
        lines.extend(["", "Most likely completed:" if is_todo else "Needs attention:"])
        for result in shown:
            lines.append(f"  {result.confidence:>3}% {result.status:<11} {_location(result)}  {_subject(result)[:70]}")
            if result.recommendation:
                lines.append(f"       -> {result.recommendation}")
    if report.warnings:
        lines.extend(["", f"Warnings ({len(report.warnings)}):"])
        lines.extend(f"  ! {warning}" for warning in report.warnings)
    return "\n".join(lines) + "\n"


def render(report: AggregateReport, fmt: str = "markdown", min_confidence: int = 0) -> str:
    token = (fmt or "markdown").strip().lower()
    if token in ("md", "markdown"):
        return render_markdown(report, min_confidence)
    if token == "json":
        return render_json(report, min_confidence)
    if token == "csv":
        return render_csv(report, min_confidence)
    if token in ("console", "text"):
        return render_console(report, min_confidence)
    raise ValueError(f"Unsupported report format: {fmt}")
