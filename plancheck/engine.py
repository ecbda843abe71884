"""Evaluation engine: collectors -> scorer -> classifier for a batch of candidates."""
from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Iterable

from pydantic import ValidationError

from plancheck import config
from plancheck.classifier import STATUS_UNKNOWN, Classifier
from plancheck.collectors.base import EvidenceCollector
from plancheck.collectors.pipeline import CollectorPipeline
from plancheck.errors import ConfigurationError, InvalidCandidateError
from plancheck.models import CandidateItem, EvaluationBatch, Evidence, FeatureCandidate, ScoredResult, TodoCandidate
from plancheck.observability import record_evaluation, start_span
from plancheck.repo_index import RepoIndex
from plancheck.scoring import ConfidenceScorer
from plancheck.settings import EngineSettings, validate_settings

logger = logging.getLogger("plancheck.engine")

TIMEOUT_RECOMMENDATION = "Evaluation timed out; re-run with a longer timeout before acting on this item."
FAILURE_RECOMMENDATION = "Evaluation failed; check the warning and re-run before acting on this item."

_POLL_SECONDS = 0.05


def _candidate_ref(raw: Any, position: int) -> str:
    if isinstance(raw, (TodoCandidate, FeatureCandidate)):
        return raw.identity
    if isinstance(raw, dict):
        origin = raw.get("file") or raw.get("document") or "?"
        return f"{origin}:{raw.get('line', '?')}"
    return f"#{position}"


def coerce_candidate(raw: Any, position: int = 0) -> CandidateItem:
    """Validate a candidate (model or mapping) and return the typed model."""
    ref = _candidate_ref(raw, position)
    if isinstance(raw, dict):
        model = FeatureCandidate if "description" in raw or "document" in raw else TodoCandidate
        try:
            raw = model.model_validate(raw)
        except ValidationError as exc:
            raise InvalidCandidateError(ref, "; ".join(err.get("msg", "invalid") for err in exc.errors())) from exc

    if isinstance(raw, TodoCandidate):
        if not raw.file.strip():
            raise InvalidCandidateError(ref, "missing file")
        if raw.line < 1:
            raise InvalidCandidateError(ref, "line must be >= 1")
        return raw
    if isinstance(raw, FeatureCandidate):
        if not raw.description.strip():
            raise InvalidCandidateError(ref, "missing description")
        if not raw.document.strip():
            raise InvalidCandidateError(ref, "missing document")
        if raw.line < 1:
            raise InvalidCandidateError(ref, "line must be >= 1")
        return raw
    raise InvalidCandidateError(ref, f"unsupported candidate type {type(raw).__name__}")


class EvaluationEngine:
    """Scores candidates against a repository snapshot.

    Settings are re-validated here so a bad weight table fails before any
    candidate is read. Results come back in input order; a candidate that
    runs longer than ``timeout_seconds``, or raises, is reported as
    ``unknown`` with confidence 0 rather than dropped.
    """

    def __init__(
        self,
        settings: EngineSettings | dict[str, Any] | None = None,
        max_workers: int | None = None,
        timeout_seconds: float | None = None,
        collectors: list[EvidenceCollector] | None = None,
    ):
        self.settings = validate_settings(settings)
        self.max_workers = config.MAX_WORKERS if max_workers is None else max_workers
        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be a positive integer, got {self.max_workers!r}")
        timeout = config.CANDIDATE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        if timeout is not None and timeout < 0:
            raise ConfigurationError(f"timeout_seconds must be >= 0, got {timeout!r}")
        self.timeout_seconds = float(timeout) if timeout else None
        self.pipeline = CollectorPipeline(self.settings, collectors)
        self.scorer = ConfidenceScorer(self.settings)
        self.classifier = Classifier(self.settings)

    def evaluate_one(self, candidate: CandidateItem, repo_index: RepoIndex) -> ScoredResult:
        started = time.monotonic()
        kind = candidate.kind
        evidence = self.pipeline.collect(candidate, repo_index)
        confidence, reasons = self.scorer.score(evidence, kind)
        status, recommendation = self.classifier.classify(confidence, evidence, kind, candidate)
        note = self.classifier.prior_claim_note(candidate, status)
        if note:
            reasons.append(note)
        result = ScoredResult(
            candidate=candidate,
            kind=kind,
            evidence=evidence,
            confidence=confidence,
            status=status,
            band=self.classifier.band_for(confidence, kind),
            recommendation=recommendation,
            reasons=reasons,
            warnings=[f"Skipped unreadable location {message}" for message in evidence.collectionErrors],
        )
        record_evaluation(kind, status, (time.monotonic() - started) * 1000.0)
        return result

    def _degraded(self, candidate: CandidateItem, recommendation: str, warning: str, duration_ms: float) -> ScoredResult:
        record_evaluation(candidate.kind, STATUS_UNKNOWN, duration_ms)
        return ScoredResult(
            candidate=candidate,
            kind=candidate.kind,
            evidence=Evidence(),
            confidence=0,
            status=STATUS_UNKNOWN,
            band="",
            recommendation=recommendation,
            reasons=[],
            warnings=[warning],
        )

    def _timed_out(self, candidate: CandidateItem) -> ScoredResult:
        message = f"Evaluation of {candidate.identity} exceeded {self.timeout_seconds:g}s"
        logger.warning("Candidate %s timed out after %ss", candidate.identity, self.timeout_seconds)
        return self._degraded(candidate, TIMEOUT_RECOMMENDATION, message, (self.timeout_seconds or 0.0) * 1000.0)

    def _evaluate_guarded(self, candidate: CandidateItem, repo_index: RepoIndex) -> ScoredResult:
        started = time.monotonic()
        try:
            return self.evaluate_one(candidate, repo_index)
        except Exception as exc:
            logger.exception("Evaluation of %s failed", candidate.identity)
            return self._degraded(
                candidate,
                FAILURE_RECOMMENDATION,
                f"Evaluation of {candidate.identity} failed: {type(exc).__name__}: {exc}",
                (time.monotonic() - started) * 1000.0,
            )

    def evaluate(self, candidates: Iterable[Any], repo_index: RepoIndex) -> EvaluationBatch:
        batch = EvaluationBatch()
        valid: list[CandidateItem] = []
        skipped = 0
        seen: set[str] = set()
        for position, raw in enumerate(candidates):
            try:
                candidate = coerce_candidate(raw, position)
            except InvalidCandidateError as exc:
                logger.warning("Skipping candidate: %s", exc)
                batch.warnings.append(str(exc))
                skipped += 1
                continue
            if candidate.identity in seen:
                batch.warnings.append(f"Duplicate candidate {candidate.identity} evaluated more than once")
            seen.add(candidate.identity)
            valid.append(candidate)

        with start_span("plancheck.evaluate", {"candidates": len(valid), "workers": self.max_workers}):
            if self.max_workers == 1 and self.timeout_seconds is None:
                results = [self._evaluate_guarded(candidate, repo_index) for candidate in valid]
            else:
                results = self._evaluate_parallel(valid, repo_index)

        for result in results:
            for warning in result.warnings:
                if warning not in batch.warnings:
                    batch.warnings.append(warning)
        batch.results = results
        logger.info(
            "Evaluated %d candidates (%d skipped, %d warnings)",
            len(results),
            skipped,
            len(batch.warnings),
        )
        return batch

    def _next_wait(self, pending: dict[Future, int], started: dict[int, float]) -> float | None:
        if self.timeout_seconds is None:
            return None
        now = time.monotonic()
        remaining = [self.timeout_seconds - (now - started[index]) for index in pending.values() if index in started]
        return max(0.0, min(remaining + [_POLL_SECONDS]))

    def _evaluate_parallel(self, candidates: list[CandidateItem], repo_index: RepoIndex) -> list[ScoredResult]:
        """Fan out over worker threads; each candidate's budget starts when its worker picks it up."""
        results: list[ScoredResult | None] = [None] * len(candidates)
        started: dict[int, float] = {}
        pending: dict[Future, int] = {}
        executors: list[ThreadPoolExecutor] = []

        def run(index: int) -> ScoredResult:
            started[index] = time.monotonic()
            return self._evaluate_guarded(candidates[index], repo_index)

        def submit(indexes: Iterable[int]) -> None:
            executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="plancheck")
            executors.append(executor)
            for index in indexes:
                pending[executor.submit(run, index)] = index

        try:
            submit(range(len(candidates)))
            while pending:
                done, _ = wait(list(pending), timeout=self._next_wait(pending, started), return_when=FIRST_COMPLETED)
                for future in done:
                    results[pending.pop(future)] = future.result()
                if self.timeout_seconds is None:
                    continue

                now = time.monotonic()
                expired = [
                    future
                    for future, index in pending.items()
                    if not future.done() and index in started and now - started[index] >= self.timeout_seconds
                ]
                if not expired:
                    continue
                for future in expired:
                    index = pending.pop(future)
                    results[index] = self._timed_out(candidates[index])

                # Hung workers keep their threads; queued candidates move to a fresh pool.
                queued = [future for future in pending if future.cancel()]
                if queued:
                    submit([pending.pop(future) for future in queued])
        finally:
            # Timed-out workers cannot be interrupted; do not block on them.
            for executor in executors:
                executor.shutdown(wait=False, cancel_futures=True)
        return [result for result in results if result is not None]
