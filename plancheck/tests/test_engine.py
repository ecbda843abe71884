import threading
import unittest

from plancheck.collectors.base import EvidenceCollector
from plancheck.engine import TIMEOUT_RECOMMENDATION, EvaluationEngine, coerce_candidate
from plancheck.errors import ConfigurationError, InvalidCandidateError
from plancheck.models import Evidence, FeatureCandidate, TodoCandidate
from plancheck.repo_index import InMemoryRepoIndex
from plancheck.settings import EngineSettings


class _BlockingCollector(EvidenceCollector):
    """Holds one candidate until released so timeouts can be exercised."""

    name = "blocking"

    def __init__(self, settings: EngineSettings, slow_subject: str):
        super().__init__(settings)
        self.slow_subject = slow_subject
        self.release = threading.Event()

    def collect(self, candidate, repo_index, prior=None) -> Evidence:
        if candidate.subject == self.slow_subject:
            self.release.wait(5)
        return Evidence(filesFound=["src/found.ts"])


class _FailingCollector(EvidenceCollector):
    name = "failing"

    def collect(self, candidate, repo_index, prior=None) -> Evidence:
        if candidate.subject == "broken item":
            raise RuntimeError("boom")
        return Evidence(filesFound=["src/found.ts"])


class _LockedIndex(InMemoryRepoIndex):
    """Raises the plain OS error a filesystem-backed index would."""

    def read_text(self, path: str, max_bytes: int | None = None) -> str:
        if path == "src/secret.ts":
            raise PermissionError(13, "Permission denied", path)
        if path == "src/latin1.ts":
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        return super().read_text(path, max_bytes)


class CoerceCandidateTests(unittest.TestCase):
    def test_mappings_become_typed_candidates(self) -> None:
        feature = coerce_candidate({"description": "Add search", "document": "docs/plan.md", "line": 4})
        todo = coerce_candidate({"file": "src/a.ts", "line": 2, "text": "wire retries"})

        self.assertIsInstance(feature, FeatureCandidate)
        self.assertIsInstance(todo, TodoCandidate)

    def test_invalid_candidates(self) -> None:
        invalid = [
            {"file": "", "line": 1},
            {"file": "src/a.ts", "line": 0},
            {"description": "   ", "document": "docs/plan.md", "line": 1},
            {"description": "Add search", "document": "", "line": 1},
            {"description": "Add search", "document": "docs/plan.md", "line": "not-a-number"},
            "just a string",
        ]
        for raw in invalid:
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidCandidateError):
                    coerce_candidate(raw)


class EvaluationEngineTests(unittest.TestCase):
    def test_rate_limiting_file_alone_is_implemented_low(self) -> None:
        index = InMemoryRepoIndex(files={"src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n"})
        candidate = FeatureCandidate(description="Add rate limiting to the API", document="docs/plan.md", line=3)

        batch = EvaluationEngine(max_workers=1).evaluate([candidate], index)

        result = batch.results[0]
        self.assertEqual(result.confidence, 30)
        self.assertEqual(result.status, "implemented")
        self.assertEqual(result.band, "low")
        self.assertIn("tests", result.recommendation)
        self.assertEqual(batch.warnings, [])

    def test_readme_update_is_missing_documentation_task(self) -> None:
        index = InMemoryRepoIndex(files={"README.md": "# Project\n", "src/index.ts": "export {};\n"})
        candidate = FeatureCandidate(description="Update README", document="docs/plan.md", line=5)

        result = EvaluationEngine(max_workers=1).evaluate([candidate], index).results[0]

        self.assertEqual(result.confidence, 0)
        self.assertEqual(result.status, "missing")
        self.assertIn("documentation task", result.recommendation)
        self.assertIn("markdown", result.recommendation)

    def test_archived_stale_todo_is_very_high(self) -> None:
        index = InMemoryRepoIndex(
            files={"_archive/old.ts": "// TODO: remove legacy handler\n"},
            modified={"_archive/old.ts": "2025-01-01T00:00:00Z"},
        )
        candidate = TodoCandidate(file="_archive/old.ts", line=1, text="remove legacy handler")

        result = EvaluationEngine(max_workers=1).evaluate([candidate], index).results[0]

        self.assertEqual(result.confidence, 90)
        self.assertEqual(result.status, "veryHigh")
        self.assertEqual(result.band, "veryHigh")
        self.assertEqual(result.recommendation, "Very likely completed - safe to close")

    def test_fresh_todo_is_active(self) -> None:
        index = InMemoryRepoIndex(
            files={"src/cart.ts": "// TODO: handle coupon codes\nexport const cart = 1;\n"},
            modified={"src/cart.ts": "2026-01-01T00:00:00Z"},
        )
        candidate = TodoCandidate(file="src/cart.ts", line=1, text="handle coupon codes")

        result = EvaluationEngine(max_workers=1).evaluate([candidate], index).results[0]

        self.assertEqual(result.confidence, 0)
        self.assertEqual(result.status, "active")

    def test_results_keep_input_order_and_are_deterministic(self) -> None:
        index = InMemoryRepoIndex(
            files={
                "src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n",
                "src/app.ts": "import { rateLimiter } from './middleware/rateLimiter';\n",
            }
        )
        candidates = [
            FeatureCandidate(description=f"Add rate limiting step {n}", document="docs/plan.md", line=n)
            for n in range(1, 9)
        ]

        sequential = EvaluationEngine(max_workers=1).evaluate(candidates, index)
        parallel = EvaluationEngine(max_workers=4).evaluate(candidates, index)

        self.assertEqual([r.identity for r in parallel.results], [c.identity for c in candidates])
        self.assertEqual(
            [r.model_dump() for r in sequential.results],
            [r.model_dump() for r in parallel.results],
        )

    def test_invalid_and_duplicate_candidates_produce_warnings(self) -> None:
        index = InMemoryRepoIndex(files={"src/a.ts": "// TODO: one\n"})
        candidates = [
            {"file": "src/a.ts", "line": 1, "text": "one"},
            {"file": "", "line": 1, "text": "broken"},
            TodoCandidate(file="src/a.ts", line=1, text="one"),
        ]

        batch = EvaluationEngine(max_workers=1).evaluate(candidates, index)

        self.assertEqual(len(batch.results), 2)
        self.assertTrue(any(w.startswith("Invalid candidate") for w in batch.warnings))
        self.assertTrue(any(w.startswith("Duplicate candidate src/a.ts:1") for w in batch.warnings))

    def test_unreadable_locations_surface_as_warnings(self) -> None:
        index = InMemoryRepoIndex(
            files={"src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n"},
            unreadable={"src/locked.ts": "permission denied"},
        )
        candidate = FeatureCandidate(description="Add rate limiting to the API", document="docs/plan.md", line=3)

        batch = EvaluationEngine(max_workers=1).evaluate([candidate], index)

        self.assertEqual(batch.results[0].status, "implemented")
        self.assertIn("Skipped unreadable location src/locked.ts: permission denied", batch.results[0].warnings)
        self.assertIn("Skipped unreadable location src/locked.ts: permission denied", batch.warnings)

    def test_prior_claim_note_is_added_to_reasons(self) -> None:
        candidate = FeatureCandidate(
            description="Add rate limiting to the API",
            document="docs/plan.md",
            line=3,
            priorStatus="completed",
        )

        result = EvaluationEngine(max_workers=1).evaluate([candidate], InMemoryRepoIndex()).results[0]

        self.assertEqual(result.status, "missing")
        self.assertTrue(any(reason.startswith("Marked 'completed'") for reason in result.reasons))

    def test_timed_out_candidate_is_unknown(self) -> None:
        settings = EngineSettings()
        blocker = _BlockingCollector(settings, slow_subject="slow item")
        engine = EvaluationEngine(settings, max_workers=2, timeout_seconds=0.2, collectors=[blocker])
        candidates = [
            TodoCandidate(file="src/a.ts", line=1, text="slow item"),
            TodoCandidate(file="src/a.ts", line=2, text="fast item"),
        ]

        try:
            batch = engine.evaluate(candidates, InMemoryRepoIndex())
        finally:
            blocker.release.set()

        slow, fast = batch.results
        self.assertEqual(slow.status, "unknown")
        self.assertEqual(slow.confidence, 0)
        self.assertEqual(slow.recommendation, TIMEOUT_RECOMMENDATION)
        self.assertIn("Evaluation of src/a.ts:1 exceeded 0.2s", batch.warnings)
        self.assertEqual(fast.evidence.filesFound, ["src/found.ts"])
        self.assertNotEqual(fast.status, "unknown")

    def test_queued_candidate_gets_its_own_budget(self) -> None:
        settings = EngineSettings()
        blocker = _BlockingCollector(settings, slow_subject="slow item")
        engine = EvaluationEngine(settings, max_workers=1, timeout_seconds=0.2, collectors=[blocker])
        candidates = [
            TodoCandidate(file="src/a.ts", line=1, text="slow item"),
            TodoCandidate(file="src/a.ts", line=2, text="fast item"),
            TodoCandidate(file="src/a.ts", line=3, text="another fast item"),
        ]

        try:
            batch = engine.evaluate(candidates, InMemoryRepoIndex())
        finally:
            blocker.release.set()

        self.assertEqual([r.status for r in batch.results][0], "unknown")
        for result in batch.results[1:]:
            self.assertNotEqual(result.status, "unknown")
            self.assertEqual(result.evidence.filesFound, ["src/found.ts"])
        self.assertEqual(batch.warnings, ["Evaluation of src/a.ts:1 exceeded 0.2s"])

    def test_plain_read_errors_are_skipped(self) -> None:
        index = _LockedIndex(
            files={
                "src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n",
                "src/secret.ts": "const rateLimit = 1;\n",
                "src/latin1.ts": "const search = 1;\n",
            }
        )
        candidates = [
            FeatureCandidate(description="Add rate limiting to the API", document="docs/plan.md", line=3),
            FeatureCandidate(description="Add search to the catalogue", document="docs/plan.md", line=4),
        ]

        for workers in (1, 2):
            with self.subTest(workers=workers):
                batch = EvaluationEngine(max_workers=workers).evaluate(candidates, index)

                self.assertEqual(len(batch.results), 2)
                self.assertEqual(batch.results[0].status, "implemented")
                self.assertIn("Skipped unreadable location src/secret.ts: Permission denied", batch.warnings)
                self.assertIn("Skipped unreadable location src/latin1.ts: cannot decode as UTF-8", batch.warnings)

    def test_unexpected_failure_degrades_only_that_candidate(self) -> None:
        settings = EngineSettings()
        candidates = [
            TodoCandidate(file="src/a.ts", line=1, text="broken item"),
            TodoCandidate(file="src/a.ts", line=2, text="healthy item"),
        ]

        for workers in (1, 2):
            with self.subTest(workers=workers):
                engine = EvaluationEngine(settings, max_workers=workers, collectors=[_FailingCollector(settings)])

                broken, healthy = engine.evaluate(candidates, InMemoryRepoIndex()).results

                self.assertEqual(broken.status, "unknown")
                self.assertEqual(broken.confidence, 0)
                self.assertEqual(broken.warnings, ["Evaluation of src/a.ts:1 failed: RuntimeError: boom"])
                self.assertEqual(healthy.evidence.filesFound, ["src/found.ts"])
                self.assertNotEqual(healthy.status, "unknown")

    def test_missing_status_means_no_code_evidence(self) -> None:
        index = InMemoryRepoIndex(
            files={
                "README.md": "# Project\n",
                "src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n",
                "src/app.ts": "import { rateLimiter } from './middleware/rateLimiter';\n",
                "src/middleware/rateLimiter.test.ts": "import { rateLimiter } from './rateLimiter';\n",
                "src/cart/CartStore.ts": "export const cartTotal = 0; // cart total\n",
            }
        )
        descriptions = [
            "Add rate limiting to the API",
            "Update README",
            "Render cart total in header",
            "Wire useCartStore into the header",
            "Add payment form component",
            "Support OAuth login with refresh tokens",
            "Run the full test suite",
        ]
        candidates = [
            FeatureCandidate(description=text, document="docs/plan.md", line=n)
            for n, text in enumerate(descriptions, start=1)
        ]

        results = EvaluationEngine(max_workers=1).evaluate(candidates, index).results

        self.assertEqual(len(results), len(candidates))
        self.assertIn("missing", {result.status for result in results})
        for result in results:
            evidence = result.evidence
            has_evidence = bool(
                evidence.filesFound or evidence.testsFound or evidence.usageDetected or evidence.codePatterns
            )
            with self.subTest(description=result.candidate.description):
                if result.status == "missing":
                    self.assertFalse(has_evidence)
                    self.assertEqual(result.confidence, 0)
                else:
                    self.assertTrue(has_evidence)

    def test_bad_configuration_is_rejected_up_front(self) -> None:
        with self.assertRaises(ConfigurationError):
            EvaluationEngine({"feature_weights": {"files": -1}})
        with self.assertRaises(ConfigurationError):
            EvaluationEngine(max_workers=0)
        with self.assertRaises(ConfigurationError):
            EvaluationEngine(timeout_seconds=-1)


if __name__ == "__main__":
    unittest.main()
