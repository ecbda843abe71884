import unittest

from plancheck.collectors.archival import ArchivalCollector
from plancheck.collectors.base import merge_evidence
from plancheck.collectors.files import FileExistenceCollector
from plancheck.collectors.patterns import CodePatternCollector
from plancheck.collectors.pipeline import CollectorPipeline, default_collectors
from plancheck.collectors.testfiles import TestFileCollector
from plancheck.collectors.usage import UsageCollector
from plancheck.models import Evidence, FeatureCandidate, PatternHit, TodoCandidate, UsageHit
from plancheck.repo_index import InMemoryRepoIndex
from plancheck.settings import EngineSettings, settings_from_overrides


def _feature(description: str, planned: list[str] | None = None) -> FeatureCandidate:
    return FeatureCandidate(description=description, document="docs/plan.md", line=3, plannedFiles=planned or [])


RATE_LIMIT = "Add rate limiting to the API"


class FileExistenceCollectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.collector = FileExistenceCollector(EngineSettings())

    def test_planned_paths_are_checked_directly(self) -> None:
        index = InMemoryRepoIndex(files={"src/checkout/flow.ts": "export {};\n"})

        evidence = self.collector.collect(
            _feature("Wire checkout", planned=["./src/checkout/flow.ts", "src/absent.ts"]),
            index,
        )

        self.assertEqual(evidence.filesFound, ["src/checkout/flow.ts"])

    def test_category_directory_probe_skips_tests_and_build_output(self) -> None:
        index = InMemoryRepoIndex(
            files={
                "src/components/PaymentForm.tsx": "export const PaymentForm = () => null;\n",
                "src/components/PaymentForm.test.tsx": "it('renders', () => {});\n",
                "dist/PaymentForm.js": "module.exports = {};\n",
            }
        )

        evidence = self.collector.collect(_feature("Build a PaymentForm component"), index)

        self.assertEqual(evidence.filesFound, ["src/components/PaymentForm.tsx"])

    def test_global_stem_match_uses_ing_stems(self) -> None:
        index = InMemoryRepoIndex(files={"src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n"})

        evidence = self.collector.collect(_feature(RATE_LIMIT), index)

        self.assertEqual(evidence.filesFound, ["src/middleware/rateLimiter.ts"])

    def test_todo_never_counts_its_own_file(self) -> None:
        index = InMemoryRepoIndex(files={"src/rateLimiter.ts": "// TODO: tune rate limiter\n"})
        candidate = TodoCandidate(file="src/rateLimiter.ts", line=1, text="tune rate limiter")

        self.assertEqual(self.collector.collect(candidate, index).filesFound, [])


class UsageCollectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.index = InMemoryRepoIndex(
            files={
                "src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n",
                "src/app.ts": (
                    "import { rateLimiter } from './middleware/rateLimiter';\n"
                    "const rateLimiterOff = rateLimiter;\n"
                ),
                "src/other.ts": "import { rateLimiterConfig } from './config';\n",
            }
        )
        self.collector = UsageCollector(EngineSettings())

    def test_import_lines_naming_found_module(self) -> None:
        prior = Evidence(filesFound=["src/middleware/rateLimiter.ts"])

        evidence = self.collector.collect(_feature(RATE_LIMIT), self.index, prior=prior)

        self.assertEqual(len(evidence.usageDetected), 1)
        hit = evidence.usageDetected[0]
        self.assertEqual((hit.file, hit.line), ("src/app.ts", 1))
        self.assertTrue(hit.statement.startswith("import { rateLimiter }"))
        self.assertEqual(prior.usageDetected, [])

    def test_without_prior_finds_files_itself(self) -> None:
        evidence = self.collector.collect(_feature(RATE_LIMIT), self.index)

        self.assertEqual(evidence.usage_files(), ["src/app.ts"])

    def test_no_found_files_means_no_usage(self) -> None:
        evidence = self.collector.collect(_feature(RATE_LIMIT), self.index, prior=Evidence())

        self.assertEqual(evidence.usageDetected, [])


class TestFileCollectorTests(unittest.TestCase):
    def test_matches_by_name_and_by_reference(self) -> None:
        index = InMemoryRepoIndex(
            files={
                "src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n",
                "src/middleware/rateLimiter.test.ts": "describe('limiter', () => {});\n",
                "tests/integration/api.spec.ts": "import { rateLimiter } from '../../src/middleware/rateLimiter';\n",
                "tests/other.test.ts": "it('works', () => {});\n",
            }
        )
        prior = Evidence(filesFound=["src/middleware/rateLimiter.ts"])

        evidence = TestFileCollector(EngineSettings()).collect(_feature(RATE_LIMIT), index, prior=prior)

        self.assertEqual(
            evidence.testsFound,
            ["src/middleware/rateLimiter.test.ts", "tests/integration/api.spec.ts"],
        )

    def test_python_test_naming(self) -> None:
        index = InMemoryRepoIndex(
            files={
                "app/rate_limiter.py": "def limit():\n    pass\n",
                "app/test_rate_limiter.py": "def test_limit():\n    pass\n",
            }
        )
        prior = Evidence(filesFound=["app/rate_limiter.py"])

        evidence = TestFileCollector(EngineSettings()).collect(_feature(RATE_LIMIT), index, prior=prior)

        self.assertEqual(evidence.testsFound, ["app/test_rate_limiter.py"])


class CodePatternCollectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.index = InMemoryRepoIndex(
            files={
                "src/noise.ts": "const rate = 3;\n",
                "src/server.ts": "const limiter = createRateLimit({ windowMs: 1000 });\n",
                "src/util.ts": "// limit the rate of retries\n",
            }
        )

    def test_compact_names_and_keyword_families(self) -> None:
        evidence = CodePatternCollector(EngineSettings()).collect(_feature(RATE_LIMIT), self.index, prior=Evidence())

        self.assertEqual(
            [(hit.file, hit.line) for hit in evidence.codePatterns],
            [("src/server.ts", 1), ("src/util.ts", 1)],
        )

    def test_found_files_are_excluded(self) -> None:
        prior = Evidence(filesFound=["src/server.ts"])

        evidence = CodePatternCollector(EngineSettings()).collect(_feature(RATE_LIMIT), self.index, prior=prior)

        self.assertEqual(evidence.pattern_files(), ["src/util.ts"])

    def test_matches_are_capped(self) -> None:
        settings = settings_from_overrides({"inference": {"max_pattern_matches": 1}})

        evidence = CodePatternCollector(settings).collect(_feature(RATE_LIMIT), self.index, prior=Evidence())

        self.assertEqual(len(evidence.codePatterns), 1)

    def test_unreadable_file_is_recorded_and_scan_continues(self) -> None:
        index = InMemoryRepoIndex(
            files={"src/util.ts": "// limit the rate of retries\n"},
            unreadable={"src/locked.ts": "permission denied"},
        )

        evidence = CodePatternCollector(EngineSettings()).collect(_feature(RATE_LIMIT), index, prior=Evidence())

        self.assertEqual(evidence.collectionErrors, ["src/locked.ts: permission denied"])
        self.assertEqual(evidence.pattern_files(), ["src/util.ts"])


class ArchivalCollectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.collector = ArchivalCollector(EngineSettings())

    def test_archived_path_and_age_from_modified_at(self) -> None:
        index = InMemoryRepoIndex(
            files={"_archive/old.ts": "// TODO: remove legacy handler\n"},
            modified={"_archive/old.ts": "2025-01-01T00:00:00Z"},
        )
        candidate = TodoCandidate(file="_archive/old.ts", line=1, text="remove legacy handler")

        evidence = self.collector.collect(candidate, index)

        self.assertTrue(evidence.archivalSignal.archivedPath)
        self.assertEqual(evidence.completionMarkers, [])
        self.assertEqual(evidence.ageSignal.ageDays, 365.0)
        self.assertEqual(evidence.ageSignal.thresholdDays, 180)
        self.assertEqual(evidence.ageSignal.source, "modified_at")

    def test_outdated_header_and_context_markers(self) -> None:
        index = InMemoryRepoIndex(
            files={"src/payments.ts": "// Deprecated: replaced by v2 client\n// TODO: retry failed charges\n"}
        )
        candidate = TodoCandidate(file="src/payments.ts", line=2, text="retry failed charges")

        evidence = self.collector.collect(candidate, index)

        self.assertFalse(evidence.archivalSignal.archivedPath)
        self.assertEqual(evidence.archivalSignal.indicators, ["file header mentions 'deprecated'"])
        self.assertEqual([marker.source for marker in evidence.completionMarkers], ["context"])
        self.assertEqual(evidence.completionMarkers[0].description, "Task is archived or obsolete")
        self.assertIsNone(evidence.ageSignal)

    def test_direct_marker_from_own_line(self) -> None:
        index = InMemoryRepoIndex(files={"notes.md": "- ~~migrate auth~~\n"})
        candidate = TodoCandidate(file="notes.md", line=1, text="~~migrate auth~~", rawText="- ~~migrate auth~~")

        evidence = self.collector.collect(candidate, index)

        self.assertEqual(len(evidence.completionMarkers), 1)
        self.assertEqual(evidence.completionMarkers[0].source, "direct")
        self.assertEqual(evidence.completionMarkers[0].confidence, 90)

    def test_last_touched_wins_over_file_dates(self) -> None:
        index = InMemoryRepoIndex(
            files={"src/a.ts": "// TODO: later\n"},
            modified={"src/a.ts": "2025-12-31T00:00:00Z"},
        )
        candidate = TodoCandidate(file="src/a.ts", line=1, text="later", lastTouched="2025-07-05")

        evidence = self.collector.collect(candidate, index)

        self.assertEqual(evidence.ageSignal.source, "lastTouched")
        self.assertEqual(evidence.ageSignal.ageDays, 180.0)

    def test_features_get_no_archival_signals(self) -> None:
        evidence = self.collector.collect(_feature(RATE_LIMIT), InMemoryRepoIndex())

        self.assertIsNone(evidence.archivalSignal)
        self.assertIsNone(evidence.ageSignal)


class PipelineTests(unittest.TestCase):
    def test_default_order(self) -> None:
        names = [collector.name for collector in default_collectors(EngineSettings())]

        self.assertEqual(names, ["files", "usage", "tests", "patterns", "archival"])

    def test_collect_combines_fragments(self) -> None:
        index = InMemoryRepoIndex(
            files={
                "src/middleware/rateLimiter.ts": "export function rateLimiter() {}\n",
                "src/middleware/rateLimiter.test.ts": "it('limits', () => {});\n",
                "src/app.ts": "import { rateLimiter } from './middleware/rateLimiter';\n",
            }
        )

        evidence = CollectorPipeline(EngineSettings()).collect(_feature(RATE_LIMIT), index)

        self.assertEqual(evidence.filesFound, ["src/middleware/rateLimiter.ts"])
        self.assertEqual(evidence.testsFound, ["src/middleware/rateLimiter.test.ts"])
        self.assertEqual(evidence.usage_files(), ["src/app.ts"])

    def test_merge_evidence_is_additive_and_deduplicated(self) -> None:
        target = Evidence(
            filesFound=["a.ts"],
            usageDetected=[UsageHit(file="b.ts", line=1, statement="import a")],
        )
        fragment = Evidence(
            filesFound=["a.ts", "c.ts"],
            usageDetected=[UsageHit(file="b.ts", line=1, statement="import a")],
            codePatterns=[PatternHit(file="d.ts", line=4, snippet="a()")],
            collectionErrors=["x.ts: binary content"],
        )

        merge_evidence(target, fragment)

        self.assertEqual(target.filesFound, ["a.ts", "c.ts"])
        self.assertEqual(len(target.usageDetected), 1)
        self.assertEqual(target.pattern_files(), ["d.ts"])
        self.assertEqual(target.collectionErrors, ["x.ts: binary content"])


if __name__ == "__main__":
    unittest.main()
