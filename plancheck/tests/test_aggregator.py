import unittest

from plancheck.aggregator import Aggregator, aggregate, by_band, by_document, progress_percent
from plancheck.models import FeatureCandidate, ScoredResult, TodoCandidate


def _feature_result(description: str, document: str, status: str, confidence: int, line: int = 1) -> ScoredResult:
    return ScoredResult(
        candidate=FeatureCandidate(description=description, document=document, line=line),
        kind="feature",
        confidence=confidence,
        status=status,
        band="low",
    )


def _todo_result(path: str, line: int, confidence: int, status: str) -> ScoredResult:
    return ScoredResult(
        candidate=TodoCandidate(file=path, line=line, text=f"item {line}"),
        kind="todo",
        confidence=confidence,
        status=status,
        band=status,
    )


class ProgressPercentTests(unittest.TestCase):
    def test_rounding(self) -> None:
        self.assertEqual(progress_percent(1, 3), 33)
        self.assertEqual(progress_percent(2, 3), 67)
        self.assertEqual(progress_percent(1, 8), 13)
        self.assertEqual(progress_percent(3, 3), 100)
        self.assertEqual(progress_percent(0, 0), 0)


class FeatureAggregationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.results = [
            _feature_result("Login form", "docs/auth.md", "implemented", 85, line=1),
            _feature_result("Password reset", "docs/auth.md", "missing", 0, line=2),
            _feature_result("Cart badge", "docs/cart.md", "partial", 20, line=1),
            _feature_result("Checkout", "docs/cart.md", "implemented", 30, line=2),
            _feature_result("Coupons", "docs/cart.md", "unknown", 0, line=3),
            _feature_result("Wishlist", "docs/cart.md", "missing", 0, line=4),
        ]

    def test_groups_keep_first_seen_order(self) -> None:
        report = aggregate(self.results, by_document, kind="feature")

        self.assertEqual([group.key for group in report.groups], ["docs/auth.md", "docs/cart.md"])
        auth, cart = report.groups
        self.assertEqual((auth.total, auth.implemented, auth.missing, auth.progressPercent), (2, 1, 1, 50))
        self.assertEqual((cart.total, cart.implemented, cart.partial, cart.missing, cart.unknown), (4, 1, 1, 1, 1))
        self.assertEqual(cart.progressPercent, 25)
        self.assertEqual(cart.statusCounts["unknown"], 1)

    def test_summary_and_overall_progress(self) -> None:
        report = aggregate(self.results, by_document, kind="feature")

        self.assertEqual(report.total, 6)
        self.assertEqual(report.summary, {"implemented": 2, "partial": 1, "missing": 2, "unknown": 1})
        self.assertEqual(report.progressPercent, 33)
        # (85 + 20 + 30) / 6 = 22.5 -> 23
        self.assertEqual(report.averageConfidence, 23)
        self.assertIsNone(report.recommendations)

    def test_implemented_results_are_split_by_band(self) -> None:
        results = self.results + [
            _feature_result("Order history", "docs/cart.md", "implemented", 65, line=5),
            _feature_result("Saved cards", "docs/auth.md", "implemented", 92, line=3),
        ]

        report = aggregate(results, by_document, kind="feature")

        self.assertEqual(report.implementedBands, {"high": 2, "medium": 1, "low": 1})
        auth, cart = report.groups
        self.assertEqual(auth.implementedBands, {"high": 2, "medium": 0, "low": 0})
        self.assertEqual(cart.implementedBands, {"high": 0, "medium": 1, "low": 1})
        self.assertEqual(
            [result.candidate.description for result in report.highConfidence],
            ["Saved cards", "Login form"],
        )

    def test_todo_reports_have_no_implemented_bands(self) -> None:
        report = aggregate([_todo_result("src/a.ts", 1, 95, "veryHigh")], kind="todo")

        self.assertEqual(report.implementedBands, {})
        self.assertEqual(report.highConfidence, [])
        self.assertEqual(report.groups[0].implementedBands, {})

    def test_top_items_order(self) -> None:
        report = aggregate(self.results, by_document, kind="feature")

        self.assertEqual(
            [result.candidate.description for result in report.topItems],
            ["Password reset", "Wishlist", "Coupons", "Cart badge", "Checkout"],
        )

    def test_top_items_respect_limit(self) -> None:
        report = aggregate(self.results, by_document, kind="feature", top_n=2)

        self.assertEqual(len(report.topItems), 2)

    def test_aggregation_is_idempotent(self) -> None:
        first = aggregate(self.results, by_document, kind="feature")
        second = aggregate(self.results, by_document, kind="feature")

        self.assertEqual(first.model_dump(), second.model_dump())

    def test_empty_input(self) -> None:
        report = aggregate([], kind="feature")

        self.assertEqual(report.total, 0)
        self.assertEqual(report.progressPercent, 0)
        self.assertEqual(report.averageConfidence, 0)
        self.assertEqual(report.groups, [])
        self.assertEqual(report.topItems, [])


class TodoAggregationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.results = [
            _todo_result("src/a.ts", 1, 95, "veryHigh"),
            _todo_result("src/b.ts", 4, 72, "high"),
            _todo_result("src/a.ts", 9, 90, "veryHigh"),
            _todo_result("src/c.ts", 2, 55, "medium"),
            _todo_result("src/b.ts", 7, 10, "active"),
            _todo_result("src/d.ts", 3, 0, "unknown"),
        ]

    def test_done_counts_high_and_above(self) -> None:
        aggregator = Aggregator()

        self.assertEqual([aggregator.is_done(result) for result in self.results], [True, True, True, False, False, False])

    def test_summary_cleanup_and_recommendations(self) -> None:
        report = aggregate(self.results, by_band, kind="todo")

        self.assertEqual(
            report.summary,
            {"veryHigh": 2, "high": 1, "medium": 1, "low": 0, "active": 1, "unknown": 1},
        )
        self.assertEqual(report.progressPercent, 50)
        self.assertEqual(report.potentialCleanup, 2)
        self.assertEqual(report.potentialCleanupPercent, 33)

        recs = report.recommendations
        self.assertEqual([r.identity for r in recs.safeToClose], ["src/a.ts:1", "src/a.ts:9"])
        self.assertEqual([r.identity for r in recs.needsReview], ["src/b.ts:4"])
        self.assertEqual([r.identity for r in recs.possiblyDone], ["src/c.ts:2"])
        self.assertEqual([(entry.file, entry.count) for entry in recs.topCleanupFiles], [("src/a.ts", 2), ("src/b.ts", 1)])

    def test_top_items_by_confidence_without_unknown(self) -> None:
        report = aggregate(self.results, by_band, kind="todo")

        self.assertEqual(
            [result.identity for result in report.topItems],
            ["src/a.ts:1", "src/a.ts:9", "src/b.ts:4", "src/c.ts:2", "src/b.ts:7"],
        )

    def test_group_by_band(self) -> None:
        report = aggregate(self.results, by_band, kind="todo")

        self.assertEqual([group.key for group in report.groups], ["veryHigh", "high", "medium", "active", "unknown"])
        self.assertEqual(report.groups[0].total, 2)
        self.assertEqual(report.groups[0].progressPercent, 100)


if __name__ == "__main__":
    unittest.main()
