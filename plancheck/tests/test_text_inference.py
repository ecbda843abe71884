import unittest

from plancheck.date_utils import age_in_days, normalize_iso_date
from plancheck.settings import InferenceRules
from plancheck.text_inference import (
    compact,
    infer_terms,
    ing_stems,
    is_test_path,
    module_name,
    name_variants,
    split_identifier,
    strip_test_affixes,
)


class TextInferenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rules = InferenceRules()

    def test_split_identifier_and_compact(self) -> None:
        self.assertEqual(split_identifier("rateLimiter"), ["rate", "limiter"])
        self.assertEqual(split_identifier("HTTPServer"), ["http", "server"])
        self.assertEqual(split_identifier("rate_limit-config"), ["rate", "limit", "config"])
        self.assertEqual(compact("Rate-Limiter_v2"), "ratelimiterv2")

    def test_ing_stems(self) -> None:
        self.assertEqual(ing_stems("limiting"), ["limit", "limiter"])
        self.assertEqual(ing_stems("caching"), ["cach", "cache", "cacher"])
        self.assertEqual(ing_stems("running"), ["run", "runer"])
        self.assertEqual(ing_stems("ring"), [])
        self.assertEqual(ing_stems("limit"), [])

    def test_name_variants(self) -> None:
        self.assertEqual(
            name_variants(["rate", "limiter"]),
            ["RateLimiter", "rateLimiter", "rate-limiter", "rate_limiter"],
        )
        self.assertEqual(name_variants([]), [])

    def test_infer_terms_from_description(self) -> None:
        terms = infer_terms("Add rate limiting to the API", self.rules)

        self.assertEqual(terms.keywords, ["rate", "limiting"])
        self.assertIn("rateLimiter", terms.names())
        self.assertIn("ratelimit", terms.compact_names())
        self.assertEqual(terms.family_of("limiter"), "limiting")
        self.assertIn("src/api", terms.category_dirs)

    def test_infer_terms_keeps_identifiers(self) -> None:
        terms = infer_terms("Wire useCartStore into the header", self.rules)

        self.assertEqual(terms.identifiers, ["useCartStore"])
        self.assertIn("useCartStore", terms.names())
        self.assertIn("src/store", terms.category_dirs)

    def test_keyword_limit(self) -> None:
        rules = InferenceRules(max_keywords=2)

        terms = infer_terms("Render invoice totals with currency formatting", rules)

        self.assertEqual(terms.keywords, ["render", "invoice"])

    def test_path_shapes(self) -> None:
        self.assertTrue(is_test_path("src/rateLimiter.test.ts", self.rules))
        self.assertTrue(is_test_path("app/test_rate_limiter.py", self.rules))
        self.assertTrue(is_test_path("pkg/limiter_test.go", self.rules))
        self.assertTrue(is_test_path("__tests__/limiter.ts", self.rules))
        self.assertFalse(is_test_path("src/testing/helpers.ts", self.rules))
        self.assertEqual(module_name("src/components/Cart/index.tsx"), "Cart")
        self.assertEqual(module_name("app/rate_limiter.py"), "rate_limiter")
        self.assertEqual(strip_test_affixes("src/rateLimiter.spec.ts"), "rateLimiter")
        self.assertEqual(strip_test_affixes("pkg/limiter_test.go"), "limiter")


class DateUtilsTests(unittest.TestCase):
    def test_normalize_iso_date(self) -> None:
        self.assertEqual(normalize_iso_date("2026-01-01"), "2026-01-01")
        self.assertEqual(normalize_iso_date("2026-01-01T10:00:00+02:00"), "2026-01-01T08:00:00Z")
        self.assertEqual(normalize_iso_date("not a date"), "")
        self.assertEqual(normalize_iso_date(None), "")

    def test_age_in_days(self) -> None:
        self.assertEqual(age_in_days("2025-12-02T00:00:00Z", "2026-01-01T00:00:00Z"), 30.0)
        self.assertEqual(age_in_days("2026-02-01", "2026-01-01"), 0.0)
        self.assertIsNone(age_in_days("", "2026-01-01"))


if __name__ == "__main__":
    unittest.main()
