import json
import tempfile
import unittest
from pathlib import Path

from plancheck.errors import ConfigurationError
from plancheck.settings import EngineSettings, load_engine_settings, settings_from_overrides, validate_settings


class EngineSettingsTests(unittest.TestCase):
    def test_defaults_carry_documented_weights_and_bands(self) -> None:
        settings = EngineSettings()

        self.assertEqual(settings.feature_weights.files, 30)
        self.assertEqual(settings.feature_weights.tests, 20)
        self.assertEqual(settings.feature_weights.pattern_discount, 0.5)
        self.assertEqual(settings.todo_weights.archived_path, 55)
        self.assertEqual(settings.todo_weights.age_cap, 35)
        self.assertEqual(
            (settings.todo_bands.very_high, settings.todo_bands.high, settings.todo_bands.medium, settings.todo_bands.low),
            (90, 70, 50, 30),
        )
        self.assertEqual(settings.feature_bands.implemented_floor, 30)
        self.assertEqual(
            set(settings.classifier.todo_actions),
            {"veryHigh", "high", "medium", "low", "active"},
        )

    def test_validate_settings_rejects_negative_weight(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            validate_settings({"feature_weights": {"files": -5}})
        self.assertIn("feature_weights.files", str(ctx.exception))

    def test_validate_settings_catches_mutated_model(self) -> None:
        settings = EngineSettings()
        settings.todo_weights.direct_marker = -1

        with self.assertRaises(ConfigurationError):
            validate_settings(settings)

    def test_unordered_bands_are_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            settings_from_overrides({"todo_bands": {"high": 95}})

    def test_pattern_discount_must_be_a_fraction(self) -> None:
        with self.assertRaises(ConfigurationError):
            settings_from_overrides({"feature_weights": {"pattern_discount": 1.5}})

    def test_file_weight_must_cover_pattern_discount(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            settings_from_overrides({"feature_weights": {"files": 5}})
        self.assertIn("pattern_cap", str(ctx.exception))

        with self.assertRaises(ConfigurationError):
            settings_from_overrides({"todo_weights": {"files": 2, "patterns": 10}})

        relaxed = settings_from_overrides({"feature_weights": {"files": 5, "pattern_discount": 1.0}})
        self.assertEqual(relaxed.feature_weights.files, 5)

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            settings_from_overrides({"feature_weights": {"filez": 10}})

    def test_invalid_regex_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            settings_from_overrides({"archival": {"archive_path_patterns": ["(unclosed"]}})

    def test_overrides_merge_over_defaults(self) -> None:
        settings = settings_from_overrides({"feature_weights": {"files": 40}})

        self.assertEqual(settings.feature_weights.files, 40)
        self.assertEqual(settings.feature_weights.tests, 20)
        self.assertEqual(settings.todo_weights.archived_path, 55)


class LoadEngineSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_empty_path_returns_defaults(self) -> None:
        self.assertEqual(load_engine_settings(""), EngineSettings())
        self.assertEqual(load_engine_settings(None), EngineSettings())

    def test_yaml_overrides(self) -> None:
        path = self.root / "engine.yaml"
        path.write_text("todo_bands:\n  very_high: 95\nfeature_bands:\n  implemented_floor: 40\n", encoding="utf-8")

        settings = load_engine_settings(path)

        self.assertEqual(settings.todo_bands.very_high, 95)
        self.assertEqual(settings.feature_bands.implemented_floor, 40)

    def test_json_overrides(self) -> None:
        path = self.root / "engine.json"
        path.write_text(json.dumps({"inference": {"max_keywords": 3}}), encoding="utf-8")

        self.assertEqual(load_engine_settings(path).inference.max_keywords, 3)

    def test_unparseable_file_raises_configuration_error(self) -> None:
        path = self.root / "engine.json"
        path.write_text("{not json", encoding="utf-8")

        with self.assertRaises(ConfigurationError):
            load_engine_settings(path)

    def test_missing_file_raises_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_engine_settings(self.root / "absent.yaml")


if __name__ == "__main__":
    unittest.main()
