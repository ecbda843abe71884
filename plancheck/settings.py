"""Engine weights, band thresholds and heuristic tables.

Everything the collectors, scorer and classifier treat as a tunable constant
lives here so a test (or a YAML override file) can swap any of it per engine
instance. ``EvaluationEngine`` re-validates the settings it is given and turns
any problem into a ``ConfigurationError`` before a single candidate is read.
"""
from __future__ import annotations

import copy
import json
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from plancheck.errors import ConfigurationError


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ── Scoring weights ─────────────────────────────────────────────────

class FeatureWeights(_StrictModel):
    files: int = 30
    usage_per_file: int = 10
    usage_cap: int = 20
    tests: int = 20
    pattern_per_file: int = 10
    pattern_cap: int = 30
    pattern_discount: float = 0.5

    @field_validator("files", "usage_per_file", "usage_cap", "tests", "pattern_per_file", "pattern_cap")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("weights must be non-negative")
        return value

    @field_validator("pattern_discount")
    @classmethod
    def _discount_range(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("pattern_discount must be within [0, 1]")
        return value

    @model_validator(mode="after")
    def _files_outweigh_discount(self) -> "FeatureWeights":
        # Finding a file discounts patterns; the file weight must cover that loss.
        lost = self.pattern_cap * (1.0 - self.pattern_discount)
        if self.files < lost:
            raise ValueError(
                f"files ({self.files}) must be at least pattern_cap * (1 - pattern_discount) ({lost:g})"
            )
        return self


class TodoWeights(_StrictModel):
    direct_marker: int = 60
    context_marker: int = 25
    archived_path: int = 55
    outdated_document: int = 25
    age_cap: int = 35
    age_threshold_days: int = 180
    files: int = 15
    tests: int = 10
    usage: int = 5
    patterns: int = 5
    pattern_discount: float = 0.5

    @field_validator(
        "direct_marker",
        "context_marker",
        "archived_path",
        "outdated_document",
        "age_cap",
        "files",
        "tests",
        "usage",
        "patterns",
    )
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("weights must be non-negative")
        return value

    @field_validator("age_threshold_days")
    @classmethod
    def _positive_threshold(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("age_threshold_days must be positive")
        return value

    @field_validator("pattern_discount")
    @classmethod
    def _discount_range(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("pattern_discount must be within [0, 1]")
        return value

    @model_validator(mode="after")
    def _files_outweigh_discount(self) -> "TodoWeights":
        lost = self.patterns * (1.0 - self.pattern_discount)
        if self.files < lost:
            raise ValueError(
                f"files ({self.files}) must be at least patterns * (1 - pattern_discount) ({lost:g})"
            )
        return self


# ── Bands ───────────────────────────────────────────────────────────

class TodoBands(_StrictModel):
    very_high: int = 90
    high: int = 70
    medium: int = 50
    low: int = 30

    @model_validator(mode="after")
    def _ordered(self) -> "TodoBands":
        if not 100 >= self.very_high > self.high > self.medium > self.low > 0:
            raise ValueError("TODO bands must satisfy 100 >= very_high > high > medium > low > 0")
        return self


class FeatureBands(_StrictModel):
    implemented_floor: int = 30
    high: int = 70
    medium: int = 60

    @model_validator(mode="after")
    def _ordered(self) -> "FeatureBands":
        if not 0 < self.implemented_floor <= 100:
            raise ValueError("implemented_floor must be within (0, 100]")
        if not 100 >= self.high > self.medium > 0:
            raise ValueError("feature bands must satisfy 100 >= high > medium > 0")
        return self


# ── Inference and matching heuristics ───────────────────────────────

_DEFAULT_STOP_WORDS = [
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "from", "into", "onto", "when", "then", "that", "this", "these", "those", "should", "must",
    "will", "can", "add", "adds", "added", "adding", "new", "use", "using", "make", "create",
    "implement", "support", "update", "allow", "enable", "ensure", "each", "every", "all",
    "some", "more", "less", "than", "have", "has", "also", "only", "just", "like",
]

_DEFAULT_CATEGORY_DIRS: dict[str, list[str]] = {
    "component": ["components", "src/components", "app/components"],
    "button": ["components", "src/components"],
    "modal": ["components", "src/components"],
    "widget": ["components", "src/components"],
    "page": ["pages", "src/pages", "app"],
    "screen": ["screens", "src/screens"],
    "hook": ["hooks", "src/hooks"],
    "api": ["api", "src/api", "pages/api", "server", "routes"],
    "endpoint": ["api", "src/api", "routes", "src/routes", "server"],
    "route": ["routes", "src/routes", "api"],
    "handler": ["handlers", "src/handlers", "api"],
    "service": ["services", "src/services"],
    "client": ["lib", "src/lib", "services", "src/services", "clients"],
    "store": ["store", "src/store", "stores"],
    "state": ["store", "src/store", "state", "src/state"],
    "reducer": ["reducers", "src/reducers", "store"],
    "context": ["context", "src/context", "contexts"],
    "util": ["utils", "src/utils", "lib"],
    "helper": ["helpers", "utils", "src/utils"],
    "model": ["models", "src/models"],
    "middleware": ["middleware", "src/middleware"],
}

_DEFAULT_SOURCE_EXTENSIONS = [
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".vue", ".svelte",
    ".py", ".go", ".rs", ".rb", ".java", ".kt", ".swift", ".php",
    ".css", ".scss",
]


class InferenceRules(_StrictModel):
    stop_words: list[str] = Field(default_factory=lambda: list(_DEFAULT_STOP_WORDS))
    min_keyword_length: int = 4
    max_keywords: int = 6
    category_dirs: dict[str, list[str]] = Field(default_factory=lambda: copy.deepcopy(_DEFAULT_CATEGORY_DIRS))
    default_dirs: list[str] = Field(default_factory=lambda: ["", "src", "lib", "app"])
    source_extensions: list[str] = Field(default_factory=lambda: list(_DEFAULT_SOURCE_EXTENSIONS))
    test_dir_names: list[str] = Field(default_factory=lambda: ["tests", "__tests__", "test", "spec"])
    build_output_dirs: list[str] = Field(default_factory=lambda: ["dist", "build", ".next", "out", "coverage"])
    max_statement_length: int = 100
    max_pattern_matches: int = 25
    min_keyword_hits: int = 2

    @field_validator("min_keyword_length", "max_keywords", "max_statement_length", "max_pattern_matches", "min_keyword_hits")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("inference limits must be positive")
        return value

    @field_validator("source_extensions")
    @classmethod
    def _dotted(cls, values: list[str]) -> list[str]:
        normalized = []
        for value in values:
            token = value.strip().lower()
            if not token:
                continue
            normalized.append(token if token.startswith(".") else f".{token}")
        if not normalized:
            raise ValueError("source_extensions cannot be empty")
        return normalized


class CompletionIndicator(_StrictModel):
    pattern: str
    confidence: int
    description: str
    context_required: bool = True

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid regex {value!r}: {exc}") from exc
        return value

    @field_validator("confidence")
    @classmethod
    def _percent(cls, value: int) -> int:
        if not 0 <= value <= 100:
            raise ValueError("indicator confidence must be within [0, 100]")
        return value


_DEFAULT_COMPLETION_INDICATORS = [
    CompletionIndicator(
        pattern=r"\[[xX]\]|✓|✅|☑",
        confidence=95,
        description="Task explicitly marked as completed",
        context_required=False,
    ),
    CompletionIndicator(
        pattern=r"~~.+~~|<del>.+</del>|<strike>.+</strike>",
        confidence=90,
        description="Strikethrough formatting",
        context_required=False,
    ),
    CompletionIndicator(
        pattern=r"\b(completed|done|finished|implemented|resolved|fixed|merged)\b",
        confidence=80,
        description="Contains completion keywords",
    ),
    CompletionIndicator(
        pattern=r"\bstatus:\s*(done|complete|completed|implemented|finished)\b",
        confidence=90,
        description="Explicit status indicator",
    ),
    CompletionIndicator(
        pattern=r"\b(as of|completed on|done on|finished on)\s+\d{1,4}[/-]\d{1,2}[/-]\d{1,4}",
        confidence=85,
        description="Date-stamped completion",
    ),
    CompletionIndicator(
        pattern=r"\b(deployed|shipped|released|in production)\b",
        confidence=75,
        description="Deployment/release indicators",
    ),
    CompletionIndicator(
        pattern=r"\b(archived|obsolete|deprecated|no longer needed|cancelled|not needed)\b",
        confidence=85,
        description="Task is archived or obsolete",
    ),
    CompletionIndicator(
        pattern=r"\bupdate:?\s*(done|complete|this is now (done|completed|working))",
        confidence=80,
        description="Update notes indicating completion",
    ),
]


class ArchivalRules(_StrictModel):
    archive_path_patterns: list[str] = Field(
        default_factory=lambda: [
            r"(^|/)_?archive/",
            r"(^|/)archived/",
            r"(^|/)old/",
            r"(^|/)deprecated/",
            r"(^|/)legacy/",
            r"\.old\.",
            r"\.backup\.",
            r"_old_",
            r"_deprecated_",
        ]
    )
    outdated_indicators: list[str] = Field(
        default_factory=lambda: [
            r"\b(legacy|archived|superseded|replaced by|migrated to|deprecated)\b",
        ]
    )
    completion_indicators: list[CompletionIndicator] = Field(
        default_factory=lambda: [item.model_copy() for item in _DEFAULT_COMPLETION_INDICATORS]
    )
    context_lines: int = 3
    header_chars: int = 500

    @field_validator("archive_path_patterns", "outdated_indicators")
    @classmethod
    def _compiles(cls, values: list[str]) -> list[str]:
        for value in values:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid regex {value!r}: {exc}") from exc
        return values

    @field_validator("context_lines", "header_chars")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("archival limits must be non-negative")
        return value


# ── Classifier heuristics ───────────────────────────────────────────

class TaskTypeRule(_StrictModel):
    name: str
    label: str
    keywords: list[str]
    explanation: str
    suggestion: str

    @field_validator("keywords")
    @classmethod
    def _non_empty(cls, values: list[str]) -> list[str]:
        cleaned = [value.strip().lower() for value in values if value and value.strip()]
        if not cleaned:
            raise ValueError("task type rules need at least one keyword")
        return cleaned


_DEFAULT_TASK_TYPES = [
    TaskTypeRule(
        name="documentation",
        label="documentation task",
        keywords=["readme", "docs", "documentation", "document", "changelog", "guide", "docstring", "jsdoc", "wiki", "tutorial"],
        explanation="Documentation work lands in markdown files, so no dedicated source file is expected.",
        suggestion="Check README.md, CHANGELOG.md and the markdown files under docs/ for the described content.",
    ),
    TaskTypeRule(
        name="configuration",
        label="configuration change",
        keywords=["config", "configuration", "configure", "setting", "settings", "env", "environment", "flag", "toggle", "option", "options"],
        explanation="Configuration changes edit existing settings files instead of adding a dedicated implementation file.",
        suggestion="Check package.json, pyproject.toml, .env files and *.config.* files for the setting.",
    ),
    TaskTypeRule(
        name="maintenance",
        label="maintenance/refactor task",
        keywords=["refactor", "cleanup", "clean", "rename", "migrate", "migration", "upgrade", "bump", "remove", "delete", "deprecate", "simplify", "optimize", "reorganize", "restructure"],
        explanation="Maintenance and refactoring reshape existing code in place, so it leaves no new file behind.",
        suggestion="Review the git history and diffs of the affected modules to confirm the change.",
    ),
    TaskTypeRule(
        name="build_deploy",
        label="build/deploy task",
        keywords=["build", "deploy", "deployment", "ci", "cd", "pipeline", "docker", "dockerfile", "release", "bundle", "webpack", "vite", "workflow", "publish", "hosting"],
        explanation="Build and deployment work lives in pipeline and tooling files rather than application source.",
        suggestion="Check .github/workflows, Dockerfile, Makefile and the build scripts in package.json.",
    ),
    TaskTypeRule(
        name="ui_component",
        label="UI component",
        keywords=["component", "button", "modal", "page", "layout", "style", "styles", "css", "animation", "ui", "view", "screen", "form", "dialog", "navbar", "header", "footer", "icon", "theme"],
        explanation="UI work is often folded into an existing component or named after the screen rather than the description.",
        suggestion="Search components/ and pages/ for the rendered element, its label text or its CSS class.",
    ),
    TaskTypeRule(
        name="api_backend",
        label="API/backend task",
        keywords=["api", "endpoint", "route", "routes", "server", "backend", "database", "db", "query", "handler", "request", "webhook", "auth", "authentication", "rest", "graphql"],
        explanation="Backend behaviour is usually added to an existing router or service module named after the resource.",
        suggestion="Check api/, routes/ and server handlers for the endpoint path or resource name.",
    ),
    TaskTypeRule(
        name="state_management",
        label="state-management task",
        keywords=["state", "store", "redux", "context", "reducer", "zustand", "mobx", "cache", "persist", "persistence", "selector"],
        explanation="State management is typically extended inside an existing store, reducer or context provider.",
        suggestion="Check store/, hooks/ and context providers for the state slice or action name.",
    ),
]

_DEFAULT_TODO_ACTIONS = {
    "veryHigh": "Very likely completed - safe to close",
    "high": "Probably completed - needs review",
    "medium": "Possibly done - verify against recent commits",
    "low": "Low confidence - keep but flag for review",
    "active": "Appears active - keep as-is",
}


class ClassifierRules(_StrictModel):
    task_types: list[TaskTypeRule] = Field(default_factory=lambda: [item.model_copy() for item in _DEFAULT_TASK_TYPES])
    todo_actions: dict[str, str] = Field(default_factory=lambda: dict(_DEFAULT_TODO_ACTIONS))

    @field_validator("todo_actions")
    @classmethod
    def _all_bands(cls, value: dict[str, str]) -> dict[str, str]:
        missing = [band for band in _DEFAULT_TODO_ACTIONS if not value.get(band)]
        if missing:
            raise ValueError(f"todo_actions missing bands: {', '.join(missing)}")
        return value


# ── TODO comment patterns ───────────────────────────────────────────

class TodoPattern(_StrictModel):
    name: str
    regex: str
    priority: str = "medium"
    category: str = "code"

    @field_validator("regex")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid regex {value!r}: {exc}") from exc
        return value

    @field_validator("priority")
    @classmethod
    def _known_priority(cls, value: str) -> str:
        token = value.strip().lower()
        if token not in {"high", "medium", "low"}:
            raise ValueError("priority must be high, medium or low")
        return token


def _comment_pattern(tag: str) -> str:
    return r"(?:^|\s)(?://|#|/\*|\*|<!--)\s*" + tag + r"\b:?\s*(.+?)\s*(?:\*/|-->)?$"


_DEFAULT_TODO_PATTERNS = [
    TodoPattern(name="TODO", regex=_comment_pattern("TODO"), priority="medium"),
    TodoPattern(name="FIXME", regex=_comment_pattern("FIXME"), priority="high"),
    TodoPattern(name="HACK", regex=_comment_pattern("HACK"), priority="low"),
    TodoPattern(name="BUG", regex=_comment_pattern("BUG"), priority="high"),
    TodoPattern(name="OPTIMIZE", regex=_comment_pattern("OPTIMIZE"), priority="low"),
    TodoPattern(name="REFACTOR", regex=_comment_pattern("REFACTOR"), priority="medium"),
    TodoPattern(name="NOTE", regex=_comment_pattern("NOTE"), priority="low"),
    TodoPattern(name="XXX", regex=_comment_pattern("XXX"), priority="medium"),
    TodoPattern(name="Unchecked Task", regex=r"^\s*[-*]\s+\[\s\]\s+(.+)$", priority="medium", category="markdown"),
    TodoPattern(name="Action Item", regex=r"^\s*(?:Action\s*Item|AI)(?:\s*\d*)?:\s*(.+)$", priority="high", category="markdown"),
]


class ScannerRules(_StrictModel):
    patterns: list[TodoPattern] = Field(default_factory=lambda: [item.model_copy() for item in _DEFAULT_TODO_PATTERNS])
    markdown_extensions: list[str] = Field(default_factory=lambda: [".md", ".mdx", ".markdown"])
    code_extensions: list[str] = Field(
        default_factory=lambda: [
            ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".py", ".java", ".kt", ".c", ".h",
            ".cpp", ".hpp", ".cs", ".go", ".rs", ".rb", ".php", ".swift", ".scala", ".sh",
            ".bash", ".yaml", ".yml", ".vue", ".svelte", ".sql", ".dart", ".lua",
        ]
    )
    plan_file_suffixes: list[str] = Field(default_factory=lambda: ["_PLAN.md", "-plan.md", "_plan.md"])
    verification_patterns: list[str] = Field(
        default_factory=lambda: [
            r"^run\s+",
            r"^test\s+",
            r"^verify\s+",
            r"^check\s+",
            r"^ensure\s+",
            r"\bpass(es)?\b",
            r"\bno\s+errors?\b",
            r"lighthouse\s+score",
            r"git\s+commit",
        ]
    )


# ── Root settings ───────────────────────────────────────────────────

class EngineSettings(_StrictModel):
    feature_weights: FeatureWeights = Field(default_factory=FeatureWeights)
    todo_weights: TodoWeights = Field(default_factory=TodoWeights)
    todo_bands: TodoBands = Field(default_factory=TodoBands)
    feature_bands: FeatureBands = Field(default_factory=FeatureBands)
    inference: InferenceRules = Field(default_factory=InferenceRules)
    archival: ArchivalRules = Field(default_factory=ArchivalRules)
    classifier: ClassifierRules = Field(default_factory=ClassifierRules)
    scanner: ScannerRules = Field(default_factory=ScannerRules)
    max_read_bytes: int = 256 * 1024

    @field_validator("max_read_bytes")
    @classmethod
    def _positive_read(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_read_bytes must be positive")
        return value


def _format_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(token) for token in error.get("loc", ()))
        parts.append(f"{location or '<root>'}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_settings(settings: EngineSettings | dict[str, Any] | None) -> EngineSettings:
    """Re-validate settings (or a raw mapping) and raise ``ConfigurationError`` on failure."""
    if settings is None:
        return EngineSettings()
    payload = settings.model_dump() if isinstance(settings, EngineSettings) else settings
    if not isinstance(payload, dict):
        raise ConfigurationError("Engine settings must be a mapping")
    try:
        return EngineSettings.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid engine settings: {_format_validation_error(exc)}") from exc


def settings_from_overrides(overrides: dict[str, Any] | None) -> EngineSettings:
    """Merge partial overrides over the defaults."""
    if not overrides:
        return EngineSettings()
    if not isinstance(overrides, dict):
        raise ConfigurationError("Engine settings overrides must be a mapping")
    return validate_settings(_deep_merge(EngineSettings().model_dump(), overrides))


def load_engine_settings(path: str | Path | None) -> EngineSettings:
    """Load overrides from a YAML or JSON file; an empty path yields defaults."""
    if not path:
        return EngineSettings()
    file_path = Path(path).expanduser()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read engine settings file {file_path}: {exc}") from exc

    try:
        if file_path.suffix.lower() == ".json":
            raw = json.loads(text) if text.strip() else {}
        else:
            raw = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot parse engine settings file {file_path}: {exc}") from exc
    return settings_from_overrides(raw)
